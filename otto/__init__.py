from otto.config import CONFIG
from otto.logging_config import setup_logging

# Only set up logging if not explicitly disabled (e.g. when embedded in a host app)
if CONFIG.OTTO_SETUP_LOGGING:
	logger = setup_logging()
else:
	import logging

	logger = logging.getLogger('otto')


# --- Lightweight, lazy re-exports ---
# Avoid importing the HTTP client and pydantic models at package import time.

_LAZY_EXPORTS = {
	# Control loops
	'GoalOrchestrator': ('otto.agent.orchestrator', 'GoalOrchestrator'),
	'PlanAgent': ('otto.agent.runner', 'PlanAgent'),
	'AgentSettings': ('otto.agent.settings', 'AgentSettings'),
	'CancellationToken': ('otto.agent.concurrency', 'CancellationToken'),
	'EventBus': ('otto.agent.events', 'EventBus'),
	# Components
	'Decomposer': ('otto.agent.decomposer', 'Decomposer'),
	'Thinker': ('otto.agent.thinker', 'Thinker'),
	'Verifier': ('otto.agent.verifier', 'Verifier'),
	# Models
	'Goal': ('otto.agent.views', 'Goal'),
	'AtomicAction': ('otto.agent.views', 'AtomicAction'),
	'ActionResult': ('otto.agent.views', 'ActionResult'),
	'AgentSession': ('otto.agent.views', 'AgentSession'),
	'Plan': ('otto.agent.views', 'Plan'),
	'ScreenState': ('otto.agent.views', 'ScreenState'),
	# Reasoning boundary adapter
	'ChatOllama': ('otto.llm', 'ChatOllama'),
}


def __getattr__(name: str):
	entry = _LAZY_EXPORTS.get(name)
	if not entry:
		raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
	module_path, attr_name = entry
	try:
		from importlib import import_module

		module = import_module(module_path)
		attr = getattr(module, attr_name)
		# Cache for future lookups
		globals()[name] = attr
		return attr
	except ImportError as e:
		raise ImportError(f'Failed to import {name} from {module_path}: {e}') from e


__all__ = list(_LAZY_EXPORTS.keys())
