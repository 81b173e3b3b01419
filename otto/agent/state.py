from __future__ import annotations

"""
Lifecycle states for both control-loop granularities and the run-scoped log helper.
"""
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    """Lifecycle of the goal-based orchestrator."""
    IDLE = "idle"
    DECOMPOSING = "decomposing"
    OBSERVING = "observing"
    THINKING = "thinking"
    ACTING = "acting"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    ERROR = "error"


class PlanState(str, Enum):
    """Lifecycle of the plan-based runner."""
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


def agent_log(level: int, session_id: str, step: int, message: str, **kwargs) -> None:
    logger.log(level, message, extra={"session_id": session_id, "step": step}, **kwargs)
