from __future__ import annotations

"""
Plan-based control loop: plan up front, then run a best-effort tool batch
per step. There is no per-step verification; a step advances once its batch
has run, whatever the individual tool outcomes were.
"""
import logging
from typing import Any, List, Optional

from otto.agent.actuator import execute_tool
from otto.agent.boundaries import Actuator, LanguageModel, ScreenshotSource
from otto.agent.concurrency import CancellationToken
from otto.agent.events import AGENT_DONE, PLAN_SESSION, EventBus
from otto.agent.loop import ControlLoop
from otto.agent.planner import create_plan, plan_step_tools
from otto.agent.settings import AgentSettings
from otto.agent.state import PlanState
from otto.agent.views import PlanSession, is_terminal_tool
from otto.exceptions import AgentAbort, BoundaryError, BudgetExhausted, ParseError
from otto.logging_config import RESULT_LEVEL

logger = logging.getLogger(__name__)


class PlanAgent(ControlLoop):
    error_state = PlanState.FAILED
    snapshot_event = PLAN_SESSION

    def __init__(
        self,
        task: str,
        llm: LanguageModel,
        actuator: Actuator,
        screenshot_source: Optional[ScreenshotSource] = None,
        settings: Optional[AgentSettings] = None,
        events: Optional[EventBus] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep=None,
    ):
        super().__init__(settings=settings, events=events, cancel_token=cancel_token, sleep=sleep)
        self.llm = llm
        self.actuator = actuator
        self.screenshot_source = screenshot_source
        self.session = PlanSession(task=task, max_steps=self.settings.max_plan_steps)

    @property
    def step(self) -> int:
        return self.session.step_count

    async def _run(self) -> PlanSession:
        task = self.session.task
        self.log(logging.INFO, f"🚀 Starting plan run: {task}")
        self.check_cancelled()

        self.set_state(PlanState.PLANNING)
        plan = await create_plan(self.llm, task)
        self.check_cancelled()
        self.session.plan = plan
        self.set_state(PlanState.EXECUTING)

        while not plan.is_complete():
            self.check_cancelled()
            step = plan.current_step_desc()
            self.log(logging.INFO, f"➡️ Step {plan.current_step + 1}/{len(plan.steps)}: {step}")

            try:
                tools = await plan_step_tools(self.llm, task, step, self.settings.open_app_wait_ms)
            except (BoundaryError, ParseError) as e:
                self.log(logging.WARNING, f"Could not resolve tools for step '{step}', skipping: {e}")
                tools = []
            self.check_cancelled()

            terminal = await self._run_batch(tools)
            if terminal is not None and terminal.tool == "done":
                return self._finish(terminal.params.summary)
            if terminal is not None and terminal.tool == "fail":
                plan.fail_current()
                raise AgentAbort(terminal.params.reason)

            plan.advance()
            self.emit_snapshot()

        return self._finish(f"Completed: {task}")

    async def _run_batch(self, tools: List[Any]) -> Optional[Any]:
        """Run tools in order; returns the done/fail tool that ended the batch, if any."""
        for tool in tools:
            self.check_cancelled()
            if self.session.budget_exhausted:
                raise BudgetExhausted("Maximum steps exceeded")

            if is_terminal_tool(tool):
                return None if tool.tool == "step_done" else tool

            result = await execute_tool(tool, self.actuator, self.screenshot_source, self._sleep)
            self.session.history.append(result)
            self.session.step_count += 1
            self.emit_snapshot()
            if not result.success:
                self.log(logging.WARNING, f"Tool {result.tool} failed, continuing batch: {result.error}")

            await self.pause(self.settings.tool_settle_seconds)
        return None

    def _finish(self, summary: str) -> PlanSession:
        self.set_state(PlanState.DONE)
        self.emit(AGENT_DONE, summary)
        self.log(RESULT_LEVEL, f"✅ {summary} ({self.session.step_count} tool(s))")
        return self.session
