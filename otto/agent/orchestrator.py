from __future__ import annotations

"""
Goal-based control loop: decompose once, then observe -> decide -> act -> verify
for each goal in order until it is achieved, its attempts run out, the global
action budget runs out, or the run is cancelled.
"""
import logging
from typing import Optional

from otto.agent.actuator import execute_atomic
from otto.agent.boundaries import Actuator, LanguageModel, ScreenObserver
from otto.agent.concurrency import CancellationToken
from otto.agent.decomposer import Decomposer
from otto.agent.events import (
    ACTION_COMPLETED,
    ACTION_PLANNED,
    DECOMPOSITION,
    GOAL_COMPLETED,
    GOAL_STARTED,
    GOALS_READY,
    OBSERVATION,
    SESSION_COMPLETE,
    SESSION_UPDATED,
    VERIFICATION,
    EventBus,
)
from otto.agent.loop import ControlLoop
from otto.agent.parser import AppFinder
from otto.agent.settings import AgentSettings
from otto.agent.state import AgentState
from otto.agent.thinker import Thinker
from otto.agent.verifier import Verifier
from otto.agent.views import AgentSession, DecompositionInfo, Goal, GoalStatus
from otto.exceptions import BoundaryError, BudgetExhausted, GoalFailed, ParseError
from otto.logging_config import RESULT_LEVEL

logger = logging.getLogger(__name__)


class GoalOrchestrator(ControlLoop):
    """Primary loop. Every non-self-verifying action is checked by the Verifier."""

    error_state = AgentState.ERROR
    snapshot_event = SESSION_UPDATED

    def __init__(
        self,
        command: str,
        llm: LanguageModel,
        observer: ScreenObserver,
        actuator: Actuator,
        settings: Optional[AgentSettings] = None,
        events: Optional[EventBus] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep=None,
        app_finder: Optional[AppFinder] = None,
    ):
        super().__init__(settings=settings, events=events, cancel_token=cancel_token, sleep=sleep)
        self.llm = llm
        self.observer = observer
        self.actuator = actuator
        self.decomposer = Decomposer(llm, max_attempts=self.settings.max_attempts_per_goal)
        self.thinker = Thinker(llm, app_finder=app_finder, check_cancelled=self.check_cancelled)
        self.verifier = Verifier(
            observer,
            llm,
            settle_seconds=self.settings.verify_settle_seconds,
            sleep=self._sleep,
            check_cancelled=self.check_cancelled,
        )
        self.session = AgentSession(original_command=command, max_total_actions=self.settings.max_total_actions)
        self.decomposition: Optional[DecompositionInfo] = None

    @property
    def step(self) -> int:
        return self.session.total_actions

    async def _run(self) -> AgentSession:
        self.log(logging.INFO, f"🚀 Starting run: {self.session.original_command}")
        self.check_cancelled()

        self.set_state(AgentState.DECOMPOSING)
        result = await self.decomposer.decompose(self.session.original_command)
        self.check_cancelled()

        self.session.goals = result.goals
        self.decomposition = result.info
        self.emit(DECOMPOSITION, result.info)
        self.emit(GOALS_READY, self.session.goals)
        self.log(logging.INFO, f"📋 {len(result.goals)} goal(s) via {result.info.method}")

        for index, goal in enumerate(self.session.goals):
            self.session.current_goal_index = index
            await self._run_goal(index, goal)

        self.set_state(AgentState.COMPLETE)
        self.emit(SESSION_COMPLETE, self.session.snapshot())
        self.log(RESULT_LEVEL, f"✅ All {len(self.session.goals)} goal(s) achieved in {self.session.total_actions} action(s)")
        return self.session

    async def _run_goal(self, index: int, goal: Goal) -> None:
        goal.status = GoalStatus.IN_PROGRESS
        self.emit(GOAL_STARTED, index)
        self.emit_snapshot()
        self.log(logging.INFO, f"🎯 Goal {index + 1}/{len(self.session.goals)}: {goal.description}")

        while True:
            self.check_cancelled()
            if self.session.budget_exhausted:
                raise BudgetExhausted("Maximum actions exceeded")

            if await self._attempt(goal):
                goal.status = GoalStatus.COMPLETED
                self.emit(GOAL_COMPLETED, index)
                self.emit_snapshot()
                self.log(logging.INFO, f"👍 Goal achieved: {goal.description}")
                return

            goal.record_attempt()
            self.emit_snapshot()
            if goal.exhausted:
                goal.status = GoalStatus.FAILED
                raise GoalFailed(f"Goal failed after {goal.max_attempts} attempts: {goal.description}")
            await self.pause(self.settings.settle_delay_seconds)

    async def _attempt(self, goal: Goal) -> bool:
        """One observe/decide/act/verify pass. False means the attempt is spent."""
        self.set_state(AgentState.OBSERVING)
        try:
            screen = await self.observer.observe(goal.description)
        except BoundaryError as e:
            self.log(logging.WARNING, f"Observation failed: {e}")
            return False
        self.check_cancelled()
        self.session.last_observation = screen
        self.emit(OBSERVATION, screen)

        self.set_state(AgentState.THINKING)
        recent = self.session.recent_history(self.settings.history_window)
        try:
            action = await self.thinker.decide_action(goal, screen, recent)
        except (BoundaryError, ParseError) as e:
            self.log(logging.WARNING, f"Decision failed: {e}")
            return False
        self.check_cancelled()
        self.session.current_action = action
        self.emit(ACTION_PLANNED, action)

        self.set_state(AgentState.ACTING)
        self.log(logging.INFO, f"🛠️ {action.action_type.value}: {action.rationale}")
        result = await execute_atomic(action, self.actuator, self._sleep)
        self.session.action_history.append(result)
        self.session.total_actions += 1
        self.emit(ACTION_COMPLETED, result)
        self.check_cancelled()

        if not result.success:
            return False
        if action.is_self_verifying:
            self.log(logging.DEBUG, f"{action.action_type.value} succeeded, treating goal as achieved")
            return True

        self.set_state(AgentState.VERIFYING)
        try:
            verification = await self.verifier.verify(goal, action, screen)
        except BoundaryError as e:
            self.log(logging.WARNING, f"Verification failed, treating as not achieved: {e}")
            return False
        self.check_cancelled()
        if self.verifier.last_after is not None:
            self.session.last_observation = self.verifier.last_after
        self.emit(VERIFICATION, verification)
        if not verification.goal_achieved:
            self.log(logging.INFO, f"Not achieved yet: {verification.observation}")
        return verification.goal_achieved
