from __future__ import annotations

"""
Shared skeleton of both control loops.

A loop owns its session, checks cancellation and budget at fixed points,
emits snapshots on every state change and turns terminal failures into an
error state plus a raised exception. Subclasses supply the granularity
(goal or plan step) and the verification strategy.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from otto.agent.concurrency import CancellationToken, settle
from otto.agent.events import ERROR, EventBus
from otto.agent.settings import AgentSettings
from otto.agent.state import agent_log
from otto.exceptions import AgentCancelled, OttoError

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


class ControlLoop:
    # Set by subclasses
    error_state: Any = None
    snapshot_event: str = ""

    def __init__(
        self,
        settings: Optional[AgentSettings] = None,
        events: Optional[EventBus] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or AgentSettings()
        self.events = events or EventBus()
        self.cancel_token = cancel_token or CancellationToken()
        self._sleep = sleep or settle
        self.session: Any = None

    # --- hooks -----------------------------------------------------------

    @property
    def step(self) -> int:
        raise NotImplementedError

    async def _run(self) -> Any:
        raise NotImplementedError

    # --- shared machinery -------------------------------------------------

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def check_cancelled(self) -> None:
        if self.cancel_token.cancelled:
            raise AgentCancelled(CANCELLED_MESSAGE)

    async def pause(self, seconds: float) -> None:
        """Settle delay; a suspension point, so cancellation is re-checked after."""
        await self._sleep(seconds)
        self.check_cancelled()

    def emit(self, kind: str, payload: Any = None) -> None:
        self.events.publish(kind, self.session.id, payload)

    def emit_snapshot(self) -> None:
        self.emit(self.snapshot_event, self.session.snapshot())

    def set_state(self, state: Any) -> None:
        if self.session.state != state:
            agent_log(logging.DEBUG, self.session.id, self.step, f"State {self.session.state.value} -> {state.value}")
        self.session.state = state
        self.emit_snapshot()

    def log(self, level: int, message: str, **kwargs) -> None:
        agent_log(level, self.session.id, self.step, message, **kwargs)

    def _enter_error(self, message: str) -> None:
        self.session.error = message
        self.session.state = self.error_state
        self.emit(ERROR, message)
        self.emit_snapshot()

    async def run(self) -> Any:
        """Drive the session to a terminal state.

        Returns the finished session; terminal failures are raised after the
        session has been put into its error state and an error event emitted.
        """
        self.cancel_token.reset()
        try:
            return await self._run()
        except OttoError as e:
            self.log(logging.ERROR, f"❌ Run aborted: {e}")
            self._enter_error(str(e))
            raise
        except Exception as e:
            self.log(logging.CRITICAL, f"Unexpected failure in control loop: {type(e).__name__}: {e}", exc_info=True)
            self._enter_error(f"{type(e).__name__}: {e}")
            raise
