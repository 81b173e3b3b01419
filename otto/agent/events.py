from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

logger = logging.getLogger(__name__)


# Event kinds surfaced to the shell/UI
SESSION_UPDATED = "session_updated"
DECOMPOSITION = "decomposition"
GOALS_READY = "goals_ready"
GOAL_STARTED = "goal_started"
GOAL_COMPLETED = "goal_completed"
OBSERVATION = "observation"
ACTION_PLANNED = "action_planned"
ACTION_COMPLETED = "action_completed"
VERIFICATION = "verification"
SESSION_COMPLETE = "session_complete"
ERROR = "error"
PLAN_SESSION = "plan_session"
AGENT_DONE = "agent_done"


@dataclass
class Event:
    """A single notification. ``payload`` is always a detached snapshot."""
    kind: str
    session_id: str
    payload: Any = None
    timestamp: float = field(default_factory=time.monotonic)


Listener = Callable[[Event], Any]


def _detach(payload: Any) -> Any:
    if hasattr(payload, "model_copy"):
        return payload.model_copy(deep=True)
    if isinstance(payload, list):
        return [_detach(p) for p in payload]
    if isinstance(payload, dict):
        return {k: _detach(v) for k, v in payload.items()}
    return payload


class EventBus:
    """Fire-and-forget fan-out to listeners.

    Publishing never awaits a listener. Queue subscribers get ``put_nowait``
    (dropped with a warning when full); callable subscribers are invoked
    inline and their exceptions are logged, not propagated.
    """

    def __init__(self) -> None:
        self._listeners: List[Union[Listener, asyncio.Queue]] = []

    def subscribe(self, listener: Union[Listener, asyncio.Queue]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Union[Listener, asyncio.Queue]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, kind: str, session_id: str, payload: Any = None) -> Optional[Event]:
        if not self._listeners:
            return None
        event = Event(kind=kind, session_id=session_id, payload=_detach(payload))
        for listener in list(self._listeners):
            if isinstance(listener, asyncio.Queue):
                try:
                    listener.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning(f"Event queue full, dropping '{kind}' event")
                continue
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    # Schedule, never await: listeners must not hold up the loop
                    asyncio.ensure_future(result)
            except Exception as e:
                logger.warning(f"Event listener failed on '{kind}': {type(e).__name__}: {e}")
        return event


__all__ = [
    "Event",
    "EventBus",
    "Listener",
    "SESSION_UPDATED",
    "DECOMPOSITION",
    "GOALS_READY",
    "GOAL_STARTED",
    "GOAL_COMPLETED",
    "OBSERVATION",
    "ACTION_PLANNED",
    "ACTION_COMPLETED",
    "VERIFICATION",
    "SESSION_COMPLETE",
    "ERROR",
    "PLAN_SESSION",
    "AGENT_DONE",
]
