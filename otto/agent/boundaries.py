from __future__ import annotations

"""
Interfaces of the external collaborators the control loop drives.

Every implementation signals failure by raising a ``BoundaryError`` subclass
(``CaptureError``, ``LLMException``, ``ActuationError``) and must not retry on
its own; retry-vs-abort is decided by the loop alone.
"""
import enum
from typing import List, Optional, Protocol, runtime_checkable

from otto.agent.views import ScreenState


class LLMCallType(str, enum.Enum):
    DECOMPOSITION = "decomposition"
    ACTION_DECISION = "action_decision"
    VERIFICATION = "verification"
    PLANNING = "planning"
    TOOL_DECISION = "tool_decision"


@runtime_checkable
class LanguageModel(Protocol):
    async def ainvoke(self, prompt: str, call_type: LLMCallType) -> str:
        """Return the raw completion text for ``prompt``."""
        ...


@runtime_checkable
class ScreenObserver(Protocol):
    async def observe(self, goal_context: str) -> ScreenState:
        """Capture the screen and describe it with coordinates in full-screen space."""
        ...


@runtime_checkable
class ScreenshotSource(Protocol):
    async def capture(self) -> ScreenState:
        ...


@runtime_checkable
class Actuator(Protocol):
    async def open_app(self, name: str) -> None: ...

    async def type_text(self, text: str) -> None: ...

    async def press_key(self, key: str, modifiers: Optional[List[str]] = None) -> None: ...

    async def mouse_click(self, x: int, y: int, button: str = "left") -> None: ...

    async def mouse_move(self, x: int, y: int) -> None: ...
