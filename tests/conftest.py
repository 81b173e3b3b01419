"""Scripted doubles for every boundary the control loops drive."""
from __future__ import annotations

from collections import deque
from typing import Callable, Dict, Iterable, List, Optional, Union

import pytest

from otto.agent.boundaries import LLMCallType
from otto.agent.views import ScreenState, UIElement
from otto.exceptions import ActuationError, CaptureError, LLMException

Scripted = Union[str, Exception]


class ScriptedLLM:
    """Answers from per-call-type queues and records every prompt it sees."""

    def __init__(self, script: Optional[Dict[LLMCallType, Iterable[Scripted]]] = None, on_call: Optional[Callable] = None):
        self.queues = {k: deque(v) for k, v in (script or {}).items()}
        self.calls: List[tuple] = []
        self.on_call = on_call

    def call_types(self) -> List[LLMCallType]:
        return [c for _, c in self.calls]

    async def ainvoke(self, prompt: str, call_type: LLMCallType) -> str:
        self.calls.append((prompt, call_type))
        if self.on_call is not None:
            self.on_call(prompt, call_type)
        queue = self.queues.get(call_type)
        if not queue:
            raise LLMException(f"no scripted {call_type.value} response")
        item = queue.popleft()
        if isinstance(item, Exception):
            raise item
        return item


class FakeObserver:
    def __init__(self, screens: Optional[List[ScreenState]] = None, failures: int = 0):
        self.screens = list(screens or [])
        self.failures = failures
        self.contexts: List[str] = []

    async def observe(self, goal_context: str) -> ScreenState:
        self.contexts.append(goal_context)
        if self.failures > 0:
            self.failures -= 1
            raise CaptureError("capture failed")
        if self.screens:
            return self.screens.pop(0) if len(self.screens) > 1 else self.screens[0]
        return ScreenState(description=f"screen #{len(self.contexts)}", active_app="Finder")

    async def capture(self) -> ScreenState:
        return await self.observe("screenshot")


class RecordingActuator:
    """Records every call; methods named in ``fail`` raise (once per listed entry)."""

    def __init__(self, fail: Optional[List[str]] = None):
        self.calls: List[tuple] = []
        self.fail = list(fail or [])

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            self.fail.remove(name)
            raise ActuationError(f"{name} failed")

    async def open_app(self, name: str) -> None:
        self._record("open_app", name)

    async def type_text(self, text: str) -> None:
        self._record("type_text", text)

    async def press_key(self, key: str, modifiers=None) -> None:
        self._record("press_key", key, list(modifiers or []))

    async def mouse_click(self, x: int, y: int, button: str = "left") -> None:
        self._record("mouse_click", x, y, button)

    async def mouse_move(self, x: int, y: int) -> None:
        self._record("mouse_move", x, y)


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class CancellingSleeper(SleepRecorder):
    """Cancels ``token`` whenever it is asked to sleep for ``on_delay`` seconds."""

    def __init__(self, token, on_delay: float):
        super().__init__()
        self.token = token
        self.on_delay = on_delay

    async def __call__(self, seconds: float) -> None:
        await super().__call__(seconds)
        if seconds == self.on_delay:
            self.token.cancel()


def send_button_screen() -> ScreenState:
    return ScreenState(
        description="Chat window with a message box and a Send button",
        ui_elements=[
            UIElement(label="Message", element_type="input", x1=100, y1=300, x2=380, y2=340),
            UIElement(label="Send", element_type="button", x1=400, y1=300, x2=500, y2=340),
        ],
        active_app="Messages",
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def actuator() -> RecordingActuator:
    return RecordingActuator()


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()
