from __future__ import annotations

"""
Actuation: run one action or tool through the Actuator boundary.

Every execution produces exactly one immutable result. ``ActuationError``
from the boundary becomes a failed result; anything else propagates.
``wait`` never reaches the boundary, it is a plain delay.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from otto.agent.boundaries import Actuator, ScreenshotSource
from otto.agent.concurrency import settle
from otto.agent.views import (
    AckOutput,
    ActionResult,
    ActionType,
    AtomicAction,
    ScreenshotOutput,
    ScreenState,
    ToolResult,
    ToolUIElement,
    tool_params,
)
from otto.exceptions import ActuationError, CaptureError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DOUBLE_CLICK_GAP_SECONDS = 0.05


async def _dispatch_action(action: AtomicAction, actuator: Actuator, sleep: Sleep) -> None:
    params = action.params
    kind = action.action_type
    if kind == ActionType.OPEN_APP:
        await actuator.open_app(params.app_name)
    elif kind == ActionType.TYPE_TEXT:
        await actuator.type_text(params.text)
    elif kind == ActionType.PRESS_KEY:
        await actuator.press_key(params.key, list(params.modifiers))
    elif kind == ActionType.MOUSE_CLICK:
        await actuator.mouse_click(params.x, params.y, params.button)
    elif kind == ActionType.MOUSE_MOVE:
        await actuator.mouse_move(params.x, params.y)
    elif kind == ActionType.WAIT:
        await sleep(params.ms / 1000)
    else:
        raise ActuationError(f"{kind.value} must be resolved to a click before execution")


async def execute_atomic(action: AtomicAction, actuator: Actuator, sleep: Optional[Sleep] = None) -> ActionResult:
    sleep = sleep or settle
    try:
        await _dispatch_action(action, actuator, sleep)
    except ActuationError as e:
        logger.warning(f"Action {action.action_type.value} failed: {e}")
        return ActionResult(action_id=action.id, success=False, error_message=str(e), screen_changed=False)
    logger.debug(f"Action {action.action_type.value} executed ({action.id})")
    return ActionResult(action_id=action.id, success=True, screen_changed=action.action_type != ActionType.WAIT)


def screen_to_output(screen: ScreenState) -> ScreenshotOutput:
    elements = []
    for el in screen.ui_elements:
        cx, cy = el.center
        elements.append(ToolUIElement(label=el.label, element_type=el.element_type, x=cx, y=cy))
    return ScreenshotOutput(elements=elements, active_app=screen.active_app)


async def execute_tool(
    tool: Any,
    actuator: Actuator,
    screenshot_source: Optional[ScreenshotSource] = None,
    sleep: Optional[Sleep] = None,
) -> ToolResult:
    """Run one tool. Terminal control tools are acknowledged; the runner acts on them."""
    sleep = sleep or settle
    name = tool.tool
    params = tool_params(tool)

    def failed(error: str) -> ToolResult:
        logger.warning(f"Tool {name} failed: {error}")
        return ToolResult(tool=name, params=params, success=False, error=error)

    output: Any = AckOutput()
    try:
        if name == "screenshot":
            if screenshot_source is None:
                return failed("No screenshot source configured")
            output = screen_to_output(await screenshot_source.capture())
        elif name == "click":
            await actuator.mouse_click(tool.params.x, tool.params.y, "left")
        elif name == "double_click":
            await actuator.mouse_click(tool.params.x, tool.params.y, "left")
            await sleep(DOUBLE_CLICK_GAP_SECONDS)
            await actuator.mouse_click(tool.params.x, tool.params.y, "left")
        elif name == "type":
            await actuator.type_text(tool.params.text)
        elif name == "key":
            await actuator.press_key(tool.params.key, list(tool.params.modifiers or []))
        elif name == "wait":
            await sleep(tool.params.ms / 1000)
        elif name == "open_app":
            await actuator.open_app(tool.params.name)
        elif name == "scroll":
            scroll = getattr(actuator, "scroll", None)
            if scroll is None:
                return failed("Scroll is not supported by this actuator")
            await scroll(tool.params.direction, tool.params.amount)
    except (ActuationError, CaptureError) as e:
        return failed(str(e))

    return ToolResult(tool=name, params=params, success=True, output=output)
