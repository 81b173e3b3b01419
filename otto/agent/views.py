from __future__ import annotations

import enum
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from typing_extensions import Annotated, Literal

from otto.agent.state import AgentState, PlanState
from otto.timing import now_millis

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


class GoalStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Goal(BaseModel):
    """One decomposed sub-task. Description and criteria are fixed at creation."""
    id: str = Field(default_factory=_new_id, frozen=True)
    description: str = Field(frozen=True)
    success_criteria: str = Field(frozen=True)
    status: GoalStatus = GoalStatus.PENDING
    attempts: int = Field(0, ge=0)
    max_attempts: int = Field(3, ge=1)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def record_attempt(self) -> int:
        """Count one failed attempt; saturates at max_attempts."""
        if self.attempts < self.max_attempts:
            self.attempts += 1
        return self.attempts


class DecompositionInfo(BaseModel):
    method: Literal["pattern", "llm"]
    pattern_name: Optional[str] = None
    original_command: str


# ---------------------------------------------------------------------------
# Atomic actions (primary loop vocabulary)
# ---------------------------------------------------------------------------


class ActionType(str, enum.Enum):
    OPEN_APP = "open_app"
    TYPE_TEXT = "type_text"
    PRESS_KEY = "press_key"
    MOUSE_CLICK = "mouse_click"
    MOUSE_MOVE = "mouse_move"
    WAIT = "wait"
    FIND_AND_CLICK = "find_and_click"


class _Params(BaseModel):
    model_config = ConfigDict(frozen=True)


class OpenAppParams(_Params):
    kind: Literal["open_app"] = "open_app"
    app_name: str


class TypeTextParams(_Params):
    kind: Literal["type_text"] = "type_text"
    text: str


class PressKeyParams(_Params):
    kind: Literal["press_key"] = "press_key"
    key: str
    modifiers: List[str] = Field(default_factory=list)


class MouseClickParams(_Params):
    kind: Literal["mouse_click"] = "mouse_click"
    x: int
    y: int
    button: Literal["left", "right"] = "left"


class MouseMoveParams(_Params):
    kind: Literal["mouse_move"] = "mouse_move"
    x: int
    y: int


class WaitParams(_Params):
    kind: Literal["wait"] = "wait"
    ms: int = Field(500, ge=0)


class FindAndClickParams(_Params):
    kind: Literal["find_and_click"] = "find_and_click"
    element: str


ActionParams = Annotated[
    Union[
        OpenAppParams,
        TypeTextParams,
        PressKeyParams,
        MouseClickParams,
        MouseMoveParams,
        WaitParams,
        FindAndClickParams,
    ],
    Field(discriminator="kind"),
]

# Action kinds whose successful execution is itself proof of goal achievement
SELF_VERIFYING_ACTIONS = frozenset({
    ActionType.OPEN_APP,
    ActionType.TYPE_TEXT,
    ActionType.PRESS_KEY,
    ActionType.WAIT,
})


class AtomicAction(BaseModel):
    """A single decided action. Never mutated; a retry always builds a new one."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    action_type: ActionType
    params: ActionParams
    rationale: str = ""

    @model_validator(mode="after")
    def _params_match_type(self) -> "AtomicAction":
        if self.params.kind != self.action_type.value:
            raise ValueError(
                f"params of kind '{self.params.kind}' do not match action type '{self.action_type.value}'"
            )
        return self

    @classmethod
    def create(cls, params: ActionParams, rationale: str = "") -> "AtomicAction":
        return cls(action_type=ActionType(params.kind), params=params, rationale=rationale)

    @property
    def is_self_verifying(self) -> bool:
        return self.action_type in SELF_VERIFYING_ACTIONS


class ActionResult(BaseModel):
    """Outcome of one actuation; appended to the session history as-is."""
    model_config = ConfigDict(frozen=True)

    action_id: str
    success: bool
    error_message: Optional[str] = None
    screen_changed: bool = True


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------


class UIElement(BaseModel):
    """Labeled bounding box, always in original screen coordinates."""
    label: str
    element_type: str = "unknown"
    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def center(self) -> tuple[int, int]:
        return ((self.x1 + self.x2) // 2, (self.y1 + self.y2) // 2)


class DetectedElement(BaseModel):
    description: str
    location: Optional[tuple[int, int]] = None
    confidence: float = 1.0


class ScreenState(BaseModel):
    timestamp: int = Field(default_factory=now_millis)
    description: str = ""
    ui_elements: List[UIElement] = Field(default_factory=list)
    detected_elements: List[DetectedElement] = Field(default_factory=list)
    active_app: Optional[str] = None
    screenshot_hash: str = ""

    def format_ui_elements(self) -> str:
        if not self.ui_elements:
            return "No UI elements detected"
        lines = []
        for i, el in enumerate(self.ui_elements, start=1):
            cx, cy = el.center
            lines.append(
                f"{i}. {el.element_type} '{el.label}' box=({el.x1}, {el.y1}, {el.x2}, {el.y2}) center=({cx}, {cy})"
            )
        return "\n".join(lines)


def scale_elements(elements: List[UIElement], scale_x: float, scale_y: float) -> List[UIElement]:
    """Map boxes detected on a downscaled capture back into full-screen space.

    Capture boundaries call this before an observation leaves them, so the
    coordinates handed to the loop can be fed straight back into a click.
    """
    return [
        UIElement(
            label=e.label,
            element_type=e.element_type,
            x1=int(e.x1 * scale_x),
            y1=int(e.y1 * scale_y),
            x2=int(e.x2 * scale_x),
            y2=int(e.y2 * scale_y),
        )
        for e in elements
    ]


class VerificationResult(BaseModel):
    goal_id: str
    action_id: str
    goal_achieved: bool = False
    progress_made: bool = False
    observation: str = "No observation"


# ---------------------------------------------------------------------------
# Tools (plan variant vocabulary)
# ---------------------------------------------------------------------------


class XYParams(_Params):
    x: int
    y: int


class TextParams(_Params):
    text: str


class KeyParams(_Params):
    key: str
    modifiers: Optional[List[str]] = None


class MsParams(_Params):
    ms: int = Field(500, ge=0)


class NameParams(_Params):
    name: str


class ScrollParams(_Params):
    direction: Literal["up", "down", "left", "right"] = "down"
    amount: int = 3


class SummaryParams(_Params):
    summary: str = "Task completed"


class ReasonParams(_Params):
    reason: str = "Unknown error"


class _ToolBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ScreenshotTool(_ToolBase):
    tool: Literal["screenshot"] = "screenshot"


class ClickTool(_ToolBase):
    tool: Literal["click"] = "click"
    params: XYParams


class DoubleClickTool(_ToolBase):
    tool: Literal["double_click"] = "double_click"
    params: XYParams


class TypeTool(_ToolBase):
    tool: Literal["type"] = "type"
    params: TextParams


class KeyTool(_ToolBase):
    tool: Literal["key"] = "key"
    params: KeyParams


class WaitTool(_ToolBase):
    tool: Literal["wait"] = "wait"
    params: MsParams = Field(default_factory=MsParams)


class OpenAppTool(_ToolBase):
    tool: Literal["open_app"] = "open_app"
    params: NameParams


class ScrollTool(_ToolBase):
    tool: Literal["scroll"] = "scroll"
    params: ScrollParams = Field(default_factory=ScrollParams)


class StepDoneTool(_ToolBase):
    tool: Literal["step_done"] = "step_done"


class DoneTool(_ToolBase):
    tool: Literal["done"] = "done"
    params: SummaryParams = Field(default_factory=SummaryParams)


class FailTool(_ToolBase):
    tool: Literal["fail"] = "fail"
    params: ReasonParams = Field(default_factory=ReasonParams)


Tool = Annotated[
    Union[
        ScreenshotTool,
        ClickTool,
        DoubleClickTool,
        TypeTool,
        KeyTool,
        WaitTool,
        OpenAppTool,
        ScrollTool,
        StepDoneTool,
        DoneTool,
        FailTool,
    ],
    Field(discriminator="tool"),
]

TOOL_ADAPTER: TypeAdapter = TypeAdapter(Tool)

TERMINAL_TOOLS = frozenset({"step_done", "done", "fail"})


def tool_params(tool: Any) -> Optional[Dict[str, Any]]:
    params = getattr(tool, "params", None)
    return params.model_dump() if params is not None else None


def is_terminal_tool(tool: Any) -> bool:
    return tool.tool in TERMINAL_TOOLS


class ToolUIElement(BaseModel):
    label: str
    element_type: str
    x: int  # center x
    y: int  # center y


class ScreenshotOutput(BaseModel):
    type: Literal["screenshot"] = "screenshot"
    elements: List[ToolUIElement] = Field(default_factory=list)
    active_app: Optional[str] = None


class AckOutput(BaseModel):
    type: Literal["ack"] = "ack"


ToolOutput = Annotated[Union[ScreenshotOutput, AckOutput], Field(discriminator="type")]


def format_output(output: ToolOutput, max_elements: int = 20) -> str:
    if isinstance(output, AckOutput):
        return "OK"
    parts = []
    if output.active_app:
        parts.append(f"Active app: {output.active_app}")
    parts.append(f"UI Elements ({len(output.elements)}):")
    for el in output.elements[:max_elements]:
        parts.append(f"  - {el.element_type} '{el.label}' at ({el.x}, {el.y})")
    if len(output.elements) > max_elements:
        parts.append(f"  ... and {len(output.elements) - max_elements} more")
    return "\n".join(parts)


class ToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str
    params: Optional[Dict[str, Any]] = None
    success: bool
    output: Optional[ToolOutput] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


class PlanStep(BaseModel):
    id: int
    description: str
    status: StepStatus = StepStatus.PENDING


_STEP_MARKERS = {
    StepStatus.DONE: "[x]",
    StepStatus.IN_PROGRESS: "[>]",
    StepStatus.FAILED: "[!]",
    StepStatus.PENDING: "[ ]",
}


class Plan(BaseModel):
    task: str
    steps: List[PlanStep] = Field(default_factory=list)
    current_step: int = 0

    @classmethod
    def new(cls, task: str, step_descriptions: List[str]) -> "Plan":
        steps = [
            PlanStep(
                id=i,
                description=desc,
                status=StepStatus.IN_PROGRESS if i == 0 else StepStatus.PENDING,
            )
            for i, desc in enumerate(step_descriptions)
        ]
        return cls(task=task, steps=steps, current_step=0)

    def current_step_desc(self) -> Optional[str]:
        if self.current_step < len(self.steps):
            return self.steps[self.current_step].description
        return None

    def advance(self) -> bool:
        """Mark the current step done and start the next; False once exhausted."""
        if self.current_step < len(self.steps):
            self.steps[self.current_step].status = StepStatus.DONE
        self.current_step += 1
        if self.current_step < len(self.steps):
            self.steps[self.current_step].status = StepStatus.IN_PROGRESS
            return True
        return False

    def fail_current(self) -> None:
        if self.current_step < len(self.steps):
            self.steps[self.current_step].status = StepStatus.FAILED

    def is_complete(self) -> bool:
        return self.current_step >= len(self.steps)

    def format(self) -> str:
        return "\n".join(
            f"{_STEP_MARKERS[s.status]} {s.id + 1}. {s.description}" for s in self.steps
        )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class AgentSession(BaseModel):
    """Aggregate root of one goal-based run. Listeners only ever see snapshots."""
    id: str = Field(default_factory=_new_id)
    original_command: str
    goals: List[Goal] = Field(default_factory=list)
    current_goal_index: int = 0
    state: AgentState = AgentState.IDLE
    action_history: List[ActionResult] = Field(default_factory=list)
    total_actions: int = 0
    max_total_actions: int = Field(20, ge=1)
    current_action: Optional[AtomicAction] = None
    last_observation: Optional[ScreenState] = None
    error: Optional[str] = None

    @property
    def current_goal(self) -> Optional[Goal]:
        if 0 <= self.current_goal_index < len(self.goals):
            return self.goals[self.current_goal_index]
        return None

    @property
    def budget_exhausted(self) -> bool:
        return self.total_actions >= self.max_total_actions

    def recent_history(self, n: int) -> List[ActionResult]:
        return list(self.action_history[-n:]) if n > 0 else []

    def snapshot(self) -> "AgentSession":
        return self.model_copy(deep=True)


class PlanSession(BaseModel):
    id: str = Field(default_factory=_new_id)
    task: str
    state: PlanState = PlanState.IDLE
    plan: Optional[Plan] = None
    step_count: int = 0
    max_steps: int = Field(50, ge=1)
    history: List[ToolResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def budget_exhausted(self) -> bool:
        return self.step_count >= self.max_steps

    def recent_history(self, n: int) -> List[ToolResult]:
        return list(self.history[-n:]) if n > 0 else []

    def snapshot(self) -> "PlanSession":
        return self.model_copy(deep=True)
