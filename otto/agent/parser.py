from __future__ import annotations

"""
Tiered parsers for free-text model output.

Each input kind has an ordered tier table; the first tier that matches wins.
The tables are module-level so each tier can be inspected and exercised on
its own. All functions here are pure: the same text always parses to the
same result (modulo freshly generated ids).
"""
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from otto.agent.views import (
    AtomicAction,
    ClickTool,
    DoneTool,
    DoubleClickTool,
    FailTool,
    FindAndClickParams,
    Goal,
    KeyParams,
    KeyTool,
    MouseClickParams,
    MsParams,
    NameParams,
    OpenAppParams,
    OpenAppTool,
    Plan,
    PressKeyParams,
    ReasonParams,
    ScreenshotTool,
    ScrollParams,
    ScrollTool,
    StepDoneTool,
    SummaryParams,
    TextParams,
    TOOL_ADAPTER,
    TypeTextParams,
    TypeTool,
    VerificationResult,
    WaitParams,
    WaitTool,
    XYParams,
)
from otto.exceptions import ParseError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Goal list: "N. desc | criteria" > "N. desc - criteria" > "N. desc"
# ---------------------------------------------------------------------------

GOAL_TIERS: List[Tuple[str, re.Pattern]] = [
    ("pipe", re.compile(r"^\d+\.\s*(.+?)\s*\|\s*(.+)$")),
    ("dash", re.compile(r"^\d+\.\s*(.+?)\s+-\s+(.+)$")),
    ("simple", re.compile(r"^\d+\.\s*(.+)$")),
]

GOAL_META_PHRASES = ("no specific", "goals listed")


def parse_goal_line(line: str) -> Optional[Tuple[str, str, str]]:
    """Return (tier, description, success_criteria) for one line, or None."""
    line = line.strip()
    if not line:
        return None
    for tier, pattern in GOAL_TIERS:
        m = pattern.match(line)
        if not m:
            continue
        description = m.group(1).strip()
        if not description:
            continue
        if any(p in description.lower() for p in GOAL_META_PHRASES):
            return None
        if tier == "simple":
            return tier, description, f"{description} is completed"
        criteria = m.group(2).strip()
        if criteria:
            return tier, description, criteria
    return None


def parse_goals(response: str, max_attempts: int = 3) -> List[Goal]:
    goals: List[Goal] = []
    for line in response.splitlines():
        parsed = parse_goal_line(line)
        if parsed is None:
            continue
        tier, description, criteria = parsed
        logger.debug(f"Goal line matched tier '{tier}': {description!r}")
        goals.append(Goal(description=description, success_criteria=criteria, max_attempts=max_attempts))
    if not goals:
        raise ParseError(f"Could not parse goals from LLM response: {response!r}")
    return goals


# ---------------------------------------------------------------------------
# Single action (first line only)
# ---------------------------------------------------------------------------

_APP_SUFFIXES = (" browser", " application", " app")

_APP_ALIASES = {
    "safari": "Safari",
    "chrome": "Google Chrome",
    "google chrome": "Google Chrome",
    "firefox": "Firefox",
    "mozilla firefox": "Firefox",
    "finder": "Finder",
    "terminal": "Terminal",
    "vscode": "Visual Studio Code",
    "vs code": "Visual Studio Code",
    "visual studio code": "Visual Studio Code",
    "kakao": "KakaoTalk",
    "kakaotalk": "KakaoTalk",
}

AppFinder = Callable[[str], Optional[str]]


def capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def normalize_app_name(raw: str, app_finder: Optional[AppFinder] = None) -> str:
    """Strip filler suffixes, then resolve via installed apps, aliases, or capitalization."""
    cleaned = raw.strip().lower()
    stripped = True
    while stripped:
        stripped = False
        for suffix in _APP_SUFFIXES:
            if cleaned.endswith(suffix):
                cleaned = cleaned[: -len(suffix)].strip()
                stripped = True
    if app_finder is not None:
        found = app_finder(cleaned)
        if found:
            logger.debug(f"Found app '{found}' for query '{raw}'")
            return found
    return _APP_ALIASES.get(cleaned, capitalize(cleaned))


def parse_key_combo(combo: str) -> Tuple[str, List[str]]:
    """'CMD+SHIFT+N' -> ('n', ['cmd', 'shift']); the last token is the key."""
    parts = [p.strip().lower() for p in combo.split("+") if p.strip()]
    if not parts:
        return combo.strip().lower(), []
    return parts[-1], parts[:-1]


_COORD_PAIR = re.compile(r"^(\d+)[,\s]+(\d+)$")


def _open_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    app = normalize_app_name(m.group(1), app_finder)
    return AtomicAction.create(OpenAppParams(app_name=app), f"Opening {app} for: {goal}")


def _click_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    target = m.group(1).strip()
    coords = _COORD_PAIR.match(target)
    if coords:
        x, y = int(coords.group(1)), int(coords.group(2))
        return AtomicAction.create(MouseClickParams(x=x, y=y), f"Clicking at ({x}, {y}) for: {goal}")
    return AtomicAction.create(
        FindAndClickParams(element=target),
        f"Finding and clicking '{target}' for: {goal}",
    )


def _type_quoted_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    original = re.match(r'^type\s+"([^"]+)"$', raw, re.IGNORECASE)
    text = original.group(1) if original else m.group(1)
    return AtomicAction.create(TypeTextParams(text=text), f"Typing '{text}' for: {goal}")


def _type_unquoted_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    original = re.match(r"^type\s+(.+)$", raw, re.IGNORECASE)
    text = original.group(1).strip() if original else m.group(1).strip()
    return AtomicAction.create(TypeTextParams(text=text), f"Typing '{text}' for: {goal}")


def _key_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    combo = m.group(1).strip()
    key, modifiers = parse_key_combo(combo)
    return AtomicAction.create(PressKeyParams(key=key, modifiers=modifiers), f"Pressing {combo} for: {goal}")


def _wait_action(m: re.Match, raw: str, goal: str, app_finder: Optional[AppFinder]) -> AtomicAction:
    ms = int(m.group(1))
    return AtomicAction.create(WaitParams(ms=ms), f"Waiting {ms}ms for: {goal}")


ActionBuilder = Callable[[re.Match, str, str, Optional[AppFinder]], AtomicAction]

ACTION_TIERS: List[Tuple[str, re.Pattern, ActionBuilder]] = [
    ("open", re.compile(r"^open\s+(.+)$"), _open_action),
    ("click", re.compile(r"^click\s+(.+)$"), _click_action),
    ("type_quoted", re.compile(r'^type\s+"([^"]+)"$'), _type_quoted_action),
    ("type_unquoted", re.compile(r"^type\s+(.+)$"), _type_unquoted_action),
    ("key", re.compile(r"^key\s+(.+)$"), _key_action),
    ("wait", re.compile(r"^wait\s+(\d+)$"), _wait_action),
]

ACTION_GRAMMAR_HINT = 'open APP, click X Y|ELEMENT, type "text", key KEY, or wait MS'


def _first_line(response: str) -> str:
    lines = response.strip().splitlines()
    return lines[0].strip() if lines else ""


def parse_action(response: str, goal: str = "", app_finder: Optional[AppFinder] = None) -> AtomicAction:
    raw = _first_line(response)
    line = raw.lower()
    for tier, pattern, build in ACTION_TIERS:
        m = pattern.match(line)
        if m:
            logger.debug(f"Action line matched tier '{tier}': {raw!r}")
            return build(m, raw, goal, app_finder)
    raise ParseError(f"Could not parse action from response: '{line}'. Expected: {ACTION_GRAMMAR_HINT}")


# ---------------------------------------------------------------------------
# Coordinates (element finding)
# ---------------------------------------------------------------------------

COORDINATE_TIERS: List[Tuple[str, re.Pattern, bool]] = [
    # (name, pattern, applies to the digit-led cleaned text)
    ("adjacent", re.compile(r"(\d{1,4})[,\s]+(\d{1,4})"), True),
    ("labeled", re.compile(r"x\s*[=:]\s*(\d+).*?y\s*[=:]\s*(\d+)", re.IGNORECASE), False),
    ("parenthesized", re.compile(r"\((\d+)[,\s]+(\d+)\)"), False),
]


def parse_coordinates(response: str) -> Tuple[int, int]:
    text = response.strip()
    cleaned = re.sub(r"^\D+", "", text)
    for tier, pattern, use_cleaned in COORDINATE_TIERS:
        m = pattern.search(cleaned if use_cleaned else text)
        if m:
            logger.debug(f"Coordinates matched tier '{tier}'")
            return int(m.group(1)), int(m.group(2))
    raise ParseError(f"Could not parse coordinates from: '{text}'")


_CLICK_XY = re.compile(r"^click\s+(\d+)\s+(\d+)$")


def parse_click_action(response: str, goal: str, element: str) -> AtomicAction:
    """Second pass of find-and-click: resolve an element description to a click."""
    line = _first_line(response).lower()
    m = _CLICK_XY.match(line)
    if m:
        x, y = int(m.group(1)), int(m.group(2))
    elif "not_found" in line or "no match" in line:
        raise ParseError(f"Could not find '{element}' on screen")
    else:
        try:
            x, y = parse_coordinates(response)
        except ParseError:
            raise ParseError(
                f"Could not parse click action from response: '{line}'. Expected: click X Y or not_found"
            ) from None
    return AtomicAction.create(
        MouseClickParams(x=x, y=y),
        f"Clicking '{element}' at ({x}, {y}) for: {goal}",
    )


# ---------------------------------------------------------------------------
# Verification verdict (never fails)
# ---------------------------------------------------------------------------

_OBSERVATION_PREFIX = re.compile(r"observation\s*:\s*(.+)", re.IGNORECASE)


def extract_observation(response: str) -> str:
    m = _OBSERVATION_PREFIX.search(response)
    if m and m.group(1).strip():
        return m.group(1).strip()
    for line in reversed(response.splitlines()):
        if line.strip():
            return line.strip()
    return "No observation"


def parse_verification(response: str, goal_id: str = "", action_id: str = "") -> VerificationResult:
    lower = response.lower()
    goal_achieved = "achieved" in lower and "not_achieved" not in lower and "not achieved" not in lower
    progress_made = "progress" in lower and "no_progress" not in lower and "no progress" not in lower
    return VerificationResult(
        goal_id=goal_id,
        action_id=action_id,
        goal_achieved=goal_achieved,
        progress_made=progress_made,
        observation=extract_observation(response),
    )


# ---------------------------------------------------------------------------
# Tools (plan variant)
# ---------------------------------------------------------------------------


def _get_str(params: Dict[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    return value if isinstance(value, str) else None


def _get_int(params: Dict[str, Any], key: str) -> Optional[int]:
    value = params.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _get_modifiers(params: Dict[str, Any]) -> Optional[List[str]]:
    value = params.get("modifiers")
    if not isinstance(value, list):
        return None
    return [v for v in value if isinstance(v, str)]


def _wait_ms(params: Dict[str, Any]) -> int:
    ms = _get_int(params, "ms")
    return ms if ms is not None and ms >= 0 else 500


# Batch entries: missing params fall back to defaults instead of failing
_BATCH_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "open_app": lambda p: OpenAppTool(params=NameParams(name=_get_str(p, "name") or "Safari")),
    "key": lambda p: KeyTool(params=KeyParams(key=_get_str(p, "key") or "return", modifiers=_get_modifiers(p))),
    "type": lambda p: TypeTool(params=TextParams(text=_get_str(p, "text") or "")),
    "wait": lambda p: WaitTool(params=MsParams(ms=_wait_ms(p))),
    "click": lambda p: ClickTool(params=XYParams(x=_get_int(p, "x") or 0, y=_get_int(p, "y") or 0)),
    "step_done": lambda p: StepDoneTool(),
    "done": lambda p: DoneTool(params=SummaryParams(summary=_get_str(p, "summary") or "Task completed")),
    "fail": lambda p: FailTool(params=ReasonParams(reason=_get_str(p, "reason") or "Unknown error")),
}


def _bracketed(response: str, open_ch: str, close_ch: str) -> Optional[str]:
    start = response.find(open_ch)
    end = response.rfind(close_ch)
    if start == -1 or end == -1 or end < start:
        return None
    return response[start:end + 1]


def parse_tools_array(response: str) -> List[Any]:
    """Parse a JSON array of {tool, params}; unknown tools are dropped."""
    text = response.strip()
    if text.find("[") == -1:
        raise ParseError("No JSON array found")
    json_str = _bracketed(text, "[", "]")
    if json_str is None:
        raise ParseError("No closing bracket found")
    try:
        arr = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse JSON array: {e}") from e
    if not isinstance(arr, list):
        raise ParseError("JSON payload is not an array")

    tools: List[Any] = []
    for obj in arr:
        if not isinstance(obj, dict):
            continue
        name = obj.get("tool")
        build = _BATCH_BUILDERS.get(name) if isinstance(name, str) else None
        if build is None:
            logger.debug(f"Dropping unknown tool entry: {obj!r}")
            continue
        params = obj.get("params")
        tools.append(build(params if isinstance(params, dict) else {}))

    if not tools:
        raise ParseError("No valid tools found in array")
    return tools


def _require_str(params: Dict[str, Any], key: str, tool: str, what: str) -> str:
    value = _get_str(params, key)
    if value is None:
        raise ParseError(f"{tool} requires {what}")
    return value


def _require_int(params: Dict[str, Any], key: str, tool: str) -> int:
    value = _get_int(params, key)
    if value is None:
        raise ParseError(f"{tool} requires {key} coordinate")
    return value


def _scroll_tool(p: Dict[str, Any]) -> ScrollTool:
    direction = _get_str(p, "direction")
    if direction not in ("up", "down", "left", "right"):
        direction = "down"
    amount = _get_int(p, "amount")
    return ScrollTool(params=ScrollParams(direction=direction, amount=3 if amount is None else amount))


# Single-tool answers: required params are enforced
_SINGLE_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "screenshot": lambda p: ScreenshotTool(),
    "click": lambda p: ClickTool(params=XYParams(x=_require_int(p, "x", "click"), y=_require_int(p, "y", "click"))),
    "double_click": lambda p: DoubleClickTool(
        params=XYParams(x=_require_int(p, "x", "double_click"), y=_require_int(p, "y", "double_click"))
    ),
    "type": lambda p: TypeTool(params=TextParams(text=_require_str(p, "text", "type", "text"))),
    "key": lambda p: KeyTool(
        params=KeyParams(key=_require_str(p, "key", "key", "key name"), modifiers=_get_modifiers(p))
    ),
    "wait": lambda p: WaitTool(params=MsParams(ms=_wait_ms(p))),
    "open_app": lambda p: OpenAppTool(params=NameParams(name=_require_str(p, "name", "open_app", "name"))),
    "scroll": _scroll_tool,
    "step_done": lambda p: StepDoneTool(),
    "done": lambda p: DoneTool(params=SummaryParams(summary=_get_str(p, "summary") or "Task completed")),
    "fail": lambda p: FailTool(params=ReasonParams(reason=_get_str(p, "reason") or "Unknown error")),
}


def parse_tool_response(response: str) -> Any:
    """Parse one JSON tool object: strict schema first, then a lenient read."""
    text = response.strip()
    json_str = _bracketed(text, "{", "}") or text

    try:
        return TOOL_ADAPTER.validate_json(json_str)
    except ValidationError:
        pass

    try:
        obj = json.loads(json_str)
    except json.JSONDecodeError:
        obj = None

    if isinstance(obj, dict) and isinstance(obj.get("tool"), str):
        name = obj["tool"]
        build = _SINGLE_BUILDERS.get(name)
        if build is None:
            raise ParseError(f"Unknown tool: {name}")
        params = obj.get("params")
        return build(params if isinstance(params, dict) else {})

    raise ParseError(f"Failed to parse tool from response: {text}")


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def parse_plan(task: str, response: str) -> Plan:
    steps: List[str] = []
    for line in response.splitlines():
        line = line.strip()
        idx = line.find(".")
        if idx <= 0:
            continue
        if re.fullmatch(r"[0-9]+", line[:idx].strip()):
            description = line[idx + 1:].strip()
            if description:
                steps.append(description)

    if not steps:
        # No numbering detected: every non-empty, non-heading line is a step
        steps = [line.strip() for line in response.splitlines() if line.strip() and not line.strip().startswith("#")]

    if not steps:
        raise ParseError("Could not parse plan from response")
    return Plan.new(task, steps)
