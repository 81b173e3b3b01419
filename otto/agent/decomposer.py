from __future__ import annotations

"""
Command decomposition: natural-language command -> ordered goals.

Common command shapes are matched locally against a fixed pattern table and
never touch the model; anything else goes through one decomposition call.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from otto.agent.boundaries import LanguageModel, LLMCallType
from otto.agent.parser import capitalize, parse_goals
from otto.agent.prompts import decomposition_prompt
from otto.agent.views import DecompositionInfo, Goal
from otto.exceptions import BoundaryError, DecompositionError, ParseError

logger = logging.getLogger(__name__)


def _goal(description: str, criteria: str, max_attempts: int) -> Goal:
    return Goal(description=description, success_criteria=criteria, max_attempts=max_attempts)


def build_search_goals(app: str, query: str, max_attempts: int = 3) -> List[Goal]:
    app = capitalize(app)
    query = query.strip()
    return [
        _goal(f"Open {app}", f"{app} window is visible and focused", max_attempts),
        _goal("Focus URL bar", "Cursor is in the URL/search input field", max_attempts),
        _goal(f"Type search query: {query}", f'"{query}" appears in the search field', max_attempts),
        _goal("Execute search", "Search results are displayed", max_attempts),
    ]


def _open_and_search(m: re.Match, max_attempts: int) -> List[Goal]:
    return build_search_goals(m.group(1), m.group(2), max_attempts)


def _search_in(m: re.Match, max_attempts: int) -> List[Goal]:
    return build_search_goals(m.group(2), m.group(1), max_attempts)


def _open_app(m: re.Match, max_attempts: int) -> List[Goal]:
    app = capitalize(m.group(1))
    return [_goal(f"Open {app}", f"{app} window is visible and focused", max_attempts)]


def _click(m: re.Match, max_attempts: int) -> List[Goal]:
    element = m.group(1).strip()
    return [_goal(f"Click on {element}", f"{element} has been clicked and responded", max_attempts)]


def _type(m: re.Match, max_attempts: int) -> List[Goal]:
    text = m.group(1).strip()
    return [_goal(f"Type: {text}", f'"{text}" has been typed', max_attempts)]


# Ordered: the first matching pattern wins
FAST_PATH_PATTERNS: List[Tuple[str, re.Pattern, Callable[[re.Match, int], List[Goal]]]] = [
    ("open_and_search", re.compile(r"open\s+(\w+)\s+and\s+search\s+(?:for\s+)?(.+)"), _open_and_search),
    ("search_in", re.compile(r"search\s+(.+?)\s+in\s+(\w+)"), _search_in),
    ("open_app", re.compile(r"^open\s+(\w+)$"), _open_app),
    ("click", re.compile(r"click\s+(?:on\s+)?(?:the\s+)?(.+)"), _click),
    ("type", re.compile(r"^type\s+(.+)$"), _type),
]


@dataclass
class DecomposeResult:
    goals: List[Goal]
    info: DecompositionInfo


def try_pattern_match(command: str, max_attempts: int = 3) -> Optional[Tuple[str, List[Goal]]]:
    """Match the lower-cased, trimmed command against the fast-path table."""
    normalized = command.strip().lower()
    for name, pattern, build in FAST_PATH_PATTERNS:
        m = pattern.search(normalized)
        if m:
            return name, build(m, max_attempts)
    return None


class Decomposer:
    def __init__(self, llm: LanguageModel, max_attempts: int = 3):
        self.llm = llm
        self.max_attempts = max_attempts

    async def decompose(self, command: str) -> DecomposeResult:
        matched = try_pattern_match(command, self.max_attempts)
        if matched is not None:
            name, goals = matched
            logger.info(f"⚡ Fast path '{name}' matched, produced {len(goals)} goal(s) without the model")
            return DecomposeResult(
                goals=goals,
                info=DecompositionInfo(method="pattern", pattern_name=name, original_command=command),
            )

        logger.info("🧩 No fast path matched, decomposing with the model")
        try:
            response = await self.llm.ainvoke(decomposition_prompt(command), LLMCallType.DECOMPOSITION)
        except BoundaryError as e:
            raise DecompositionError(f"Decomposition call failed: {e}") from e

        logger.debug(f"Decomposition response: {response!r}")
        try:
            goals = parse_goals(response, self.max_attempts)
        except ParseError as e:
            raise DecompositionError(str(e)) from e

        return DecomposeResult(
            goals=goals,
            info=DecompositionInfo(method="llm", original_command=command),
        )
