from __future__ import annotations

import logging
from typing import Callable, List, Optional

from otto.agent.boundaries import LanguageModel, LLMCallType
from otto.agent.parser import AppFinder, parse_action, parse_click_action
from otto.agent.prompts import action_decision_prompt, blind_action_prompt, find_element_prompt
from otto.agent.views import ActionResult, ActionType, AtomicAction, Goal, ScreenState

logger = logging.getLogger(__name__)


def format_recent_actions(history: List[ActionResult]) -> str:
    """Render recent results as 'OK: id' / 'FAIL: id - err', or 'None'."""
    if not history:
        return "None"
    lines = []
    for result in history:
        if result.success:
            lines.append(f"OK: {result.action_id}")
        else:
            lines.append(f"FAIL: {result.action_id} - {result.error_message or 'unknown error'}")
    return "\n".join(lines)


class Thinker:
    """The decision step: one model call in, one parsed action out.

    Transport failures surface as ``LLMException`` and unusable text as
    ``ParseError``; the caller decides whether that costs an attempt.
    """

    def __init__(
        self,
        llm: LanguageModel,
        app_finder: Optional[AppFinder] = None,
        check_cancelled: Optional[Callable[[], None]] = None,
    ):
        self.llm = llm
        self.app_finder = app_finder
        self._check_cancelled = check_cancelled or (lambda: None)

    async def decide_action(self, goal: Goal, screen: ScreenState, recent: List[ActionResult]) -> AtomicAction:
        prompt = action_decision_prompt(
            goal.description,
            screen.format_ui_elements(),
            screen.active_app or "Unknown",
            format_recent_actions(recent),
        )
        response = await self.llm.ainvoke(prompt, LLMCallType.ACTION_DECISION)
        logger.debug(f"Decision response for '{goal.description}': {response!r}")
        action = parse_action(response, goal.description, self.app_finder)

        if action.action_type == ActionType.FIND_AND_CLICK:
            self._check_cancelled()
            action = await self.resolve_find_and_click(goal, action.params.element, screen)
        return action

    async def decide_action_blind(self, goal: Goal) -> AtomicAction:
        """Decide without an observation; find-and-click is left unresolved."""
        response = await self.llm.ainvoke(blind_action_prompt(goal.description), LLMCallType.ACTION_DECISION)
        return parse_action(response, goal.description, self.app_finder)

    async def resolve_find_and_click(self, goal: Goal, element: str, screen: ScreenState) -> AtomicAction:
        logger.info(f"🔎 Resolving '{element}' against {len(screen.ui_elements)} UI element(s)")
        prompt = find_element_prompt(element, screen.format_ui_elements())
        response = await self.llm.ainvoke(prompt, LLMCallType.ACTION_DECISION)
        return parse_click_action(response, goal.description, element)
