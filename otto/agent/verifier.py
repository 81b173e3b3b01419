from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from otto.agent.boundaries import LanguageModel, LLMCallType, ScreenObserver
from otto.agent.concurrency import settle
from otto.agent.parser import parse_verification
from otto.agent.prompts import verification_prompt
from otto.agent.views import AtomicAction, Goal, ScreenState, VerificationResult

logger = logging.getLogger(__name__)


class Verifier:
    """Before/after comparison of the screen through the reasoning model."""

    def __init__(
        self,
        observer: ScreenObserver,
        llm: LanguageModel,
        settle_seconds: float = 0.3,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        check_cancelled: Optional[Callable[[], None]] = None,
    ):
        self.observer = observer
        self.llm = llm
        self.settle_seconds = settle_seconds
        self._sleep = sleep or settle
        self._check_cancelled = check_cancelled or (lambda: None)
        self.last_after: Optional[ScreenState] = None

    async def verify(self, goal: Goal, action: AtomicAction, before: ScreenState) -> VerificationResult:
        await self._sleep(self.settle_seconds)
        self._check_cancelled()

        after = await self.observer.observe(goal.description)
        self.last_after = after
        self._check_cancelled()

        prompt = verification_prompt(goal.description, goal.success_criteria, before.description, after.description)
        response = await self.llm.ainvoke(prompt, LLMCallType.VERIFICATION)
        result = parse_verification(response, goal.id, action.id)
        logger.debug(
            f"Verification for '{goal.description}': achieved={result.goal_achieved}, "
            f"progress={result.progress_made}, observation={result.observation!r}"
        )
        return result
