from __future__ import annotations

"""
Planning for the plan variant: task -> short Plan, plan step -> tool batch.

Step resolution tries a few deterministic patterns before asking the model
for a JSON array of tools.
"""
import logging
import re
from typing import Any, List, Optional

from otto.agent.boundaries import LanguageModel, LLMCallType
from otto.agent.parser import capitalize, parse_plan, parse_tool_response, parse_tools_array
from otto.agent.prompts import NEXT_TOOL_INSTRUCTIONS, plan_prompt, step_tools_prompt
from otto.agent.views import (
    KeyParams,
    KeyTool,
    MsParams,
    NameParams,
    OpenAppTool,
    Plan,
    PlanSession,
    TextParams,
    TypeTool,
    WaitTool,
    format_output,
)
from otto.exceptions import BoundaryError, ParseError, PlanningError

logger = logging.getLogger(__name__)

SUBMIT_WORDS = ("search", "submit", "enter")


def extract_search_query(task: str) -> Optional[str]:
    """'open safari and search for rust in google' -> 'rust'."""
    match = re.search(r"search\s+", task, re.IGNORECASE)
    if match is None:
        return None
    query = task[match.end():].strip()
    query = re.sub(r"^for ", "", query, flags=re.IGNORECASE)
    cut = re.search(r" in ", query, re.IGNORECASE)
    if cut is not None:
        query = query[:cut.start()]
    query = query.strip()
    return query or None


def match_step_pattern(step: str, task: str, open_app_wait_ms: int = 500) -> Optional[List[Any]]:
    """Resolve common step shapes without the model; None if nothing matches."""
    step_lower = step.lower()

    if step_lower.startswith("open "):
        app = capitalize(step[len("open "):].strip())
        return [
            OpenAppTool(params=NameParams(name=app)),
            WaitTool(params=MsParams(ms=open_app_wait_ms)),
        ]

    if "url bar" in step_lower or "address bar" in step_lower or ("focus" in step_lower and "cmd+l" in step_lower):
        return [KeyTool(params=KeyParams(key="l", modifiers=["cmd"]))]

    if "type" in step_lower and ("search" in step_lower or "enter" in step_lower):
        query = extract_search_query(task) or "search"
        return [
            TypeTool(params=TextParams(text=query)),
            KeyTool(params=KeyParams(key="return")),
        ]

    return None


def ensure_submit_key(step: str, tools: List[Any]) -> List[Any]:
    """Append key(return) to a model-made batch that types a search but never submits it."""
    step_lower = step.lower()
    if not any(word in step_lower for word in SUBMIT_WORDS):
        return tools
    has_type = any(t.tool == "type" for t in tools)
    has_return = any(t.tool == "key" and t.params.key.lower() == "return" for t in tools)
    if has_type and not has_return:
        logger.debug(f"Adding missing return key to batch for step '{step}'")
        return tools + [KeyTool(params=KeyParams(key="return"))]
    return tools


async def create_plan(llm: LanguageModel, task: str) -> Plan:
    try:
        response = await llm.ainvoke(plan_prompt(task), LLMCallType.PLANNING)
    except BoundaryError as e:
        raise PlanningError(f"Planning call failed: {e}") from e
    try:
        plan = parse_plan(task, response)
    except ParseError as e:
        raise PlanningError(str(e)) from e
    logger.info(f"📝 Plan with {len(plan.steps)} step(s):\n{plan.format()}")
    return plan


async def plan_step_tools(llm: LanguageModel, task: str, step: str, open_app_wait_ms: int = 500) -> List[Any]:
    """Tool batch for one step. Raises BoundaryError or ParseError when unresolved."""
    tools = match_step_pattern(step, task, open_app_wait_ms)
    if tools is not None:
        logger.debug(f"Step '{step}' resolved by pattern to {len(tools)} tool(s)")
        return tools

    response = await llm.ainvoke(step_tools_prompt(task, step), LLMCallType.TOOL_DECISION)
    logger.debug(f"Step tools response: {response!r}")
    return ensure_submit_key(step, parse_tools_array(response))


def build_tool_prompt(session: PlanSession, history_window: int = 5) -> str:
    parts = [f"TASK: {session.task}", ""]

    if session.plan is not None:
        parts.append("PLAN:")
        parts.append(session.plan.format())
        parts.append("")
        current = session.plan.current_step_desc()
        if current:
            parts.append(f"CURRENT STEP: {current}")
            parts.append("")

    recent = session.recent_history(history_window)
    if recent:
        parts.append("DONE SO FAR:")
        for result in recent:
            if result.success:
                status = format_output(result.output) if result.output is not None else "OK"
            else:
                status = f"FAILED - {result.error or 'unknown error'}"
            parts.append(f"- {result.tool} -> {status}")
        parts.append("")

    parts.append(NEXT_TOOL_INSTRUCTIONS)
    return "\n".join(parts)


async def decide_next_tool(llm: LanguageModel, session: PlanSession, history_window: int = 5) -> Any:
    response = await llm.ainvoke(build_tool_prompt(session, history_window), LLMCallType.TOOL_DECISION)
    return parse_tool_response(response)
