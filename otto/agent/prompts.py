"""Prompt templates for small local models.

Every prompt is short, example-driven and asks for a one-line (or one-JSON)
answer, because the models behind the reasoning boundary are tiny.
"""
from __future__ import annotations

ACTION_GRAMMAR = 'open APP, click X Y, type "TEXT", key KEY, key MOD+KEY, wait MS'


def decomposition_prompt(command: str) -> str:
    return f"""Break command into goals. FORMAT: "N. what to do | how to know it worked"

Command: open safari
Goals:
1. Open Safari browser | Safari window is visible

Command: open chrome and search for rust
Goals:
1. Open Chrome browser | Chrome window is visible
2. Focus URL bar | Cursor is in URL bar
3. Type "rust" | Text appears in URL bar
4. Press Enter | Search results page loads

Command: open finder and search for notes
Goals:
1. Open Finder | Finder window is visible
2. Open search (CMD+F) | Search field is active
3. Type "notes" | Text appears in search
4. Press Enter | Search results shown

Command: {command}
Goals:
"""


def action_decision_prompt(goal: str, screen: str, active_app: str, recent_actions: str) -> str:
    return f"""Pick ONE action. Output ONLY the action, nothing else.

Goal: {goal}

UI Elements on screen (with bounding boxes and center points):
{screen}

Active app: {active_app}
Recent actions: {recent_actions}

Actions:
{ACTION_GRAMMAR}

Rules:
- "Type search query: X" -> type "X" (extract X, use exact text)
- "Focus URL bar" -> key CMD+L
- "Execute search" or "Submit" -> key return
- "Open X" -> open X
- To click an element use its CENTER: click X Y

Examples:
Goal: Open Safari -> open Safari
Goal: Focus URL bar -> key CMD+L
Goal: Type search query: hello world -> type "hello world"
Goal: Execute search -> key return
Goal: Click the send button (center 450, 320) -> click 450 320

Goal: {goal} ->"""


def blind_action_prompt(goal: str) -> str:
    return f"""Goal: {goal}

Pick ONE action to achieve this goal.
Output ONLY the action, nothing else.

Actions:
- open APP_NAME (to open an app)
- click ELEMENT_DESCRIPTION (to click something - I'll find it on screen)
- type "TEXT" (to type text)
- key KEY (e.g., key return, key CMD+L)
- wait MS (to wait)

Examples:
- Open Safari: open Safari
- Click submit button: click submit button
- Type hello: type "hello"
- Press Cmd+L: key CMD+L

Action:"""


def find_element_prompt(element: str, screen: str) -> str:
    return f"""I need to click: "{element}"

UI Elements on screen:
{screen}

Find the best matching element and output ONLY: click X Y
Use the CENTER coordinates.

If no good match, output: not_found

Answer:"""


def verification_prompt(goal: str, success_criteria: str, before: str, after: str) -> str:
    return f"""Did the action achieve the goal?

Goal: {goal}
Success means: {success_criteria}
Before: {before}
After: {after}

Answer format:
ACHIEVED or NOT_ACHIEVED
PROGRESS or NO_PROGRESS
Brief observation (10 words max)

Answer:"""


def plan_prompt(task: str) -> str:
    return f"""Create a simple plan for this desktop task:

TASK: {task}

Rules:
- 2-4 steps maximum
- Each step = one clear action
- For browser: must include "focus URL bar" step before typing

Examples:
Task: open safari and search rust
1. Open Safari
2. Focus URL bar (Cmd+L)
3. Type query and search

Task: open notes
1. Open Notes app

Output ONLY numbered steps:"""


def step_tools_prompt(task: str, step: str) -> str:
    return f"""What tools are needed for this step? Output a JSON array.

TASK: {task}
STEP: {step}

Available tools:
- open_app: {{"name": "AppName"}}
- key: {{"key": "l", "modifiers": ["cmd"]}} or {{"key": "return"}}
- type: {{"text": "search query"}}
- wait: {{"ms": 500}}

Examples:
Step: "Open Safari" -> [{{"tool": "open_app", "params": {{"name": "Safari"}}}}, {{"tool": "wait", "params": {{"ms": 500}}}}]
Step: "Focus URL bar" -> [{{"tool": "key", "params": {{"key": "l", "modifiers": ["cmd"]}}}}]
Step: "Type hello and search" -> [{{"tool": "type", "params": {{"text": "hello"}}}}, {{"tool": "key", "params": {{"key": "return"}}}}]

Output ONLY the JSON array:
"""


NEXT_TOOL_INSTRUCTIONS = """TOOLS:
- open_app {"name": "Safari"}: Open an application
- key {"key": "l", "modifiers": ["cmd"]}: Press key combo (for URL bar: cmd+l)
- type {"text": "hello"}: Type text
- key {"key": "return"}: Press enter
- wait {"ms": 500}: Wait
- screenshot: Look at the screen
- step_done: Mark current step DONE and move to next
- done {"summary": "..."}: The whole task is finished
- fail {"reason": "..."}: The task cannot be completed

CRITICAL RULES:
1. If action shows "-> OK", it WORKED. Move to NEXT action, never repeat!
2. After completing all actions for current step, use step_done
3. Browser search flow: open_app -> wait -> key cmd+l -> type -> key return -> step_done

What is the NEXT action? Output JSON:
{"tool": "...", "params": {...}}

JSON:"""
