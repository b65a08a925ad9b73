"""
Reasoning-model wire contracts.

``AUTOMATION_TOOLS`` are the function definitions offered in tool-calling
mode. ``ACTION_DECISION_FORMAT`` is the strict JSON-schema ``response_format``
used by the structured-decision mode.
"""

from typing import Any, Dict, List

from tabpilot.environment.actions import ACTION_TYPES, EXECUTABLE_ACTION_TYPES

CAPTURE_SCREENSHOT = "capture_screenshot"
ANALYZE_PAGE = "analyze_page"
GET_A11Y_TREE = "get_a11y_tree"
FIND_ELEMENT = "find_element"
EXECUTE_ACTION = "execute_action"
ASK_USER = "ask_user"
COMPLETE = "complete"

TOOL_NAMES = (
    CAPTURE_SCREENSHOT,
    ANALYZE_PAGE,
    GET_A11Y_TREE,
    FIND_ELEMENT,
    EXECUTE_ACTION,
    ASK_USER,
    COMPLETE,
)

TERMINAL_TOOLS = (ASK_USER, COMPLETE)


def _function(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        },
    }


AUTOMATION_TOOLS: List[Dict[str, Any]] = [
    _function(
        CAPTURE_SCREENSHOT,
        "Capture the current browser viewport as an image. Use this before any vision tools "
        "(analyze_page, find_element).",
        {},
        [],
    ),
    _function(
        ANALYZE_PAGE,
        "Analyze the current screenshot using the vision model. Returns a description based on "
        "your prompt. Requires capture_screenshot first.",
        {
            "prompt": {
                "type": "string",
                "description": "Instructions for the vision model (e.g., 'List all buttons and links on "
                "the page', 'Describe the login form', 'What products are shown?')",
            },
        },
        ["prompt"],
    ),
    _function(
        GET_A11Y_TREE,
        "Get the page's accessibility tree as indented text (roles, names and states of elements). "
        "Useful for reading form fields and exact labels without a screenshot.",
        {},
        [],
    ),
    _function(
        FIND_ELEMENT,
        "Find the exact x,y coordinates of a specific element. Use this before clicking to get "
        "precise coordinates. Requires capture_screenshot first.",
        {
            "target": {
                "type": "string",
                "description": "Description of the element to find (e.g., 'the blue Submit button', "
                "'search input field', 'first search result link')",
            },
        },
        ["target"],
    ),
    _function(
        EXECUTE_ACTION,
        "Execute a browser action.",
        {
            "action": {
                "type": "string",
                "enum": list(EXECUTABLE_ACTION_TYPES),
                "description": "The action to perform",
            },
            "x": {"type": "number", "description": "X coordinate for click (required for click)"},
            "y": {"type": "number", "description": "Y coordinate for click (required for click)"},
            "text": {"type": "string", "description": "Text to type (required for type)"},
            "key": {
                "type": "string",
                "description": "Key or combination to press (required for press), e.g. Enter, "
                "Escape, Tab, ArrowDown, ControlOrMeta+a",
            },
            "direction": {
                "type": "string",
                "enum": ["up", "down", "left", "right"],
                "description": "Scroll direction (required for scroll)",
            },
            "duration": {"type": "number", "description": "Wait duration in milliseconds (required for wait)"},
            "url": {"type": "string", "description": "URL to navigate to (required for navigate)"},
        },
        ["action"],
    ),
    _function(
        ASK_USER,
        "Pause automation ONLY when user must provide private info (passwords, 2FA codes) or solve "
        "captchas. Do NOT use for clarification or confirmation - figure it out yourself.",
        {
            "prompt": {
                "type": "string",
                "description": "What the user needs to provide (e.g., 'Please enter your password', "
                "'Please solve the captcha')",
            },
        },
        ["prompt"],
    ),
    _function(
        COMPLETE,
        "Mark the task as complete. Use when the goal has been achieved.",
        {"result": {"type": "string", "description": "Summary of what was accomplished"}},
        ["result"],
    ),
]


def _nullable(type_name: str) -> Dict[str, Any]:
    return {"type": [type_name, "null"]}


ACTION_DECISION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "actions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": list(ACTION_TYPES)},
                    "target": _nullable("string"),
                    "text": _nullable("string"),
                    "key": _nullable("string"),
                    "prompt": _nullable("string"),
                    "direction": {
                        "type": ["string", "null"],
                        "enum": ["up", "down", "left", "right", None],
                    },
                    "duration": _nullable("number"),
                    "url": _nullable("string"),
                    "result": _nullable("string"),
                },
                "required": ["action", "target", "text", "key", "prompt", "direction", "duration", "url", "result"],
                "additionalProperties": False,
            },
        },
        "visionFocus": _nullable("string"),
        "question": _nullable("string"),
        "confidence": {"type": "number"},
    },
    "required": ["reasoning", "actions", "visionFocus", "question", "confidence"],
    "additionalProperties": False,
}

ACTION_DECISION_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "action_decision",
        "strict": True,
        "schema": ACTION_DECISION_SCHEMA,
    },
}
