"""Function-calling tool schemas and conversion of tool calls into actions."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from agent_types import Action, CompletionQuality, PageAction, PlanOutput, ValidationOutcome
from prompts import PARAMETER_DESCRIPTIONS, TOOL_DESCRIPTIONS

PLAN_TOOL_NAME = "create_plan"
VALIDATE_TOOL_NAME = "validate_task"


def _function(name: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": TOOL_DESCRIPTIONS[name],
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        },
    }


def _string(description_key: str) -> Dict[str, str]:
    return {"type": "string", "description": PARAMETER_DESCRIPTIONS[description_key]}


_REF = _string("ref")


def build_web_action_tools() -> List[Dict[str, Any]]:
    """Schemas for every :class:`PageAction`, in the order the prompts list them."""
    ref_only = ["click", "hover", "check", "uncheck", "focus", "enter"]
    tools = [_function(name, {"ref": _REF}, ["ref"]) for name in ref_only]
    tools += [
        _function("fill", {"ref": _REF, "value": _string("text")}, ["ref", "value"]),
        _function("fill_and_enter", {"ref": _REF, "value": _string("text")}, ["ref", "value"]),
        _function("select", {"ref": _REF, "value": _string("option")}, ["ref", "value"]),
        _function(
            "wait",
            {"seconds": {"type": "number", "minimum": 0, "maximum": 30, "description": PARAMETER_DESCRIPTIONS["seconds"]}},
            ["seconds"],
        ),
        _function("goto", {"url": _string("url")}, ["url"]),
        _function("back", {}, []),
        _function("forward", {}, []),
        _function("extract", {"description": _string("description")}, ["description"]),
        _function("web_search", {"query": _string("query")}, ["query"]),
        _function("done", {"result": _string("result")}, ["result"]),
        _function("abort", {"reason": _string("reason")}, ["reason"]),
    ]
    return tools


def build_plan_tool(require_url: bool) -> Dict[str, Any]:
    properties = {
        "success_criteria": _string("success_criteria"),
        "plan": _string("plan"),
        "action_items": {
            "type": "array",
            "items": {"type": "string"},
            "description": PARAMETER_DESCRIPTIONS["action_items"],
        },
        "url": _string("start_url"),
    }
    required = ["success_criteria", "plan"] + (["url"] if require_url else [])
    return _function(PLAN_TOOL_NAME, properties, required)


def build_validation_tool() -> Dict[str, Any]:
    properties = {
        "task_assessment": _string("task_assessment"),
        "completion_quality": {
            "type": "string",
            "enum": [quality.value for quality in CompletionQuality],
            "description": PARAMETER_DESCRIPTIONS["completion_quality"],
        },
        "feedback": _string("feedback"),
    }
    return _function(VALIDATE_TOOL_NAME, properties, ["task_assessment", "completion_quality"])


WEB_ACTION_TOOLS = build_web_action_tools()
WEB_ACTION_NAMES = frozenset(PageAction.values())


def action_tools(include_search: bool) -> List[Dict[str, Any]]:
    """The action tools offered to the model; web_search only when a search provider is set."""
    if include_search:
        return WEB_ACTION_TOOLS
    return [tool for tool in WEB_ACTION_TOOLS if tool["function"]["name"] != PageAction.WEB_SEARCH.value]


# ─────────────────────────────────────────────────────────────────────────────
# Tool call decoding
# ─────────────────────────────────────────────────────────────────────────────


def parse_arguments(arguments: Optional[str]) -> Dict[str, Any]:
    """Decode tool call arguments. Empty arguments mean no parameters.

    Raises:
        ValueError: If the arguments are not a JSON object.
    """
    if arguments is None or not arguments.strip():
        return {}
    decoded = json.loads(arguments)
    if not isinstance(decoded, dict):
        raise ValueError(f"Tool arguments must be a JSON object, got {type(decoded).__name__}")
    return decoded


def tool_call_to_action(name: str, arguments: Optional[str]) -> Action:
    return Action.from_arguments(name, parse_arguments(arguments))


def tool_call_to_plan(arguments: Optional[str]) -> PlanOutput:
    data = parse_arguments(arguments)
    plan = data.get("plan")
    if not plan:
        raise ValueError("create_plan requires a non-empty 'plan'")
    items = data.get("action_items") or []
    return PlanOutput(
        plan=str(plan),
        success_criteria=str(data.get("success_criteria") or ""),
        url=data.get("url") or None,
        action_items=[str(item) for item in items],
    )


def tool_call_to_validation(arguments: Optional[str]) -> ValidationOutcome:
    data = parse_arguments(arguments)
    return ValidationOutcome(
        task_assessment=str(data.get("task_assessment") or ""),
        completion_quality=CompletionQuality(data.get("completion_quality")),
        feedback=data.get("feedback") or None,
    )
