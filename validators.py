"""Validation of model-proposed actions and recovery of repeated tool-call payloads."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agent_types import PageAction

# ─────────────────────────────────────────────────────────────────────────────
# Action validation
# ─────────────────────────────────────────────────────────────────────────────

REQUIRES_REF = frozenset(
    {
        PageAction.CLICK,
        PageAction.HOVER,
        PageAction.FILL,
        PageAction.FOCUS,
        PageAction.CHECK,
        PageAction.UNCHECK,
        PageAction.SELECT,
        PageAction.ENTER,
        PageAction.FILL_AND_ENTER,
    }
)
REQUIRES_VALUE = frozenset(
    {
        PageAction.FILL,
        PageAction.FILL_AND_ENTER,
        PageAction.SELECT,
        PageAction.WAIT,
        PageAction.DONE,
        PageAction.GOTO,
        PageAction.EXTRACT,
        PageAction.WEB_SEARCH,
    }
)
NO_REF_OR_VALUE = frozenset({PageAction.BACK, PageAction.FORWARD})


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class RefValidation:
    is_valid: bool
    error: Optional[str] = None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value).strip())
    except ValueError:
        return False
    return True


class ActionValidator:
    """Checks a decoded tool-call payload before it reaches the browser.

    Structural rules come from the action kind: which kinds need a ``ref``,
    which need a ``value`` and which take neither. A ref is additionally
    checked against the most recent page snapshot, so the model cannot act on
    an element it has not been shown.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("validators")
        self.page_snapshot: Optional[str] = None

    def update_page_snapshot(self, snapshot: str) -> None:
        self.page_snapshot = snapshot

    def validate_aria_ref(self, ref: Optional[str]) -> RefValidation:
        if ref is None or not str(ref).strip():
            return RefValidation(False, "Aria ref cannot be empty")
        if self.page_snapshot is None:
            return RefValidation(False, "Cannot validate ref: no page snapshot available")
        trimmed = str(ref).strip()
        if f"[ref={trimmed}]" not in self.page_snapshot:
            return RefValidation(
                False,
                f'Reference "{trimmed}" not found on current page. '
                "Please use a valid ref from the page snapshot.",
            )
        return RefValidation(True)

    def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        """Validate ``{"action": {"action", "ref"?, "value"?}}``."""
        action = payload.get("action") if isinstance(payload, dict) else None
        if not isinstance(action, dict) or _is_blank(action.get("action")):
            return ValidationResult(False, ['Missing or empty "action.action" field'])
        return self.validate_action(action.get("action"), action.get("ref"), action.get("value"))

    def validate_action(self, kind: str, ref: Any = None, value: Any = None) -> ValidationResult:
        if _is_blank(kind):
            return ValidationResult(False, ['Missing or empty "action.action" field'])
        try:
            action = PageAction(kind)
        except ValueError:
            valid = ", ".join(PageAction.values())
            return ValidationResult(False, [f'Invalid action type "{kind}". Valid actions: {valid}'])

        errors: List[str] = []
        if action in REQUIRES_REF:
            if _is_blank(ref):
                errors.append(f'Action "{kind}" requires a "ref" field')
            else:
                ref_check = self.validate_aria_ref(ref)
                if not ref_check.is_valid:
                    errors.append(f'Invalid ref for "{kind}" action: {ref_check.error}')

        if action in REQUIRES_VALUE:
            if action == PageAction.WAIT:
                if _is_blank(value) or not _is_numeric(value):
                    errors.append('Action "wait" requires a numeric "value" field (seconds to wait)')
            elif _is_blank(value):
                errors.append(f'Action "{kind}" requires a non-empty "value" field')

        if action in NO_REF_OR_VALUE and (_is_present(ref) or _is_present(value)):
            errors.append(f'Action "{kind}" should not have "ref" or "value" fields')

        if errors:
            self.logger.debug(f"Rejected action {kind}: {errors}")
        return ValidationResult(not errors, errors)


# ─────────────────────────────────────────────────────────────────────────────
# Repetition recovery
# ─────────────────────────────────────────────────────────────────────────────

REPETITION_FEEDBACK = (
    "You repeated the same function call multiple times. "
    "Call each function exactly once with proper JSON arguments."
)


@dataclass
class RepetitionResult:
    cleaned: str
    was_repeated: bool
    feedback_message: Optional[str] = None


def _first_json_object(text: str) -> Optional[str]:
    depth = 0
    start = text.find("{")
    if start < 0:
        return None
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


class RepetitionValidator:
    """Recovers tool-call arguments where the model emitted the same JSON object twice.

    Some models stream ``{...}{...}`` for a single call. The first balanced
    object is kept when it parses; anything else is returned unchanged so
    regular validation can reject it.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("validators")

    @staticmethod
    def is_repeated(text: str) -> bool:
        return "}{" in text

    def clean(self, text: str) -> RepetitionResult:
        if not self.is_repeated(text):
            return RepetitionResult(text, False)

        self.logger.warning("Detected repeated JSON objects in tool call arguments")
        candidate = _first_json_object(text)
        if candidate is not None:
            try:
                json.loads(candidate)
            except json.JSONDecodeError:
                candidate = None
        if candidate is None:
            self.logger.warning("Could not recover a valid JSON object from repeated arguments")
            return RepetitionResult(text, False)

        self.logger.warning(f"Recovered first JSON object ({len(candidate)} of {len(text)} chars)")
        return RepetitionResult(candidate, True, REPETITION_FEEDBACK)

    def validate_tool_calls(self, tool_calls: List[Any]) -> List[RepetitionResult]:
        """Clean the ``arguments`` of every tool call in place."""
        results = []
        for call in tool_calls:
            result = self.clean(call.arguments)
            if result.was_repeated:
                call.arguments = result.cleaned
            results.append(result)
        return results
