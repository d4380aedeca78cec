"""Unit tests for the task loop's data types."""
from __future__ import annotations

from datetime import datetime, timedelta

from agent_types import (
    Action,
    ActionOutcome,
    CompletionQuality,
    PageAction,
    TaskExecutionResult,
    TaskState,
    TaskStats,
)


class TestAction:
    """Tests for Action."""

    def test_from_arguments_with_ref(self):
        action = Action.from_arguments("click", {"ref": "E1"})
        assert (action.kind, action.ref, action.value) == ("click", "E1", None)

    def test_from_arguments_descriptive_keys(self):
        assert Action.from_arguments("done", {"result": "42"}).value == "42"
        assert Action.from_arguments("abort", {"reason": "blocked"}).value == "blocked"
        assert Action.from_arguments("wait", {"seconds": 2}).value == 2
        assert Action.from_arguments("web_search", {"query": "flights"}).value == "flights"

    def test_value_key_wins(self):
        assert Action.from_arguments("fill", {"ref": "E2", "value": "cats", "result": "x"}).value == "cats"

    def test_signature(self):
        assert Action("fill", "E2", "cats").signature == "fill:E2:cats"
        assert Action("back").signature == "back::"

    def test_to_dict(self):
        assert Action("click", "E1").to_dict() == {"action": "click", "ref": "E1"}


class TestOutcomes:
    """Tests for outcome and result types."""

    def test_outcome_dict_drops_none(self):
        outcome = ActionOutcome(success=True, action="click", ref="E1")
        assert outcome.to_dict() == {
            "success": True,
            "action": "click",
            "ref": "E1",
            "is_recoverable": True,
            "is_terminal": False,
        }

    def test_completion_quality(self):
        assert CompletionQuality.EXCELLENT.is_accepted
        assert CompletionQuality.COMPLETE.is_accepted
        assert not CompletionQuality.PARTIAL.is_accepted
        assert not CompletionQuality.FAILED.is_accepted

    def test_terminal_states(self):
        assert {state for state in TaskState if state.is_terminal} == {
            TaskState.DONE,
            TaskState.ABORTED,
            TaskState.FAILED,
        }

    def test_duration(self):
        started = datetime(2024, 1, 1, 12, 0, 0)
        stats = TaskStats(started_at=started, finished_at=started + timedelta(seconds=2))
        assert stats.duration_ms == 2000

    def test_status(self):
        assert TaskExecutionResult(success=True, state=TaskState.DONE).status == "passed"
        assert TaskExecutionResult(success=False, state=TaskState.ABORTED).status == "aborted"

    def test_action_values(self):
        assert len(PageAction.values()) == 17
        assert PageAction("fill_and_enter") is PageAction.FILL_AND_ENTER
