"""Unit tests for the exception hierarchy."""
from __future__ import annotations

import pytest

from exceptions import (
    ActionValidationError,
    BrowserActionError,
    BrowserNotStartedError,
    ConfigFileNotFoundError,
    ElementNotFoundError,
    GenerationError,
    InvalidRefError,
    NavigationTimeoutError,
    PilotError,
    RecoverableError,
    TaskAbortedError,
    TaskSetupError,
    ToolExecutionError,
)


class TestPilotError:
    """Tests for the base error."""

    def test_str_without_details(self):
        assert str(PilotError("boom")) == "boom"

    def test_str_with_details(self):
        assert str(PilotError("boom", {"k": 1})) == "boom | Details: {'k': 1}"


class TestRecoverable:
    """Tests for errors reported back to the model."""

    def test_browser_errors_are_recoverable(self):
        for error in (
            InvalidRefError("E7"),
            ElementNotFoundError("#x"),
            BrowserActionError("click", "Element is detached"),
            NavigationTimeoutError("https://x", 1000, 3, 3),
        ):
            assert isinstance(error, RecoverableError)
            assert error.is_recoverable

    def test_invalid_ref(self):
        error = InvalidRefError("E7")
        assert "'E7'" in error.message
        assert error.context == {"ref": "E7"}

    def test_element_not_found_messages(self):
        assert ElementNotFoundError().message == "Element not found on the page."
        assert ElementNotFoundError("#go").message == "Element with selector '#go' not found on the page."

    def test_browser_action_error(self):
        error = BrowserActionError("fill", "Not editable", ref="E2")
        assert error.details == {"action": "fill", "ref": "E2"}

    def test_navigation_timeout(self):
        error = NavigationTimeoutError("https://x", 60000, 2, 3)
        assert error.message == "Navigation to 'https://x' timed out after 60000ms (attempt 2/3)"

    def test_tool_execution_error(self):
        error = ToolExecutionError("Clicking failed", tool_name="click")
        assert error.is_tool_error
        assert error.tool_name == "click"

    def test_action_validation_error(self):
        error = ActionValidationError(["a", "b"])
        assert error.message == "Action validation failed: a; b"
        assert error.errors == ["a", "b"]


class TestFatal:
    """Tests for errors that end a task."""

    @pytest.mark.parametrize("status,retryable", [(None, True), (429, True), (400, False), (401, False), (503, True)])
    def test_generation_retryable(self, status, retryable):
        assert GenerationError("x", status).is_retryable is retryable

    def test_setup_not_recoverable(self):
        assert not isinstance(TaskSetupError("bad"), RecoverableError)

    def test_aborted_message(self):
        assert TaskAbortedError().message == "Task aborted"
        assert TaskAbortedError("user").message == "Task aborted: user"

    def test_browser_not_started(self):
        assert "start()" in BrowserNotStartedError().message

    def test_config_file_not_found(self):
        error = ConfigFileNotFoundError("/nope.yaml")
        assert error.file_path == "/nope.yaml"
        assert "/nope.yaml" in error.message
