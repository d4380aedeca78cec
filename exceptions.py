"""Custom exception hierarchy for the aria-pilot agent."""
from __future__ import annotations

from typing import Any, List, Optional


class PilotError(Exception):
    """Base exception for all aria-pilot errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RecoverableError(PilotError):
    """An error the agent reports back to the model instead of giving up."""

    is_recoverable = True

    @property
    def context(self) -> dict[str, Any]:
        return self.details


# Browser action exceptions (recoverable)
class BrowserException(RecoverableError):
    """Base exception for failures of a single browser action."""

    pass


class InvalidRefError(BrowserException):
    """Raised when an element reference does not exist on the current page."""

    def __init__(self, ref: str, message: Optional[str] = None):
        message = message or (
            f"Invalid element reference '{ref}'. The element does not exist on the "
            "current page. Please check the page snapshot for valid element references."
        )
        super().__init__(message, {"ref": ref})
        self.ref = ref


class ElementNotFoundError(BrowserException):
    """Raised when an element cannot be located on the page."""

    def __init__(self, selector: Optional[str] = None, message: Optional[str] = None):
        if message is None:
            message = (
                f"Element with selector '{selector}' not found on the page."
                if selector
                else "Element not found on the page."
            )
        details = {"selector": selector} if selector else {}
        super().__init__(message, details)
        self.selector = selector


class BrowserActionError(BrowserException):
    """Raised when a browser action fails for any other reason."""

    def __init__(self, action: str, message: str, ref: Optional[str] = None):
        details = {"action": action}
        if ref:
            details["ref"] = ref
        super().__init__(message, details)
        self.action = action
        self.ref = ref


class NavigationTimeoutError(BrowserException):
    """Raised when navigation keeps timing out after every retry."""

    def __init__(self, url: str, timeout_ms: int, attempt: int, max_attempts: int):
        super().__init__(
            f"Navigation to '{url}' timed out after {timeout_ms}ms "
            f"(attempt {attempt}/{max_attempts})",
            {"url": url, "timeout_ms": timeout_ms, "attempt": attempt, "max_attempts": max_attempts},
        )
        self.url = url
        self.timeout_ms = timeout_ms
        self.attempt = attempt
        self.max_attempts = max_attempts


class ToolExecutionError(RecoverableError):
    """Raised when a tool ran and its failure was already shown to the model."""

    is_tool_error = True

    def __init__(self, message: str, tool_name: Optional[str] = None, tool_output: Any = None):
        details = {"tool_name": tool_name} if tool_name else {}
        super().__init__(message, details)
        self.tool_name = tool_name
        self.tool_output = tool_output


class ActionValidationError(RecoverableError):
    """Raised when the model keeps proposing invalid actions."""

    def __init__(self, errors: List[str], message: Optional[str] = None):
        message = message or "Action validation failed: " + "; ".join(errors)
        super().__init__(message, {"errors": list(errors)})
        self.errors = list(errors)


# Browser lifecycle exceptions
class BrowserError(PilotError):
    """Base exception for browser lifecycle errors."""

    pass


class BrowserNotStartedError(BrowserError):
    """Raised when attempting to use browser before starting."""

    def __init__(self):
        super().__init__("Browser has not been started. Call start() first.")


# Generation exceptions
class GenerationError(PilotError):
    """Raised when the language model call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"status_code": status_code} if status_code is not None else {}
        super().__init__(message, details)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return True
        return not (400 <= self.status_code < 500 and self.status_code != 429)


# Task exceptions
class TaskError(PilotError):
    """Base exception for task-level errors."""

    pass


class TaskSetupError(TaskError):
    """Raised when a task cannot be started."""

    pass


class TaskAbortedError(TaskError):
    """Raised when the task was cancelled from outside."""

    def __init__(self, reason: Optional[str] = None):
        message = f"Task aborted: {reason}" if reason else "Task aborted"
        super().__init__(message, {"reason": reason} if reason else None)
        self.reason = reason


# Configuration exceptions
class ConfigurationError(PilotError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path
