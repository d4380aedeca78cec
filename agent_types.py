"""Typed objects exchanged by the task execution loop."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class PageAction(str, Enum):
    """Actions the model may ask the browser to perform."""

    CLICK = "click"
    HOVER = "hover"
    FILL = "fill"
    FOCUS = "focus"
    CHECK = "check"
    UNCHECK = "uncheck"
    SELECT = "select"
    ENTER = "enter"
    FILL_AND_ENTER = "fill_and_enter"
    WAIT = "wait"
    GOTO = "goto"
    BACK = "back"
    FORWARD = "forward"
    EXTRACT = "extract"
    WEB_SEARCH = "web_search"
    DONE = "done"
    ABORT = "abort"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


# Actions that only touch the page the model is already looking at
ELEMENT_ACTIONS = frozenset(
    {
        PageAction.CLICK,
        PageAction.HOVER,
        PageAction.FILL,
        PageAction.FOCUS,
        PageAction.CHECK,
        PageAction.UNCHECK,
        PageAction.SELECT,
        PageAction.ENTER,
    }
)


@dataclass
class Action:
    """One model-proposed step: ``{kind, ref?, value?}``."""

    kind: str
    ref: Optional[str] = None
    value: Optional[Union[str, int, float]] = None

    @classmethod
    def from_arguments(cls, name: str, arguments: Dict[str, Any]) -> "Action":
        """Build an action from a tool call name and its decoded arguments."""
        value = arguments.get("value")
        if value is None:
            # done/abort/extract/web_search carry their payload under descriptive keys
            for key in ("result", "reason", "description", "query", "url", "seconds"):
                if arguments.get(key) is not None:
                    value = arguments[key]
                    break
        return cls(kind=name, ref=arguments.get("ref"), value=value)

    @property
    def signature(self) -> str:
        ref = self.ref or ""
        value = "" if self.value is None else str(self.value)
        return f"{self.kind}:{ref}:{value}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.kind}
        if self.ref is not None:
            data["ref"] = self.ref
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass
class ActionOutcome:
    """Result of executing one action, as reported back to the model."""

    success: bool
    action: str
    ref: Optional[str] = None
    value: Optional[Union[str, int, float]] = None
    error: Optional[str] = None
    is_recoverable: bool = True
    is_terminal: bool = False
    result: Optional[str] = None
    extracted_data: Optional[str] = None
    markdown: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class PlanOutput:
    """Plan produced before the first action."""

    plan: str
    success_criteria: str = ""
    url: Optional[str] = None
    action_items: List[str] = field(default_factory=list)


class CompletionQuality(str, Enum):
    FAILED = "failed"
    PARTIAL = "partial"
    COMPLETE = "complete"
    EXCELLENT = "excellent"

    @property
    def is_accepted(self) -> bool:
        return self in (CompletionQuality.COMPLETE, CompletionQuality.EXCELLENT)


@dataclass
class ValidationOutcome:
    """Verdict on a proposed final answer."""

    task_assessment: str
    completion_quality: CompletionQuality
    feedback: Optional[str] = None


class TaskState(str, Enum):
    PLANNING = "planning"
    ITERATING = "iterating"
    VALIDATING = "validating"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.DONE, TaskState.ABORTED, TaskState.FAILED)


class TaskErrorCode(str, Enum):
    TASK_ABORTED = "TASK_ABORTED"
    MAX_ITERATIONS = "MAX_ITERATIONS"
    MAX_ERRORS = "MAX_ERRORS"
    TASK_FAILED = "TASK_FAILED"


@dataclass
class TaskError:
    code: TaskErrorCode
    message: str


@dataclass
class TaskStats:
    iterations: int = 0
    actions: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> float:
        end = self.finished_at or datetime.now()
        return max(0.0, (end - self.started_at).total_seconds() * 1000)


@dataclass
class PageInfo:
    url: str = ""
    title: str = ""


@dataclass
class TaskExecutionResult:
    """Outcome of one task, successful or not."""

    success: bool
    state: TaskState
    final_answer: Optional[str] = None
    error: Optional[TaskError] = None
    stats: TaskStats = field(default_factory=TaskStats)
    plan: Optional[PlanOutput] = None
    extracted_data: List[str] = field(default_factory=list)
    last_page: Optional[PageInfo] = None

    @property
    def status(self) -> str:
        return "passed" if self.success else self.state.value
