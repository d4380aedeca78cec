"""Typed events emitted while a task runs, and the bus that delivers them."""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, Union

# ─────────────────────────────────────────────────────────────────────────────
# Event types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AgentEvent:
    """Base for all events. ``timestamp`` is seconds since the epoch."""

    timestamp: float = field(default_factory=time.time, kw_only=True)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.name, **asdict(self)}


# Task lifecycle
@dataclass(frozen=True)
class TaskSetup(AgentEvent):
    task: str
    starting_url: Optional[str] = None
    data: Optional[Any] = None


@dataclass(frozen=True)
class TaskStarted(AgentEvent):
    task: str
    plan: str
    success_criteria: str
    url: str
    action_items: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TaskCompleted(AgentEvent):
    success: bool
    final_answer: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TaskAborted(AgentEvent):
    reason: Optional[str] = None


@dataclass(frozen=True)
class TaskValidated(AgentEvent):
    task_assessment: str
    completion_quality: str
    final_answer: str
    feedback: Optional[str] = None


@dataclass(frozen=True)
class TaskValidationError(AgentEvent):
    errors: List[str]
    retry_count: int
    raw_response: Any = None


# Agent reasoning and status
@dataclass(frozen=True)
class AgentStep(AgentEvent):
    iteration: int
    max_iterations: int
    current_step: str = ""


@dataclass(frozen=True)
class AgentProcessing(AgentEvent):
    status: str
    operation: str


@dataclass(frozen=True)
class AgentAction(AgentEvent):
    action: str
    ref: Optional[str] = None
    value: Optional[Any] = None


@dataclass(frozen=True)
class AgentStatus(AgentEvent):
    message: str


@dataclass(frozen=True)
class AgentExtracted(AgentEvent):
    extracted_data: str


@dataclass(frozen=True)
class AgentWaiting(AgentEvent):
    seconds: float


# Generation
@dataclass(frozen=True)
class AIGeneration(AgentEvent):
    operation: str
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AIGenerationError(AgentEvent):
    error: str
    is_tool_error: bool = False
    tool_name: Optional[str] = None


# Browser operations
@dataclass(frozen=True)
class BrowserActionStarted(AgentEvent):
    action: str
    ref: Optional[str] = None
    value: Optional[Any] = None


@dataclass(frozen=True)
class BrowserActionCompleted(AgentEvent):
    action: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BrowserNavigated(AgentEvent):
    url: str
    title: str = ""


@dataclass(frozen=True)
class NavigationRetry(AgentEvent):
    url: str
    attempt: int
    max_attempts: int
    next_timeout_ms: int
    error: str = ""


# Debug
@dataclass(frozen=True)
class CompressionStats(AgentEvent):
    original_size: int
    compressed_size: int
    compression_percent: float


# ─────────────────────────────────────────────────────────────────────────────
# Bus
# ─────────────────────────────────────────────────────────────────────────────

Handler = Callable[[AgentEvent], Any]


class EventBus:
    """Synchronous fire-and-forget dispatch of :class:`AgentEvent` objects.

    Handlers subscribed to a type also receive its subclasses. A handler
    that raises is logged and skipped; emitting never fails the caller.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("events")
        self._handlers: Dict[Type[AgentEvent], List[Handler]] = {}
        self._catch_all: List[Handler] = []

    def subscribe(self, event_type: Type[AgentEvent], handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self._catch_all.append(handler)

    def unsubscribe(self, event_type: Union[Type[AgentEvent], None], handler: Handler) -> None:
        """Remove ``handler``; pass ``None`` as the type for catch-all handlers."""
        handlers = self._catch_all if event_type is None else self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: AgentEvent) -> None:
        targets: List[Handler] = []
        for event_type, handlers in self._handlers.items():
            if isinstance(event, event_type):
                targets.extend(handlers)
        targets.extend(self._catch_all)

        for handler in targets:
            try:
                handler(event)
            except Exception:
                self.logger.exception(f"Event handler failed for {event.name}")
