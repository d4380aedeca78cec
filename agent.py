"""Web agent: plans a task, then drives the browser one validated tool call at a time."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from urllib.parse import urlparse

from agent_types import (
    ELEMENT_ACTIONS,
    Action,
    ActionOutcome,
    PageAction,
    PageInfo,
    PlanOutput,
    TaskError,
    TaskErrorCode,
    TaskExecutionResult,
    TaskState,
    TaskStats,
)
from browser import AriaBrowser
from cancellation import AbortSignal
from config.models import AgentConfig
from events import (
    AgentAction,
    AgentEvent,
    AgentExtracted,
    AgentProcessing,
    AgentStatus,
    AgentStep,
    AgentWaiting,
    AIGeneration,
    AIGenerationError,
    BrowserActionCompleted,
    BrowserActionStarted,
    BrowserNavigated,
    CompressionStats,
    EventBus,
    NavigationRetry,
    TaskAborted,
    TaskCompleted,
    TaskSetup,
    TaskStarted,
    TaskValidated,
    TaskValidationError,
)
from exceptions import (
    ActionValidationError,
    BrowserActionError,
    GenerationError,
    PilotError,
    RecoverableError,
    TaskAbortedError,
    TaskSetupError,
    ToolExecutionError,
)
from generation import GenerationResult, Generator, ToolCall, status_code_of
from navigation import NavigationRetryConfig, navigate_with_retry
from prompts import (
    NO_TOOL_CALL_FEEDBACK,
    build_action_loop_system_prompt,
    build_extraction_prompt,
    build_page_snapshot_prompt,
    build_plan_prompt,
    build_repeated_action_warning,
    build_step_error_feedback_prompt,
    build_task_and_plan_prompt,
    build_task_validation_prompt,
    build_validation_feedback_prompt,
    clip_external_content,
)
from search import BrowserSearchProvider
from snapshot_compressor import SnapshotCompressor
from tools import (
    action_tools,
    build_plan_tool,
    build_validation_tool,
    tool_call_to_action,
    tool_call_to_plan,
    tool_call_to_validation,
)
from validators import ActionValidator, RepetitionValidator, ValidationResult

T = TypeVar("T")

BLANK_PAGE = "about:blank"
MAX_WAIT_SECONDS = 30.0
PAGE_PRESERVING_ACTIONS = frozenset({PageAction.EXTRACT, PageAction.WEB_SEARCH})
ABORTED_MESSAGE = "Task aborted by user"

_HAS_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass
class _Outcome:
    """How the task ended."""

    success: bool
    state: TaskState
    final_answer: Optional[str] = None
    error: Optional[TaskError] = None


@dataclass
class _Step:
    """Result of one loop iteration that did not raise."""

    terminal: Optional[_Outcome] = None
    page_changed: bool = False
    action_executed: bool = False


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return parsed.scheme in ("about", "file", "data")


def normalize_start_url(url: str) -> str:
    url = url.strip()
    return url if _HAS_SCHEME.match(url) else f"https://{url}"


class WebAgent:
    """Completes a natural-language task in a browser.

    One call to :meth:`execute` plans the task, navigates to a starting page
    and then loops: snapshot the page, ask the model for exactly one tool
    call, validate it, run it. ``done`` answers are checked by a separate
    validation call before they are accepted. Recoverable failures are fed
    back to the model; budgets on iterations and errors bound the run.
    """

    def __init__(
        self,
        browser: AriaBrowser,
        generator: Generator,
        config: Optional[AgentConfig] = None,
        event_bus: Optional[EventBus] = None,
        compressor: Optional[SnapshotCompressor] = None,
        logger: Optional[logging.Logger] = None,
        navigation: Optional[NavigationRetryConfig] = None,
        search: Optional[BrowserSearchProvider] = None,
    ):
        self.browser = browser
        self.generator = generator
        self.config = config or AgentConfig()
        self.event_bus = event_bus or EventBus()
        self.compressor = compressor or SnapshotCompressor()
        self.logger = logger or logging.getLogger("web_agent")
        self.navigation = navigation or NavigationRetryConfig()
        self.search = search
        self.tools = action_tools(include_search=search is not None)

        self.action_validator = ActionValidator()
        self.repetition_validator = RepetitionValidator()
        self.state = TaskState.PLANNING
        self._reset(None, None)

    def _reset(self, data: Any, abort: Optional[AbortSignal]) -> None:
        self.messages: List[Dict[str, Any]] = []
        self.plan: Optional[PlanOutput] = None
        self.url = ""
        self.data = data
        self.abort = abort or AbortSignal()
        self.current_page = PageInfo()
        self.extracted_data: List[str] = []
        self.action_validator.page_snapshot = None
        self._last_action: Optional[str] = None
        self._repeat_count = 0
        self._validation_attempts = 0
        self._repetition_recoveries = 0

    async def close(self) -> None:
        """Close the browser."""
        await self.browser.shutdown()
        self.logger.info("Agent closed")

    # ─────────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────────

    async def execute(
        self,
        task: str,
        starting_url: Optional[str] = None,
        data: Any = None,
        abort: Optional[AbortSignal] = None,
    ) -> TaskExecutionResult:
        """Run ``task`` to completion.

        Raises:
            TaskSetupError: If the task is empty, the starting URL is invalid,
                the browser cannot start or no plan could be generated.
        """
        if not task or not task.strip():
            raise TaskSetupError("Task cannot be empty")
        if starting_url and not is_valid_url(starting_url):
            raise TaskSetupError("Invalid starting URL", {"url": starting_url})

        self._reset(data, abort)
        stats = TaskStats()
        self._emit(TaskSetup(task=task, starting_url=starting_url, data=data))

        try:
            await self._guard(self.browser.start())
        except TaskAbortedError:
            return self._build_result(self._aborted_outcome(), stats)
        except Exception as e:
            raise TaskSetupError(f"Failed to start browser: {e}") from e

        try:
            await self._plan_task(task, starting_url)
            await self._navigate_to_start_with_retry(task)
            self._initialize_conversation(task)
            outcome = await self._run_main_loop(task, stats)
        except TaskAbortedError:
            outcome = self._aborted_outcome()
        except TaskSetupError:
            raise
        except Exception as e:
            if self.abort.aborted:
                outcome = self._aborted_outcome()
            else:
                message = f"Task failed: {_error_message(e)}"
                self.logger.error(message)
                outcome = _Outcome(
                    success=False,
                    state=TaskState.FAILED,
                    final_answer=message,
                    error=TaskError(TaskErrorCode.TASK_FAILED, message),
                )
        return self._build_result(outcome, stats)

    # ─────────────────────────────────────────────────────────────────────────
    # Planning and start navigation
    # ─────────────────────────────────────────────────────────────────────────

    async def _plan_task(self, task: str, starting_url: Optional[str]) -> None:
        self.state = TaskState.PLANNING
        self._emit(AgentProcessing(status="start", operation="Creating task plan"))
        self._emit(AgentStatus(message="Creating task plan"))
        prompt = build_plan_prompt(task, starting_url, self.config.guardrails)
        try:
            result = await self._guard(
                self.generator.generate(
                    [{"role": "user", "content": prompt}],
                    tools=[build_plan_tool(require_url=not starting_url)],
                    tool_choice="required",
                    max_tokens=self.config.max_tokens,
                )
            )
            self._emit_generation("planning", result)
            if not result.tool_calls:
                raise GenerationError("No tool results returned from planning")
            plan = tool_call_to_plan(result.tool_calls[0].arguments)
        except (GenerationError, ValueError) as e:
            self.logger.error(f"Failed to generate plan: {_error_message(e)}")
            raise TaskSetupError(f"Failed to generate plan: {_error_message(e)}") from e

        self.plan = plan
        if starting_url:
            self.url = starting_url
        elif plan.url:
            self.url = normalize_start_url(plan.url)
        else:
            self.url = BLANK_PAGE
        self.logger.info(f"Plan created, starting at {self.url}")
        self._emit(AgentStatus(message="Task plan created"))

    async def _navigate_to_start_with_retry(self, task: str) -> None:
        max_attempts = self.config.initial_navigation_retries + 1
        for attempt in range(1, max_attempts + 1):
            self.abort.raise_if_aborted()
            try:
                await self._navigate_to_start(task)
                return
            except RecoverableError as e:
                if attempt >= max_attempts:
                    raise
                self.logger.warning(
                    f"Initial navigation failed (attempt {attempt}/{max_attempts}), "
                    f"restarting browser: {e.message}"
                )
                await self._guard(self.browser.shutdown())
                await self._guard(self.browser.start())

    async def _navigate_to_start(self, task: str) -> None:
        if self.url != BLANK_PAGE:
            await self._goto(self.url)
        page = await self._refresh_page_info()
        self._emit(BrowserNavigated(url=page.url, title=page.title))
        assert self.plan is not None
        self._emit(
            TaskStarted(
                task=task,
                plan=self.plan.plan,
                success_criteria=self.plan.success_criteria,
                url=self.url,
                action_items=list(self.plan.action_items),
            )
        )

    async def _goto(self, url: str) -> None:
        def on_retry(attempt: int, error: Exception, next_timeout_ms: int) -> None:
            self._emit(
                NavigationRetry(
                    url=url,
                    attempt=attempt,
                    max_attempts=self.navigation.max_attempts,
                    next_timeout_ms=next_timeout_ms,
                    error=_error_message(error),
                )
            )

        await navigate_with_retry(self.browser, url, self.navigation, on_retry=on_retry, abort=self.abort)

    def _initialize_conversation(self, task: str) -> None:
        assert self.plan is not None
        guardrails = self.config.guardrails
        self.messages = [
            {
                "role": "system",
                "content": build_action_loop_system_prompt(bool(guardrails), has_search=self.search is not None),
            },
            {
                "role": "user",
                "content": build_task_and_plan_prompt(
                    task, self.plan.success_criteria, self.plan.plan, self.data, guardrails
                ),
            },
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Main loop
    # ─────────────────────────────────────────────────────────────────────────

    async def _run_main_loop(self, task: str, stats: TaskStats) -> _Outcome:
        self.state = TaskState.ITERATING
        needs_snapshot = self.url != BLANK_PAGE
        consecutive_errors = 0
        total_errors = 0
        max_iterations = self.config.max_iterations

        while stats.iterations < max_iterations:
            self.abort.raise_if_aborted()
            iteration = stats.iterations + 1
            self.logger.info(f"Iteration {iteration}/{max_iterations}")
            self._emit(AgentStep(iteration=iteration, max_iterations=max_iterations))

            try:
                if needs_snapshot:
                    await self._add_page_snapshot()
                    needs_snapshot = False
                step = await self._generate_and_process_action(task)
                consecutive_errors = 0
                if step.terminal is not None:
                    stats.iterations = iteration
                    if step.action_executed:
                        stats.actions += 1
                    return step.terminal
                if step.action_executed:
                    stats.actions += 1
                needs_snapshot = step.page_changed
            except TaskAbortedError:
                raise
            except Exception as e:
                consecutive_errors += 1
                total_errors += 1
                non_recoverable = _is_non_recoverable(e)
                if (
                    non_recoverable
                    or consecutive_errors >= self.config.max_consecutive_errors
                    or total_errors >= self.config.max_total_errors
                ):
                    stats.iterations = iteration
                    return self._error_outcome(e, non_recoverable, consecutive_errors, total_errors)
                self.logger.warning(f"Recoverable error ({consecutive_errors} consecutive): {_error_message(e)}")
                self._add_error_feedback(e)
            finally:
                self.state = TaskState.ITERATING

            stats.iterations = iteration

        message = "Maximum iterations reached without completing the task."
        self.logger.error(f"Max iterations ({max_iterations}) reached without completing task")
        return _Outcome(
            success=False,
            state=TaskState.FAILED,
            final_answer=message,
            error=TaskError(TaskErrorCode.MAX_ITERATIONS, message),
        )

    def _error_outcome(self, error: Exception, non_recoverable: bool, consecutive: int, total: int) -> _Outcome:
        error_message = _error_message(error)
        if non_recoverable:
            self.logger.error(f"Non-recoverable error, stopping execution: {error_message}")
            message = f"Task failed: {error_message}"
            code = TaskErrorCode.TASK_FAILED
        else:
            self.logger.error(f"Too many errors ({consecutive} consecutive, {total} total), stopping: {error_message}")
            message = f"Task failed after {consecutive} consecutive errors ({total} total): {error_message}"
            code = TaskErrorCode.MAX_ERRORS
        return _Outcome(
            success=False,
            state=TaskState.FAILED,
            final_answer=message,
            error=TaskError(code, message),
        )

    def _add_error_feedback(self, error: Exception) -> None:
        if isinstance(error, ToolExecutionError):
            # The failure is already in the tool result the model will read
            self._emit(AIGenerationError(error=error.message, is_tool_error=True, tool_name=error.tool_name))
            return
        message = _error_message(error)
        self._emit(AIGenerationError(error=message))
        self.messages.append(
            {
                "role": "user",
                "content": build_step_error_feedback_prompt(
                    message, bool(self.config.guardrails), has_search=self.search is not None
                ),
            }
        )

    async def _add_page_snapshot(self) -> None:
        for message in self.messages:
            content = message.get("content")
            if message.get("role") == "user" and isinstance(content, str) and "<EXTERNAL-CONTENT" in content:
                message["content"] = clip_external_content(content)

        snapshot = await self._guard(self.browser.get_tree_with_refs())
        self.action_validator.update_page_snapshot(snapshot)
        self.logger.debug(f"Snapshot preview:\n{snapshot[:500]}")

        text = snapshot
        if self.config.compress_snapshots:
            compression = self.compressor.compress_with_metrics(snapshot)
            text = compression.compressed
            if self.config.debug:
                self._emit(
                    CompressionStats(
                        original_size=compression.original_size,
                        compressed_size=compression.compressed_size,
                        compression_percent=round(compression.compression_ratio * 100, 1),
                    )
                )

        page = await self._refresh_page_info()
        self.messages.append({"role": "user", "content": build_page_snapshot_prompt(page.title, page.url, text)})

    async def _refresh_page_info(self) -> PageInfo:
        try:
            title = await self._guard(self.browser.get_title())
            url = await self._guard(self.browser.get_url())
        except TaskAbortedError:
            raise
        except Exception as e:
            if not self.current_page.url:
                raise BrowserActionError("page_info", "Browser disconnected or page unavailable") from e
            self.logger.warning(f"Could not read page info, using last known page: {e}")
            return self.current_page
        self.current_page = PageInfo(url=url, title=title)
        return self.current_page

    # ─────────────────────────────────────────────────────────────────────────
    # One action
    # ─────────────────────────────────────────────────────────────────────────

    async def _generate_and_process_action(self, task: str) -> _Step:
        self._emit(AgentProcessing(status="start", operation="Thinking about next action"))
        call, action, feedback = await self._request_action()

        try:
            outcome = await self._execute_action(action)
        except TaskAbortedError:
            raise
        except RecoverableError as e:
            outcome = ActionOutcome(
                success=False,
                action=action.kind,
                ref=action.ref,
                value=action.value,
                error=e.message,
                is_recoverable=True,
            )
        except Exception as e:
            self._append_tool_result(
                call,
                ActionOutcome(success=False, action=action.kind, ref=action.ref, error=str(e), is_recoverable=False),
            )
            raise

        self._append_tool_result(call, outcome)
        if feedback:
            self.messages.append({"role": "user", "content": feedback})

        if not outcome.success:
            raise ToolExecutionError(outcome.error or "Action failed", tool_name=action.kind, tool_output=outcome.to_dict())

        if outcome.is_terminal:
            if action.kind == PageAction.DONE:
                answer = outcome.result or ""
                if await self._validate_completion(task, answer):
                    return _Step(
                        terminal=_Outcome(success=True, state=TaskState.DONE, final_answer=answer),
                        action_executed=True,
                    )
                return _Step(page_changed=False, action_executed=False)

            reason = outcome.result or "No reason given"
            message = f"Aborted: {reason}"
            self.logger.warning(message)
            self._emit(TaskAborted(reason=reason))
            return _Step(
                terminal=_Outcome(
                    success=False,
                    state=TaskState.ABORTED,
                    final_answer=message,
                    error=TaskError(TaskErrorCode.TASK_ABORTED, message),
                ),
                action_executed=True,
            )

        if self._check_repeated_action(action):
            return _Step(page_changed=True, action_executed=True)
        return _Step(page_changed=PageAction(action.kind) not in PAGE_PRESERVING_ACTIONS, action_executed=True)

    async def _request_action(self) -> tuple[ToolCall, Action, Optional[str]]:
        """Ask for one tool call, re-asking while the answer is unusable."""
        errors: List[str] = []
        for attempt in range(1, self.config.max_validation_attempts + 1):
            result = await self._guard(
                self.generator.generate(
                    self.messages,
                    tools=self.tools,
                    tool_choice="required",
                    max_tokens=self.config.max_tokens,
                )
            )
            self._emit_generation("action", result)

            if not result.tool_calls:
                self.logger.warning("No tool called in action generation")
                self.messages.append({"role": "assistant", "content": result.text or ""})
                self.messages.append({"role": "user", "content": NO_TOOL_CALL_FEEDBACK})
                errors = [NO_TOOL_CALL_FEEDBACK]
                self._emit(TaskValidationError(errors=errors, retry_count=attempt, raw_response=result.text))
                continue

            call = result.tool_calls[0]
            feedback = self._recover_repetition(call)
            self.messages.append(
                {
                    "role": "assistant",
                    "content": result.text,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments},
                        }
                    ],
                }
            )

            action: Optional[Action] = None
            try:
                action = tool_call_to_action(call.name, call.arguments)
            except ValueError as e:
                validation = ValidationResult(False, [f'Invalid arguments for "{call.name}": {e}'])
            else:
                validation = self.action_validator.validate_action(action.kind, action.ref, action.value)

            if validation.is_valid and action is not None:
                return call, action, feedback

            errors = validation.errors
            self.logger.warning(f"Invalid action (attempt {attempt}): {'; '.join(errors)}")
            self._emit(TaskValidationError(errors=errors, retry_count=attempt, raw_response=call.arguments))
            self.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(
                        {"success": False, "action": call.name, "error": "Invalid action: " + "; ".join(errors)}
                    ),
                }
            )
            if feedback:
                self.messages.append({"role": "user", "content": feedback})

        raise ActionValidationError(errors)

    def _recover_repetition(self, call: ToolCall) -> Optional[str]:
        if not self.repetition_validator.is_repeated(call.arguments):
            return None
        if self._repetition_recoveries >= self.config.max_repetition_recoveries:
            self.logger.warning("Repetition recovery budget exhausted; leaving arguments as-is")
            return None
        result = self.repetition_validator.validate_tool_calls([call])[0]
        if not result.was_repeated:
            return None
        self._repetition_recoveries += 1
        return result.feedback_message

    def _append_tool_result(self, call: ToolCall, outcome: ActionOutcome) -> None:
        self.messages.append(
            {"role": "tool", "tool_call_id": call.id, "content": json.dumps(outcome.to_dict(), default=str)}
        )

    def _check_repeated_action(self, action: Action) -> bool:
        """Warn the model when it keeps repeating itself. True forces a fresh snapshot."""
        signature = action.signature
        if signature != self._last_action:
            self._last_action = signature
            self._repeat_count = 0
            return False

        self._repeat_count += 1
        if self._repeat_count <= self.config.max_repeated_actions:
            return False
        self.logger.warning(f"Repeated action detected: {signature} ({self._repeat_count} times)")
        self.messages.append({"role": "user", "content": build_repeated_action_warning(signature, self._repeat_count)})
        self._emit(AgentStatus(message=f"Warning: Repeated action detected - {signature}"))
        return True

    async def _execute_action(self, action: Action) -> ActionOutcome:
        kind = PageAction(action.kind)
        self._emit(AgentAction(action=kind.value, ref=action.ref, value=action.value))
        self._emit(BrowserActionStarted(action=kind.value, ref=action.ref, value=action.value))
        try:
            outcome = await self._dispatch(kind, action)
        except Exception as e:
            self._emit(BrowserActionCompleted(action=kind.value, success=False, error=_error_message(e)))
            raise
        self._emit(BrowserActionCompleted(action=kind.value, success=True))
        return outcome

    async def _dispatch(self, kind: PageAction, action: Action) -> ActionOutcome:
        ref = action.ref
        value = action.value
        outcome = ActionOutcome(success=True, action=kind.value, ref=ref, value=value)

        if kind in ELEMENT_ACTIONS:
            await self._guard(self.browser.perform_action(ref, kind.value, value))
        elif kind == PageAction.FILL_AND_ENTER:
            await self._guard(self.browser.perform_action(ref, PageAction.FILL.value, value))
            await self._guard(self.browser.perform_action(ref, PageAction.ENTER.value))
        elif kind == PageAction.WAIT:
            seconds = min(MAX_WAIT_SECONDS, max(0.0, float(value)))
            self._emit(AgentWaiting(seconds=seconds))
            await self._guard(asyncio.sleep(seconds))
            outcome.value = seconds
        elif kind == PageAction.GOTO:
            await self._goto(str(value))
        elif kind == PageAction.BACK:
            await self._guard(self.browser.go_back())
        elif kind == PageAction.FORWARD:
            await self._guard(self.browser.go_forward())
        elif kind == PageAction.EXTRACT:
            outcome.extracted_data = await self._extract(str(value))
            return outcome
        elif kind == PageAction.WEB_SEARCH:
            outcome.markdown = await self._web_search(str(value))
            return outcome
        elif kind == PageAction.DONE:
            outcome.result = str(value)
            outcome.is_terminal = True
            return outcome
        elif kind == PageAction.ABORT:
            outcome.result = "" if value is None else str(value)
            outcome.is_terminal = True
            return outcome

        previous_url = self.current_page.url
        page = await self._refresh_page_info()
        if page.url != previous_url:
            self._emit(BrowserNavigated(url=page.url, title=page.title))
        outcome.title = page.title
        outcome.url = page.url
        return outcome

    async def _extract(self, description: str) -> str:
        markdown = await self._guard(self.browser.get_markdown())
        result = await self._guard(
            self.generator.generate(
                [{"role": "user", "content": build_extraction_prompt(description, markdown)}],
                tools=None,
                max_tokens=self.config.max_tokens,
            )
        )
        self._emit_generation("extract", result)
        extracted = (result.text or "").strip()
        self.extracted_data.append(extracted)
        self._emit(AgentExtracted(extracted_data=extracted))
        return extracted

    async def _web_search(self, query: str) -> str:
        if self.search is None:
            raise BrowserActionError("web_search", "Web search is not enabled")
        return await self._guard(self.search.search(query, self.browser))

    # ─────────────────────────────────────────────────────────────────────────
    # Completion validation
    # ─────────────────────────────────────────────────────────────────────────

    async def _validate_completion(self, task: str, final_answer: str) -> bool:
        """Grade a ``done`` answer. True means the task ends with it."""
        self.state = TaskState.VALIDATING
        self._validation_attempts += 1
        attempts = self._validation_attempts
        at_budget = attempts >= self.config.max_validation_attempts
        self._emit(AgentProcessing(status="start", operation=f"Validating task completion (attempt {attempts})"))

        success_criteria = self.plan.success_criteria if self.plan else ""
        try:
            result = await self._guard(
                self.generator.generate(
                    [{"role": "user", "content": build_task_validation_prompt(task, success_criteria, final_answer)}],
                    tools=[build_validation_tool()],
                    tool_choice="required",
                    max_tokens=self.config.max_tokens,
                )
            )
            self._emit_generation("validation", result)
            if not result.tool_calls:
                raise GenerationError("Failed to validate task completion")
            verdict = tool_call_to_validation(result.tool_calls[0].arguments)
        except (GenerationError, ValueError) as e:
            if at_budget:
                self.logger.warning(f"Validation failed at attempt {attempts}, accepting answer: {_error_message(e)}")
                return True
            self._emit(TaskValidationError(errors=[_error_message(e)], retry_count=attempts))
            return False

        self._emit(
            TaskValidated(
                task_assessment=verdict.task_assessment,
                completion_quality=verdict.completion_quality.value,
                final_answer=final_answer,
                feedback=verdict.feedback,
            )
        )
        if verdict.completion_quality.is_accepted:
            return True
        if at_budget:
            self._emit(AgentStatus(message=f"Accepting answer after {attempts} validation attempts"))
            return True

        feedback = build_validation_feedback_prompt(attempts, verdict.task_assessment, verdict.feedback)
        self.messages.append({"role": "user", "content": feedback})
        self._emit(
            TaskValidationError(
                errors=[f"Validation failed: {verdict.completion_quality.value}"],
                retry_count=attempts,
            )
        )
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        return await self.abort.guard(awaitable)

    def _emit(self, event: AgentEvent) -> None:
        self.event_bus.emit(event)

    def _emit_generation(self, operation: str, result: GenerationResult) -> None:
        self._emit(AIGeneration(operation=operation, finish_reason=result.finish_reason, usage=result.usage))

    def _aborted_outcome(self) -> _Outcome:
        reason = self.abort.reason
        self.logger.warning(f"{ABORTED_MESSAGE}" + (f": {reason}" if reason else ""))
        self._emit(TaskAborted(reason=reason))
        return _Outcome(
            success=False,
            state=TaskState.ABORTED,
            final_answer=ABORTED_MESSAGE,
            error=TaskError(TaskErrorCode.TASK_ABORTED, ABORTED_MESSAGE),
        )

    def _build_result(self, outcome: _Outcome, stats: TaskStats) -> TaskExecutionResult:
        stats.finished_at = datetime.now()
        self.state = outcome.state
        self._emit(
            TaskCompleted(
                success=outcome.success,
                final_answer=outcome.final_answer,
                error=outcome.error.message if outcome.error else None,
            )
        )
        last_page = self.current_page if self.current_page.url else None
        return TaskExecutionResult(
            success=outcome.success,
            state=outcome.state,
            final_answer=outcome.final_answer,
            error=outcome.error,
            stats=stats,
            plan=self.plan,
            extracted_data=list(self.extracted_data),
            last_page=last_page,
        )


def _error_message(error: BaseException) -> str:
    if isinstance(error, PilotError):
        return error.message
    return str(error) or type(error).__name__


def _is_non_recoverable(error: BaseException) -> bool:
    """Client errors from the model API (4xx except 429) end the task."""
    if isinstance(error, RecoverableError):
        return False
    status = status_code_of(error)
    return status is not None and 400 <= status < 500 and status != 429
