"""Language model access: the generation protocol and its OpenAI-backed implementation."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

from openai import APIStatusError, AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from exceptions import GenerationError

ToolChoice = Union[str, Dict[str, Any]]

_AUTH_ERROR = re.compile(r"invalid api key|authentication|unauthorized|forbidden", re.IGNORECASE)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class GenerationResult:
    text: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


class Generator(Protocol):
    """Anything that can turn a conversation into text or tool calls."""

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: ToolChoice = "required",
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        ...


def status_code_of(error: BaseException) -> Optional[int]:
    if isinstance(error, GenerationError):
        return error.status_code
    code = getattr(error, "status_code", None)
    if code is None:
        code = getattr(error, "status", None)
    return code if isinstance(code, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """False for client errors (4xx except 429) and authentication failures."""
    status = status_code_of(error)
    if status is not None and 400 <= status < 500 and status != 429:
        return False
    message = getattr(error, "message", None) or str(error)
    return not _AUTH_ERROR.search(message)


class OpenAIGenerator:
    """Chat completions with function tools against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 2048,
        client: Optional[AsyncOpenAI] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.logger = logger or logging.getLogger("generation")

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: ToolChoice = "required",
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        create_kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if tools:
            create_kwargs["tools"] = tools
            create_kwargs["tool_choice"] = tool_choice
            create_kwargs["parallel_tool_calls"] = False
        return await self._create(create_kwargs)

    @retry(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10) + wait_random(0, 0.25),
        reraise=True,
    )
    async def _create(self, create_kwargs: Dict[str, Any]) -> GenerationResult:
        """Call the model with retry logic."""
        self.logger.debug(f"Requesting completion ({len(create_kwargs['messages'])} messages)")
        try:
            response = await self.client.chat.completions.create(**create_kwargs)
        except APIStatusError as e:
            raise GenerationError(f"Model call failed: {e.message}", e.status_code) from e
        except Exception as e:
            raise GenerationError(f"Model call failed: {e}") from e

        if not response.choices:
            raise GenerationError("Empty response from model")
        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "")
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        usage = response.usage.model_dump() if response.usage is not None else None
        return GenerationResult(
            text=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
            usage=usage,
        )
