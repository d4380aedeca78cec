"""Pytest fixtures for aria-pilot tests."""
from __future__ import annotations

import copy
import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import AgentConfig, PilotConfig
from dom import ComputedStyle, Document, Element, Rect, TextNode
from generation import GenerationResult, ToolCall

SAMPLE_SNAPSHOT = """- heading "Example Domain" [level=1] [ref=E1]
- textbox "Search" [ref=E2]
- button "Go" [ref=E3] [cursor=pointer]
- link "More information" [ref=E4]:
  - /url: https://www.iana.org/domains/example"""


# ─────────────────────────────────────────────────────────────────────────────
# DOM builders
# ─────────────────────────────────────────────────────────────────────────────


class DomBuilder:
    """Terse constructors for captured DOM trees."""

    @staticmethod
    def el(tag: str, *children: Union[Element, TextNode, str], **kwargs: Any) -> Element:
        attrs = kwargs.pop("attrs", {})
        element = Element(tag=tag, attributes=dict(attrs), **kwargs)
        for child in children:
            element.append(TextNode(text=child) if isinstance(child, str) else child)
        return element

    @classmethod
    def block(cls, tag: str, *children: Union[Element, TextNode, str], **kwargs: Any) -> Element:
        kwargs.setdefault("style", ComputedStyle(display="block"))
        return cls.el(tag, *children, **kwargs)

    @classmethod
    def body(cls, *children: Union[Element, TextNode, str]) -> Element:
        return cls.block("body", *children)

    @classmethod
    def document(cls, body: Element, url: str = "https://example.com/") -> Document:
        """Place ``body`` under ``<html>`` in a new document."""
        document = Document(url=url)
        document.append(cls.block("html", body))
        for element in body.iter_elements():
            element.owner_document = document
        body.owner_document = document
        return document

    @staticmethod
    def text(value: str) -> TextNode:
        return TextNode(text=value)

    @staticmethod
    def hidden_style() -> ComputedStyle:
        return ComputedStyle(display="none")

    @staticmethod
    def empty_rect() -> Rect:
        return Rect(0, 0, 0, 0)


@pytest.fixture
def dom() -> DomBuilder:
    """DOM construction helpers."""
    return DomBuilder()


# ─────────────────────────────────────────────────────────────────────────────
# Model fakes
# ─────────────────────────────────────────────────────────────────────────────

Scripted = Union[GenerationResult, Exception, Callable[[], Any]]


class FakeGenerator:
    """Generator that replays scripted results and records every request."""

    def __init__(self, *script: Scripted):
        self.script: List[Scripted] = list(script)
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Any = "required",
        max_tokens: Optional[int] = None,
    ) -> GenerationResult:
        self.calls.append(
            {
                "messages": copy.deepcopy(messages),
                "tools": tools,
                "tool_choice": tool_choice,
                "max_tokens": max_tokens,
            }
        )
        if not self.script:
            raise AssertionError("FakeGenerator ran out of scripted responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return await item()
        return item

    def tool_names(self) -> List[Optional[str]]:
        """Name of the first tool offered in each call, or None for plain text calls."""
        return [call["tools"][0]["function"]["name"] if call["tools"] else None for call in self.calls]


def tool_result(name: str, arguments: Union[Dict[str, Any], str, None] = None, call_id: Optional[str] = None) -> GenerationResult:
    if arguments is None:
        raw = "{}"
    elif isinstance(arguments, str):
        raw = arguments
    else:
        raw = json.dumps(arguments)
    tool_result.counter += 1
    return GenerationResult(
        tool_calls=[ToolCall(id=call_id or f"call_{tool_result.counter}", name=name, arguments=raw)],
        finish_reason="tool_calls",
    )


tool_result.counter = 0


class Script:
    """Builders for scripted model replies."""

    tool = staticmethod(tool_result)

    @staticmethod
    def plan(plan: str = "Open the page and read the answer", url: Optional[str] = None, **extra: Any) -> GenerationResult:
        arguments = {"plan": plan, "success_criteria": "The answer is reported", **extra}
        if url is not None:
            arguments["url"] = url
        return tool_result("create_plan", arguments)

    @staticmethod
    def validation(quality: str = "complete", assessment: str = "Looks right", feedback: Optional[str] = None) -> GenerationResult:
        arguments: Dict[str, Any] = {"task_assessment": assessment, "completion_quality": quality}
        if feedback is not None:
            arguments["feedback"] = feedback
        return tool_result("validate_task", arguments)

    @staticmethod
    def text(content: str) -> GenerationResult:
        return GenerationResult(text=content, finish_reason="stop")


@pytest.fixture
def script() -> Script:
    """Scripted model reply builders."""
    return Script()


@pytest.fixture
def fake_generator() -> Callable[..., FakeGenerator]:
    """Factory for a FakeGenerator replaying the given results in order."""
    return FakeGenerator


# ─────────────────────────────────────────────────────────────────────────────
# Browser fakes
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_browser() -> MagicMock:
    """Create a mock browser for testing."""
    browser = MagicMock()
    browser.start = AsyncMock()
    browser.shutdown = AsyncMock()
    browser.goto = AsyncMock()
    browser.go_back = AsyncMock()
    browser.go_forward = AsyncMock()
    browser.wait_for_load_state = AsyncMock()
    browser.get_url = AsyncMock(return_value="https://example.com/")
    browser.get_title = AsyncMock(return_value="Example Domain")
    browser.get_tree_with_refs = AsyncMock(return_value=SAMPLE_SNAPSHOT)
    browser.get_markdown = AsyncMock(return_value="# Example Domain\n\nPrice: $10")
    browser.perform_action = AsyncMock()
    return browser


@pytest.fixture
def sample_snapshot() -> str:
    return SAMPLE_SNAPSHOT


# ─────────────────────────────────────────────────────────────────────────────
# Configs
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def agent_config() -> AgentConfig:
    """Agent config with small budgets so failure paths end quickly."""
    return AgentConfig(
        api_key="test-key",
        max_iterations=10,
        max_validation_attempts=3,
        max_consecutive_errors=3,
        max_total_errors=6,
    )


@pytest.fixture
def pilot_config(agent_config: AgentConfig) -> PilotConfig:
    return PilotConfig(agent=agent_config)


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove PILOT_* variables so config defaults are observable."""
    for name in ("PILOT_MODEL", "PILOT_BASE_URL", "PILOT_API_KEY"):
        monkeypatch.delenv(name, raising=False)
