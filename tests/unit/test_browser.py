"""Unit tests for the Playwright browser controller, against mocked Playwright objects."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeout

import browser as browser_module
from aria_tree import REF_ATTRIBUTE
from browser import ACTION_TIMEOUT_MS, FLUSH_REFS_SCRIPT, PlaywrightBrowser
from exceptions import (
    BrowserActionError,
    BrowserNotStartedError,
    ElementNotFoundError,
    InvalidRefError,
    NavigationTimeoutError,
)

LOCATOR_METHODS = ("click", "hover", "fill", "focus", "check", "uncheck", "select_option", "press")


def make_element():
    element = MagicMock()
    for name in LOCATOR_METHODS:
        setattr(element, name, AsyncMock())
    return element


def make_frame(element=None):
    locator = MagicMock()
    locator.count = AsyncMock(return_value=1 if element is not None else 0)
    locator.first = element
    frame = MagicMock()
    frame.locator.return_value = locator
    return frame


@pytest.fixture
def element():
    return make_element()


@pytest.fixture
def page(element):
    page = MagicMock()
    page.url = "https://example.com/"
    for name in ("goto", "go_back", "go_forward", "title", "evaluate", "content", "wait_for_load_state", "close"):
        setattr(page, name, AsyncMock())
    page.title.return_value = "Example Domain"
    page.frames = [make_frame(), make_frame(element)]
    return page


@pytest.fixture
def started(page):
    controller = PlaywrightBrowser()
    controller.page = page
    controller.context = MagicMock()
    controller.context.new_page = AsyncMock()
    controller.context.close = AsyncMock()
    return controller


def serialized_page():
    return {
        "url": "https://example.com/",
        "children": [
            {
                "type": "element",
                "nid": 0,
                "tag": "HTML",
                "style": {"display": "block"},
                "children": [
                    {
                        "type": "element",
                        "nid": 1,
                        "tag": "BODY",
                        "style": {"display": "block"},
                        "children": [
                            {
                                "type": "element",
                                "nid": 2,
                                "tag": "BUTTON",
                                "style": {"display": "inline-block"},
                                "rect": [10, 10, 80, 24],
                                "children": [{"type": "text", "nid": 3, "text": "Submit"}],
                            }
                        ],
                    }
                ],
            }
        ],
    }


class TestLifecycle:
    """Tests for starting and stopping the browser."""

    @pytest.mark.asyncio
    async def test_requires_start(self):
        with pytest.raises(BrowserNotStartedError):
            await PlaywrightBrowser().goto("https://example.com")

    @pytest.mark.asyncio
    async def test_start(self, monkeypatch, page):
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        launched = MagicMock()
        launched.new_context = AsyncMock(return_value=context)
        playwright = MagicMock()
        playwright.firefox.launch = AsyncMock(return_value=launched)
        manager = MagicMock()
        manager.start = AsyncMock(return_value=playwright)
        monkeypatch.setattr(browser_module, "async_playwright", lambda: manager)

        controller = PlaywrightBrowser(browser_type="firefox", headless=False, slow_mo=50)
        await controller.start()

        playwright.firefox.launch.assert_awaited_once_with(headless=False, slow_mo=50)
        launched.new_context.assert_awaited_once_with(viewport={"width": 1280, "height": 800}, bypass_csp=True)
        assert controller.page is page

        await controller.start()
        assert manager.start.await_count == 1

    @pytest.mark.asyncio
    async def test_shutdown(self, started, page):
        await started.shutdown()
        page.close.assert_awaited_once()
        assert started.page is None
        assert started.context is None


class TestNavigation:
    """Tests for navigation and page info."""

    @pytest.mark.asyncio
    async def test_goto(self, started, page):
        await started.goto("https://example.com", timeout_ms=60000)
        page.goto.assert_awaited_once_with("https://example.com", wait_until="load", timeout=60000)

    @pytest.mark.asyncio
    async def test_goto_timeout(self, started, page):
        page.goto.side_effect = PlaywrightTimeout("Timeout 30000ms exceeded")
        with pytest.raises(NavigationTimeoutError):
            await started.goto("https://slow.example.com")

    @pytest.mark.asyncio
    async def test_goto_failure(self, started, page):
        page.goto.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        with pytest.raises(BrowserActionError, match="Navigation failed"):
            await started.goto("https://missing.invalid")

    @pytest.mark.asyncio
    async def test_page_info(self, started):
        assert await started.get_url() == "https://example.com/"
        assert await started.get_title() == "Example Domain"


class TestContent:
    """Tests for snapshots and markdown."""

    @pytest.mark.asyncio
    async def test_tree_with_refs(self, started, page):
        page.evaluate.side_effect = [serialized_page(), 1]
        text = await started.get_tree_with_refs()
        assert text == '- button "Submit" [ref=E1]'
        flush_script, payload = page.evaluate.await_args_list[1].args
        assert flush_script == FLUSH_REFS_SCRIPT
        assert payload == {"refAttr": REF_ATTRIBUTE, "refs": {"E1": 2}, "roles": {"E1": "button"}}
        assert started.last_snapshot.element("E1").tag == "BUTTON"

    @pytest.mark.asyncio
    async def test_empty_document(self, started, page):
        page.evaluate.return_value = {"url": "about:blank", "children": []}
        assert await started.get_tree_with_refs() == ""
        assert page.evaluate.await_count == 1

    @pytest.mark.asyncio
    async def test_markdown(self, started, page):
        page.content.return_value = "<html><body><h1>Prices</h1><p>Widget: $10</p></body></html>"
        markdown = await started.get_markdown()
        assert "# Prices" in markdown
        assert "Widget: $10" in markdown


class TestActions:
    """Tests for element actions."""

    @pytest.mark.asyncio
    async def test_click(self, started, page, element):
        await started.perform_action("E1", "click")
        element.click.assert_awaited_once_with(timeout=ACTION_TIMEOUT_MS)
        page.frames[1].locator.assert_called_with(f'[{REF_ATTRIBUTE}="E1"]')
        page.wait_for_load_state.assert_awaited_once_with("domcontentloaded", timeout=3000)

    @pytest.mark.asyncio
    async def test_fill_and_enter(self, started, element):
        await started.perform_action("E2", "fill_and_enter", "cats")
        element.fill.assert_awaited_once_with("cats", timeout=ACTION_TIMEOUT_MS)
        element.press.assert_awaited_once_with("Enter", timeout=ACTION_TIMEOUT_MS)

    @pytest.mark.asyncio
    async def test_select(self, started, element):
        await started.perform_action("E3", "select", "Blue")
        element.select_option.assert_awaited_once_with("Blue", timeout=ACTION_TIMEOUT_MS)

    @pytest.mark.asyncio
    async def test_malformed_ref(self, started, page):
        with pytest.raises(InvalidRefError):
            await started.perform_action("button-1", "click")
        page.frames[0].locator.assert_not_called()

    @pytest.mark.asyncio
    async def test_ref_not_on_page(self, started, page):
        page.frames = [make_frame()]
        with pytest.raises(InvalidRefError) as exc_info:
            await started.perform_action("E9", "click")
        assert exc_info.value.ref == "E9"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_not_found(self, started, element):
        element.click.side_effect = PlaywrightTimeout("Timeout 5000ms exceeded")
        with pytest.raises(ElementNotFoundError, match="could not be reached"):
            await started.perform_action("E1", "click")

    @pytest.mark.asyncio
    async def test_other_failures(self, started, element):
        element.check.side_effect = RuntimeError("Not a checkbox")
        with pytest.raises(BrowserActionError) as exc_info:
            await started.perform_action("E1", "check")
        assert exc_info.value.ref == "E1"

    @pytest.mark.asyncio
    async def test_unsupported_action(self, started):
        with pytest.raises(BrowserActionError, match="Unsupported element action"):
            await started.perform_action("E1", "done")

    @pytest.mark.asyncio
    async def test_settle_timeout_ignored(self, started, page, element):
        page.wait_for_load_state.side_effect = PlaywrightTimeout("Timeout 3000ms exceeded")
        await started.perform_action("E1", "hover")
        element.hover.assert_awaited_once()


class TestTemporaryTab:
    """Tests for scratch tabs."""

    @pytest.mark.asyncio
    async def test_tab_closed_on_error(self, started):
        tab = MagicMock()
        tab.close = AsyncMock()
        started.context.new_page.return_value = tab
        with pytest.raises(RuntimeError):
            async with started.temporary_tab() as opened:
                assert opened is tab
                raise RuntimeError("extraction failed")
        tab.close.assert_awaited_once()
