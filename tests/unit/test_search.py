"""Unit tests for browser-backed web search."""
from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from exceptions import BrowserActionError, ConfigurationError
from search import (
    SEARCH_TIMEOUT_MS,
    BingSearch,
    DuckDuckGoSearch,
    GoogleSearch,
    create_search_provider,
)


def browser_with_tab(tab):
    browser = MagicMock()

    @asynccontextmanager
    async def temporary_tab():
        try:
            yield tab
        finally:
            await tab.close()

    browser.temporary_tab = temporary_tab
    return browser


@pytest.fixture
def tab():
    tab = MagicMock()
    tab.goto = AsyncMock()
    tab.close = AsyncMock()
    tab.content = AsyncMock(
        return_value="<html><body><h2>Python 3.13 released</h2><p>python.org</p></body></html>"
    )
    return tab


class TestProviders:
    """Tests for search URLs and provider selection."""

    def test_search_urls(self):
        assert DuckDuckGoSearch().search_url("a b&c") == "https://lite.duckduckgo.com/lite/?q=a%20b%26c"
        assert GoogleSearch().search_url("cats") == "https://www.google.com/search?q=cats"
        assert BingSearch().search_url("c/d") == "https://www.bing.com/search?q=c%2Fd"

    def test_create_provider(self):
        assert create_search_provider("none") is None
        assert isinstance(create_search_provider("duckduckgo"), DuckDuckGoSearch)
        assert isinstance(create_search_provider("bing"), BingSearch)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown search provider: altavista"):
            create_search_provider("altavista")


class TestSearch:
    """Tests for running a search in a scratch tab."""

    @pytest.mark.asyncio
    async def test_results_as_markdown(self, tab):
        browser = browser_with_tab(tab)
        markdown = await DuckDuckGoSearch().search("python release", browser)

        tab.goto.assert_awaited_once_with(
            "https://lite.duckduckgo.com/lite/?q=python%20release",
            wait_until="load",
            timeout=SEARCH_TIMEOUT_MS,
        )
        assert markdown.startswith('# Search Results for "python release" (via duckduckgo)')
        assert "## Python 3.13 released" in markdown
        tab.close.assert_awaited_once()
        browser.goto.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_closes_tab(self, tab):
        tab.goto.side_effect = RuntimeError("net::ERR_CONNECTION_RESET")
        browser = browser_with_tab(tab)

        with pytest.raises(BrowserActionError, match="Search failed: net::ERR_CONNECTION_RESET") as exc_info:
            await GoogleSearch().search("python release", browser)

        assert exc_info.value.action == "web_search"
        tab.close.assert_awaited_once()
