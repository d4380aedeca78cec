"""Web search run in a scratch browser tab, returned as markdown."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Literal, Optional, Type
from urllib.parse import quote

from browser import html_to_markdown
from exceptions import BrowserActionError, ConfigurationError

if TYPE_CHECKING:
    from browser import AriaBrowser

SearchProviderName = Literal["none", "duckduckgo", "google", "bing"]

SEARCH_TIMEOUT_MS = 30000

logger = logging.getLogger("search")


class BrowserSearchProvider:
    """Loads a search engine's result page in a temporary tab.

    The agent's own page is left untouched. Results are not parsed; the
    model reads the markdown the same way it reads any other page.
    """

    name = "browser"
    url_template = ""

    def __init__(self, timeout_ms: int = SEARCH_TIMEOUT_MS):
        self.timeout_ms = timeout_ms

    def search_url(self, query: str) -> str:
        return self.url_template.format(query=quote(query, safe=""))

    async def search(self, query: str, browser: "AriaBrowser") -> str:
        """Run ``query`` and return the result page as markdown.

        Raises:
            BrowserActionError: If the result page could not be loaded.
        """
        url = self.search_url(query)
        logger.info(f"Searching {self.name} for {query!r}")
        try:
            async with browser.temporary_tab() as tab:
                await tab.goto(url, wait_until="load", timeout=self.timeout_ms)
                html = await tab.content()
        except Exception as e:
            raise BrowserActionError("web_search", f"Search failed: {e}") from e

        markdown = html_to_markdown(html)
        return f'# Search Results for "{query}" (via {self.name})\n\n```\n{markdown}\n```'


class DuckDuckGoSearch(BrowserSearchProvider):
    name = "duckduckgo"
    url_template = "https://lite.duckduckgo.com/lite/?q={query}"


class GoogleSearch(BrowserSearchProvider):
    name = "google"
    url_template = "https://www.google.com/search?q={query}"


class BingSearch(BrowserSearchProvider):
    name = "bing"
    url_template = "https://www.bing.com/search?q={query}"


PROVIDERS: Dict[str, Type[BrowserSearchProvider]] = {
    "duckduckgo": DuckDuckGoSearch,
    "google": GoogleSearch,
    "bing": BingSearch,
}


def create_search_provider(name: str) -> Optional[BrowserSearchProvider]:
    """Provider for ``name``; ``"none"`` disables search.

    Raises:
        ConfigurationError: If the provider is unknown.
    """
    if name == "none":
        return None
    provider = PROVIDERS.get(name)
    if provider is None:
        raise ConfigurationError(f"Unknown search provider: {name}", {"provider": name})
    return provider()
