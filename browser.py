"""Browser controller: the capability the agent drives, and its Playwright implementation."""
from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal, Optional, Protocol, Union

from markdownify import markdownify
from playwright.async_api import (
    Browser,
    BrowserContext,
    Locator,
    Page,
    Playwright,
    async_playwright,
    TimeoutError as PlaywrightTimeout,
)

from agent_types import PageAction
from aria_tree import REF_ATTRIBUTE, RenderedSnapshot, generate_and_render
from dom import Document
from exceptions import (
    BrowserActionError,
    BrowserNotStartedError,
    ElementNotFoundError,
    InvalidRefError,
    NavigationTimeoutError,
)

BrowserType = Literal["chromium", "firefox", "webkit"]
LoadState = Literal["load", "domcontentloaded", "networkidle"]

REF_PATTERN = re.compile(r"^E\d+$")
ACTION_TIMEOUT_MS = 5000
SETTLE_TIMEOUT_MS = 3000


def html_to_markdown(html: str) -> str:
    return markdownify(html, heading_style="ATX").strip()


class AriaBrowser(Protocol):
    """What the agent needs from a browser."""

    async def start(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def goto(self, url: str, timeout_ms: int = 30000) -> None: ...

    async def go_back(self) -> None: ...

    async def go_forward(self) -> None: ...

    async def get_url(self) -> str: ...

    async def get_title(self) -> str: ...

    async def get_tree_with_refs(self) -> str: ...

    async def get_markdown(self) -> str: ...

    async def perform_action(self, ref: str, action: str, value: Optional[Union[str, int, float]] = None) -> None: ...

    async def wait_for_load_state(self, state: LoadState = "load", timeout_ms: int = 30000) -> None: ...

    def temporary_tab(self) -> Any: ...


# ─────────────────────────────────────────────────────────────────────────────
# Page-side scripts
# ─────────────────────────────────────────────────────────────────────────────

# Serializes the document into the JSON read by dom.Document.from_dict. Every
# dumped node is kept in window.__pilotNodes so refs can be flushed back later.
DUMP_DOM_SCRIPT = """
(refAttr) => {
  const roleAttr = refAttr.replace(/-ref$/, "-role");
  const nodes = [];
  const ids = new Map();
  const idOf = (node) => {
    let id = ids.get(node);
    if (id === undefined) {
      id = nodes.length;
      nodes.push(node);
      ids.set(node, id);
    }
    return id;
  };
  const styleOf = (style) => ({
    display: style.display,
    visibility: style.visibility,
    pointerEvents: style.pointerEvents,
    cursor: style.cursor,
    content: style.content,
  });
  const pseudo = (el, which) => {
    const style = el.ownerDocument.defaultView.getComputedStyle(el, which);
    if (!style || style.content === "none" || style.content === "normal") return null;
    return styleOf(style);
  };
  const dumpText = (node) => {
    const range = node.ownerDocument.createRange();
    range.selectNodeContents(node);
    const rect = range.getBoundingClientRect();
    return {type: "text", text: node.nodeValue || "", visible: rect.width > 0 && rect.height > 0, nid: idOf(node)};
  };
  const dumpChildren = (parent) => {
    const out = [];
    for (const child of parent.childNodes) {
      if (child.nodeType === Node.TEXT_NODE) out.push(dumpText(child));
      else if (child.nodeType === Node.ELEMENT_NODE) out.push(dumpElement(child));
    }
    return out;
  };
  const dumpElement = (el) => {
    el.removeAttribute(refAttr);
    el.removeAttribute(roleAttr);
    const attrs = {};
    for (const attr of el.attributes) attrs[attr.name] = attr.value;
    const view = el.ownerDocument.defaultView;
    const rect = el.getBoundingClientRect();
    const data = {
      tag: el.tagName,
      nid: idOf(el),
      attrs,
      style: styleOf(view.getComputedStyle(el)),
      before: pseudo(el, "::before"),
      after: pseudo(el, "::after"),
      rect: [rect.x, rect.y, rect.width, rect.height],
      checkVisibility: typeof el.checkVisibility === "function" ? el.checkVisibility() : true,
      props: {
        value: "value" in el && typeof el.value === "string" ? el.value : "",
        type: el.tagName === "INPUT" ? el.type : "",
        checked: !!el.checked,
        indeterminate: !!el.indeterminate,
        selected: !!el.selected,
        open: !!el.open,
        hidden: !!el.hidden,
        size: typeof el.size === "number" ? el.size : 0,
      },
      children: dumpChildren(el),
    };
    if (el.shadowRoot) data.shadow = dumpChildren(el.shadowRoot);
    if (el.tagName === "SLOT") data.assigned = el.assignedNodes().map(idOf);
    if (el.tagName === "IFRAME" || el.tagName === "FRAME") {
      try {
        const doc = el.contentDocument;
        data.frame = doc && doc.documentElement ? {document: dumpDocument(doc)} : {crossOrigin: true};
      } catch (e) {
        data.frame = {crossOrigin: true};
      }
    }
    return data;
  };
  const dumpDocument = (doc) => ({
    url: doc.URL,
    children: doc.documentElement ? [dumpElement(doc.documentElement)] : [],
  });
  const result = dumpDocument(document);
  window.__pilotNodes = nodes;
  return result;
}
"""

FLUSH_REFS_SCRIPT = """
({refAttr, refs, roles}) => {
  const roleAttr = refAttr.replace(/-ref$/, "-role");
  const nodes = window.__pilotNodes || [];
  let flushed = 0;
  for (const [ref, nid] of Object.entries(refs)) {
    const node = nodes[nid];
    if (!node || node.nodeType !== Node.ELEMENT_NODE) continue;
    node.setAttribute(refAttr, ref);
    if (roles[ref]) node.setAttribute(roleAttr, roles[ref]);
    flushed += 1;
  }
  return flushed;
}
"""


class PlaywrightBrowser:
    """Playwright-backed browser that exposes the page as an accessibility snapshot."""

    def __init__(
        self,
        browser_type: BrowserType = "chromium",
        headless: bool = True,
        viewport_width: int = 1280,
        viewport_height: int = 800,
        slow_mo: int = 0,
        bypass_csp: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.browser_type = browser_type
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.slow_mo = slow_mo
        self.bypass_csp = bypass_csp
        self.logger = logger or logging.getLogger("browser")

        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.last_snapshot: Optional[RenderedSnapshot] = None

    def _ensure_started(self) -> Page:
        """Raise if browser not started."""
        if self.page is None:
            raise BrowserNotStartedError()
        return self.page

    async def start(self) -> None:
        """Start the browser with specified engine."""
        if self.page is not None:
            return
        self._playwright = await async_playwright().start()

        browser_launcher = getattr(self._playwright, self.browser_type)
        launch_options: dict[str, Any] = {"headless": self.headless}
        if self.slow_mo > 0:
            launch_options["slow_mo"] = self.slow_mo

        self.browser = await browser_launcher.launch(**launch_options)
        self.context = await self.browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height},
            bypass_csp=self.bypass_csp,
        )
        self.page = await self.context.new_page()
        self.logger.info(f"Browser started: {self.browser_type} (headless={self.headless})")

    async def shutdown(self) -> None:
        """Close the browser and clean up resources."""
        if self.page:
            await self.page.close()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self._playwright:
            await self._playwright.stop()
        self.page = None
        self.context = None
        self.browser = None
        self._playwright = None
        self.last_snapshot = None
        self.logger.info("Browser closed")

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    async def goto(self, url: str, timeout_ms: int = 30000) -> None:
        """Navigate to a URL, waiting for the load event."""
        page = self._ensure_started()
        try:
            await page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(url, timeout_ms, 1, 1) from e
        except Exception as e:
            raise BrowserActionError(PageAction.GOTO.value, f"Navigation failed: {e}") from e

    async def go_back(self) -> None:
        """Go back in history."""
        page = self._ensure_started()
        await page.go_back()

    async def go_forward(self) -> None:
        """Go forward in history."""
        page = self._ensure_started()
        await page.go_forward()

    async def wait_for_load_state(self, state: LoadState = "load", timeout_ms: int = 30000) -> None:
        """Wait for page to reach specified load state."""
        page = self._ensure_started()
        await page.wait_for_load_state(state, timeout=timeout_ms)

    async def get_url(self) -> str:
        """Get current URL."""
        return self._ensure_started().url

    async def get_title(self) -> str:
        """Get current page title."""
        return await self._ensure_started().title()

    # ─────────────────────────────────────────────────────────────────────────
    # Page content
    # ─────────────────────────────────────────────────────────────────────────

    async def get_tree_with_refs(self) -> str:
        """Capture the accessibility snapshot and stamp its refs onto the live page."""
        page = self._ensure_started()
        dump = await page.evaluate(DUMP_DOM_SCRIPT, REF_ATTRIBUTE)
        document = Document.from_dict(dump)
        root = document.body or document.document_element
        if root is None:
            self.last_snapshot = RenderedSnapshot(text="")
            return ""

        snapshot = generate_and_render(root)
        flushed = await page.evaluate(
            FLUSH_REFS_SCRIPT,
            {"refAttr": REF_ATTRIBUTE, "refs": snapshot.node_ids(), "roles": snapshot.roles},
        )
        self.logger.debug(f"Captured snapshot with {len(snapshot.refs)} refs ({flushed} flushed)")
        self.last_snapshot = snapshot
        return snapshot.text

    async def get_markdown(self) -> str:
        """Current page content as markdown."""
        page = self._ensure_started()
        return html_to_markdown(await page.content())

    # ─────────────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────────────

    async def _locate(self, ref: str) -> Optional[Locator]:
        """Find the element stamped with ``ref`` in any frame of the page."""
        page = self._ensure_started()
        selector = f'[{REF_ATTRIBUTE}="{ref}"]'
        for frame in page.frames:
            locator = frame.locator(selector)
            if await locator.count() > 0:
                return locator.first
        return None

    async def perform_action(
        self,
        ref: str,
        action: str,
        value: Optional[Union[str, int, float]] = None,
    ) -> None:
        """Run an element action against the element stamped with ``ref``."""
        self._ensure_started()
        if not ref or not REF_PATTERN.match(ref):
            raise InvalidRefError(ref or "")

        locator = await self._locate(ref)
        if locator is None:
            raise InvalidRefError(ref)

        text = "" if value is None else str(value)
        try:
            if action == PageAction.CLICK:
                await locator.click(timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.HOVER:
                await locator.hover(timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.FILL:
                await locator.fill(text, timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.FOCUS:
                await locator.focus(timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.CHECK:
                await locator.check(timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.UNCHECK:
                await locator.uncheck(timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.SELECT:
                await locator.select_option(text, timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.ENTER:
                await locator.press("Enter", timeout=ACTION_TIMEOUT_MS)
            elif action == PageAction.FILL_AND_ENTER:
                await locator.fill(text, timeout=ACTION_TIMEOUT_MS)
                await locator.press("Enter", timeout=ACTION_TIMEOUT_MS)
            else:
                raise BrowserActionError(action, f"Unsupported element action: {action}", ref=ref)
        except BrowserActionError:
            raise
        except PlaywrightTimeout as e:
            raise ElementNotFoundError(
                f'[{REF_ATTRIBUTE}="{ref}"]',
                f"Element {ref} could not be reached for '{action}' within {ACTION_TIMEOUT_MS}ms. "
                "It may be hidden, covered by another element, or detached from the page.",
            ) from e
        except Exception as e:
            raise BrowserActionError(action, f"Failed to perform action: {e}", ref=ref) from e

        await self._settle()

    async def _settle(self) -> None:
        """Give navigation triggered by an action a moment to commit."""
        page = self._ensure_started()
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=SETTLE_TIMEOUT_MS)
        except PlaywrightTimeout:
            self.logger.debug("Page did not settle after action; continuing")

    # ─────────────────────────────────────────────────────────────────────────
    # Tabs
    # ─────────────────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def temporary_tab(self) -> AsyncIterator[Page]:
        """Open a scratch tab in the same context; it is closed on every exit path."""
        self._ensure_started()
        assert self.context is not None
        tab = await self.context.new_page()
        try:
            yield tab
        finally:
            await tab.close()
