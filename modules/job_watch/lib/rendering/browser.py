from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config import SiteDescriptor
from ..http_client import ACCEPT_LANGUAGE, BROWSER_USER_AGENT
from .base import ElementHandle, Renderer, RendererError

log = logging.getLogger(__name__)

# Depth-first concatenation of every text node under `node`, trimmed and
# space-joined. Runs in the page, so it also sees text inside tooltips and
# other hidden markup.
_DEEP_TEXT_JS = """
(node) => {
  const walk = (n) => {
    let out = '';
    for (const child of n.childNodes) {
      let piece = '';
      if (child.nodeType === Node.TEXT_NODE) {
        piece = (child.textContent || '').trim();
      } else if (child.nodeType === Node.ELEMENT_NODE) {
        piece = walk(child);
      }
      if (piece) out += (out ? ' ' : '') + piece;
    }
    return out;
  };
  return walk(node) || (node.textContent || '');
}
"""

_SCROLL_HEIGHT_JS = "() => document.documentElement.scrollHeight"
_SCROLL_STEP_JS = "() => window.scrollBy(0, window.innerHeight)"
_SCROLL_TOP_JS = "() => window.scrollTo(0, 0)"


class PlaywrightElement(ElementHandle):
    """ElementHandle over a live Playwright element."""

    def __init__(self, handle: Any) -> None:
        self._handle = handle

    def text(self) -> str:
        return str(self._handle.evaluate(_DEEP_TEXT_JS) or "")

    def visible_text(self) -> str:
        return self._handle.inner_text() or ""

    def attribute(self, name: str) -> str | None:
        return self._handle.get_attribute(name)

    def find(self, selector: str) -> PlaywrightElement | None:
        found = self._handle.query_selector(selector)
        return PlaywrightElement(found) if found is not None else None


def scroll_to_load(page: Any, card_selector: str, *, max_scrolls: int = 5, pause_ms: int = 1000) -> int:
    """
    Bounded scroll loop for infinite-scroll listings.

    Scrolls one viewport at a time, pausing `pause_ms` after each step, for at
    most `max_scrolls` iterations; stops early once the document height stops
    growing. Returns the number of scroll steps taken. Scrolls back to the top
    before returning.
    """
    previous_height = 0
    steps = 0
    while steps < max_scrolls:
        try:
            height = page.evaluate(_SCROLL_HEIGHT_JS)
            if height == previous_height:
                log.debug("Reached end of scrollable content after %d step(s)", steps)
                break
            page.evaluate(_SCROLL_STEP_JS)
            page.wait_for_timeout(pause_ms)
            with contextlib.suppress(PlaywrightTimeoutError):
                page.wait_for_selector(card_selector, timeout=3000)
        except PlaywrightError as e:
            log.debug("Scroll step failed: %r", e)
            break
        previous_height = height
        steps += 1
        log.debug("Scroll %d/%d", steps, max_scrolls)

    with contextlib.suppress(PlaywrightError):
        page.evaluate(_SCROLL_TOP_JS)
    return steps


class PlaywrightRenderer(Renderer):
    """
    Headless Chromium via Playwright's sync API. One browser per run; a fresh
    context and page per site, closed when the site's `with` block exits.
    """

    name = "playwright"

    def __init__(
        self,
        *,
        headless: bool = True,
        nav_timeout_ms: int = 60_000,
        card_timeout_ms: int = 15_000,
        settle_ms: int = 3_000,
        scroll_max: int = 5,
        scroll_pause_ms: int = 1_000,
    ) -> None:
        self.headless = headless
        self.nav_timeout_ms = nav_timeout_ms
        self.card_timeout_ms = card_timeout_ms
        self.settle_ms = settle_ms
        self.scroll_max = scroll_max
        self.scroll_pause_ms = scroll_pause_ms
        self._playwright: Any = None
        self._browser: Any = None

    def start(self) -> None:
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.headless)
        except PlaywrightError as e:
            self.close()
            raise RendererError(f"failed to launch browser: {e}") from e
        log.info("Browser initialized (headless=%s)", self.headless)

    def close(self) -> None:
        if self._browser is not None:
            with contextlib.suppress(PlaywrightError):
                self._browser.close()
            self._browser = None
            log.info("Browser closed")
        if self._playwright is not None:
            with contextlib.suppress(PlaywrightError):
                self._playwright.stop()
            self._playwright = None

    @contextmanager
    def open_cards(self, site: SiteDescriptor, *, scroll_to_load: bool = False) -> Iterator[list[ElementHandle]]:
        if self._browser is None:
            raise RendererError("PlaywrightRenderer not started. Call start() first.")

        context = self._browser.new_context(
            user_agent=BROWSER_USER_AGENT,
            extra_http_headers={"Accept-Language": ACCEPT_LANGUAGE},
        )
        try:
            page = context.new_page()
            page.set_default_timeout(30_000)
            cards = self._load_cards(page, site, scroll=scroll_to_load)
            yield cards
        finally:
            with contextlib.suppress(PlaywrightError):
                context.close()

    # ---- internals ----

    def _load_cards(self, page: Any, site: SiteDescriptor, *, scroll: bool) -> list[ElementHandle]:
        try:
            page.goto(site.url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
        except PlaywrightError as e:
            raise RendererError(f"navigation failed for {site.url}: {e}") from e

        # Extra settle time for client-rendered listings.
        page.wait_for_timeout(self.settle_ms)

        try:
            page.wait_for_selector(site.card_selector, timeout=self.card_timeout_ms)
        except PlaywrightTimeoutError:
            log.warning("Job cards not found with selector %r on %s", site.card_selector, site.url)
            return []

        if scroll:
            scroll_to_load(page, site.card_selector, max_scrolls=self.scroll_max, pause_ms=self.scroll_pause_ms)

        handles = page.query_selector_all(site.card_selector)
        log.info("Found %d job cards on %s", len(handles), site.url)
        return [PlaywrightElement(h) for h in handles]
