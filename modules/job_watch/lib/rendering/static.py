from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager

import requests
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, Doctype, ProcessingInstruction

from ..config import SiteDescriptor
from ..http_client import HttpClient
from .base import ElementHandle, Renderer, RendererError

log = logging.getLogger(__name__)

# Never rendered; excluded from visible text.
_NON_RENDERED = frozenset({"script", "style", "template", "noscript", "head", "title", "meta"})
_HIDDEN_STYLE_RE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.I)
_BLOCK_TAGS = frozenset({
    "address", "article", "aside", "blockquote", "br", "dd", "div", "dl", "dt", "fieldset",
    "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header",
    "hr", "li", "main", "nav", "ol", "p", "pre", "section", "table", "tr", "ul",
})


def _is_text_node(node: object) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, (Comment, Doctype, ProcessingInstruction))


def _deep_text(tag: Tag) -> str:
    parts: list[str] = []
    for child in tag.children:
        if _is_text_node(child):
            trimmed = str(child).strip()
            if trimmed:
                parts.append(trimmed)
        elif isinstance(child, Tag):
            nested = _deep_text(child)
            if nested:
                parts.append(nested)
    return " ".join(parts)


def _is_hidden(tag: Tag) -> bool:
    if tag.name in _NON_RENDERED:
        return True
    if tag.has_attr("hidden") or tag.get("aria-hidden") == "true":
        return True
    return bool(_HIDDEN_STYLE_RE.search(tag.get("style") or ""))


def _visible_text(tag: Tag) -> str:
    # Static approximation of innerText: inline style and `hidden` are the only layout we can see.
    lines: list[str] = []
    current: list[str] = []

    def _flush() -> None:
        line = " ".join(" ".join(current).split())
        if line:
            lines.append(line)
        current.clear()

    def _walk(node: Tag) -> None:
        for child in node.children:
            if _is_text_node(child):
                current.append(str(child))
            elif isinstance(child, Tag) and not _is_hidden(child):
                block = child.name in _BLOCK_TAGS
                if block:
                    _flush()
                _walk(child)
                if block:
                    _flush()

    if _is_hidden(tag):
        return ""
    _walk(tag)
    _flush()
    return "\n".join(lines)


class SoupElement(ElementHandle):
    """ElementHandle over a parsed BeautifulSoup node."""

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    def text(self) -> str:
        return _deep_text(self._tag)

    def visible_text(self) -> str:
        return _visible_text(self._tag)

    def attribute(self, name: str) -> str | None:
        value = self._tag.get(name)
        if value is None:
            return None
        # Multi-valued attributes (class, rel) come back as lists.
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def find(self, selector: str) -> SoupElement | None:
        found = self._tag.select_one(selector)
        return SoupElement(found) if found is not None else None

    def __repr__(self) -> str:
        return f"SoupElement(<{self._tag.name}>)"


def cards_from_html(html: str, card_selector: str) -> list[ElementHandle]:
    soup = BeautifulSoup(html, "html.parser")
    return [SoupElement(tag) for tag in soup.select(card_selector)]


class StaticRenderer(Renderer):
    """
    Fetches the listing with requests and parses it with BeautifulSoup.
    No JavaScript runs, so only server-rendered listings work; scroll-to-load
    is not available and is skipped.
    """

    name = "static"

    def __init__(self, client: HttpClient | None = None, *, timeout_ms: int = 60_000) -> None:
        self._client = client
        self._timeout_s = timeout_ms / 1000.0

    def start(self) -> None:
        if self._client is None:
            self._client = HttpClient(timeout=self._timeout_s)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @contextmanager
    def open_cards(self, site: SiteDescriptor, *, scroll_to_load: bool = False) -> Iterator[list[ElementHandle]]:
        if self._client is None:
            raise RendererError("StaticRenderer not started. Call start() first.")
        try:
            html = self._client.get_text(site.url)
        except requests.RequestException as e:
            raise RendererError(f"fetch failed for {site.url}: {e}") from e

        if scroll_to_load:
            log.debug("Static renderer cannot scroll; using first page only for %s", site.url)

        cards = cards_from_html(html, site.card_selector)
        if not cards:
            log.warning("Job cards not found with selector %r on %s", site.card_selector, site.url)
        yield cards
