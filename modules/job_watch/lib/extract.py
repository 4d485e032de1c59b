"""
Field extraction from a card handle.

All extract_* functions are total: a missing node, an invalid selector or a
detached handle yields "" and never raises to the caller.
"""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlsplit

from .rendering.base import ElementHandle
from .utils import collapse_ws

log = logging.getLogger(__name__)

# Selectors meaning "the card itself" for attribute reads.
SELF_SELECTORS = frozenset({"", ".", ":scope"})


def extract_text(card: ElementHandle, selector: str) -> str:
    """
    Concatenated text of the selected subtree: every text-bearing leaf,
    trimmed, joined depth-first with single spaces. Captures text inside
    nested tooltip markup that a first-text-node read would miss.
    """
    try:
        el = card.find(selector)
        if el is None:
            return ""
        return collapse_ws(el.text())
    except Exception as e:
        log.debug("extract_text failed for selector %r: %r", selector, e)
        return ""


def extract_visible_text(card: ElementHandle, selector: str) -> str:
    """As-rendered text of the selected element (hidden descendants excluded)."""
    try:
        el = card.find(selector)
        if el is None:
            return ""
        return collapse_ws(el.visible_text())
    except Exception as e:
        log.debug("extract_visible_text failed for selector %r: %r", selector, e)
        return ""


def extract_attribute(card: ElementHandle, selector: str, attr: str) -> str:
    """
    Attribute value of the selected element. An empty or "." selector reads the
    card itself, so a card that is the link element can supply its own href.
    """
    try:
        el = card if (selector or "").strip() in SELF_SELECTORS else card.find(selector)
        if el is None:
            return ""
        return (el.attribute(attr) or "").strip()
    except Exception as e:
        log.debug("extract_attribute(%r) failed for selector %r: %r", attr, selector, e)
        return ""


def resolve_url(href: str, base_url: str) -> str:
    """Absolute form of `href` relative to the listing page URL; "" when unparseable."""
    href = (href or "").strip()
    if not href:
        return ""
    try:
        return urljoin(base_url, href)
    except ValueError as e:
        log.debug("resolve_url failed for href %r: %r", href, e)
        return ""


def extract_link(card: ElementHandle, selector: str, base_url: str, attr: str = "href") -> str:
    """extract_attribute() followed by resolve_url(); never returns a relative link."""
    return resolve_url(extract_attribute(card, selector, attr), base_url)


def company_from_url(url: str) -> str:
    """
    Low-fidelity company label from the source host: drop a leading "www."
    and keep the first dot-delimited label ("https://www.getonbrd.com/x" -> "getonbrd").
    Not a real company-name extractor.
    """
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return "Unknown"
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0] or "Unknown"
