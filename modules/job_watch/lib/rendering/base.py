from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from ..config import SiteDescriptor


class RendererError(RuntimeError):
    """Renderer start-up failure (fatal) or a navigation failure (per-site)."""


class ElementHandle(ABC):
    """
    Capability the field extractor depends on. Concrete handles wrap a live
    browser element or a parsed-HTML node; both may raise on a detached
    node or an invalid selector, and the extractor absorbs that.
    """

    @abstractmethod
    def text(self) -> str:
        """Every descendant text node, trimmed and joined depth-first with single spaces."""

    @abstractmethod
    def visible_text(self) -> str:
        """Text as rendered, respecting layout-based visibility."""

    @abstractmethod
    def attribute(self, name: str) -> str | None:
        """Attribute value, or None when absent."""

    @abstractmethod
    def find(self, selector: str) -> ElementHandle | None:
        """First descendant matching `selector`, or None."""


class Renderer(ABC):
    """
    Turns a SiteDescriptor into card handles.

    Contract:
      - start() once before the first site; failures are fatal (RendererError).
      - open_cards() yields the card handles for one site. Handles are only
        valid inside the `with` block.
      - A card selector that never appears yields [] (zero cards, not an error).
      - Navigation failures raise RendererError; the engine counts them per site.
      - close() is safe to call more than once.
    """

    name: str = ""

    def start(self) -> None:
        return None

    def close(self) -> None:
        return None

    @abstractmethod
    def open_cards(
        self,
        site: SiteDescriptor,
        *,
        scroll_to_load: bool = False,
    ) -> AbstractContextManager[list[ElementHandle]]:
        raise NotImplementedError
