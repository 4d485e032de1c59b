# modules/job_watch/lib/rendering/__init__.py
from __future__ import annotations

from .base import ElementHandle, Renderer, RendererError


def build_renderer(settings) -> Renderer:
    """Renderer named by settings.renderer, configured from the same settings."""
    if settings.renderer == "static":
        from .static import StaticRenderer

        return StaticRenderer(timeout_ms=settings.nav_timeout_ms)

    from .browser import PlaywrightRenderer

    return PlaywrightRenderer(
        headless=settings.headless,
        nav_timeout_ms=settings.nav_timeout_ms,
        card_timeout_ms=settings.card_timeout_ms,
        settle_ms=settings.settle_ms,
        scroll_max=settings.scroll_max,
        scroll_pause_ms=settings.scroll_pause_ms,
    )


__all__ = ["ElementHandle", "Renderer", "RendererError", "build_renderer"]
