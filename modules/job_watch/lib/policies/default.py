from __future__ import annotations

from .base import SitePolicy
from .registry import register


@register
class DefaultPolicy(SitePolicy):
    """Technology-keyword check on the title; no scrolling."""

    kind = "default"
