from __future__ import annotations

from .base import SitePolicy
from .registry import register


@register
class LinkedInPolicy(SitePolicy):
    """Public LinkedIn search lazy-loads results; scroll before collecting cards."""

    kind = "linkedin"
    scroll_to_load = True
