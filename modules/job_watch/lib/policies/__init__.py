# modules/job_watch/lib/policies/__init__.py
from __future__ import annotations

# Importing the built-in policies registers them.
from . import default as _default  # noqa: F401
from . import getonbrd as _getonbrd  # noqa: F401
from . import linkedin as _linkedin  # noqa: F401
from .base import SitePolicy
from .registry import all_kinds, get, register

__all__ = ["SitePolicy", "all_kinds", "get", "register"]
