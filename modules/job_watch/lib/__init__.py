# modules/job_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience. Importing `policies`
# registers the built-in site policies.
from . import policies as _policies  # noqa: F401
from .config import ConfigError, Settings, SiteDescriptor, load_sites
from .engine import run_once
from .models import NormalizedPosting, PersistedJob, RawPosting, RunSummary

__all__ = [
    "ConfigError",
    "NormalizedPosting",
    "PersistedJob",
    "RawPosting",
    "RunSummary",
    "Settings",
    "SiteDescriptor",
    "load_sites",
    "run_once",
]
