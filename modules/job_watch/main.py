from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_watch' module.

    Accepts kwargs (from scheduler/runner/CLI), including:
      sites_path: str = "/app/local/config/sites.csv"
      sqlite_path: str = "/app/local/state/jobwatch.db"
      renderer: str = "playwright"   # or "static"
      headless: bool = True
      max_age_days: int | None = 7
      site_delay_seconds: float = 1.0
      skip_network: bool = False

    Returns:
      A meta dict: the run summary counters plus a one-line 'message'.

    Raises:
      ConfigError / RendererError on startup failure; the runner re-raises so
      the CLI can exit non-zero.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "job_watch.main",
        "op": "start",
        "sites_path": settings.sites_path,
        "sqlite_path": settings.sqlite_path,
        "renderer": settings.renderer,
    })

    summary = _run_engine(settings)
    return {**summary.as_dict(), "message": summary.message()}
