from __future__ import annotations

import csv
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from .utils import truthy

log = logging.getLogger(__name__)


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when the site file or kwargs cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
REQUIRED_COLUMNS = ("url", "job_card_selector", "title_selector", "date_selector", "link_selector")


@dataclass(frozen=True)
class SiteDescriptor:
    """
    One configured listing page.
    - card_selector: the repeating unit that represents one posting
    - site: policy tag selecting validator/scroll behavior ("default", "getonbrd", "linkedin")
    - company: explicit company label; blank means derive from the host
    Selectors are opaque strings handed to the renderer.
    """

    url: str
    card_selector: str
    title_selector: str
    date_selector: str
    link_selector: str
    location_selector: str | None = None
    site: str = "default"
    company: str | None = None


def infer_site_kind(url: str) -> str:
    """Policy tag for rows that leave the `site` column blank."""
    host = (urlsplit(url).hostname or "").lower()
    if "getonbrd" in host:
        return "getonbrd"
    if "linkedin" in host:
        return "linkedin"
    return "default"


def load_sites(path: str) -> list[SiteDescriptor]:
    """
    Read the site CSV. Rows missing a required column are skipped with a
    warning; a missing or unreadable file is a ConfigError.
    """
    try:
        # utf-8-sig: spreadsheet exports often start with a byte-order mark.
        with open(path, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
    except FileNotFoundError as e:
        raise ConfigError(f"sites file not found: {path}") from e
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise ConfigError(f"sites file unreadable: {path}: {e}") from e

    sites: list[SiteDescriptor] = []
    for lineno, row in enumerate(rows, start=2):  # line 1 is the header
        cells = {str(k).strip(): (v or "").strip() for k, v in row.items() if k is not None}
        missing = [c for c in REQUIRED_COLUMNS if not cells.get(c)]
        if missing:
            log.warning("Skipping incomplete sites row %d (missing %s): %r", lineno, ", ".join(missing), cells)
            continue
        sites.append(
            SiteDescriptor(
                url=cells["url"],
                card_selector=cells["job_card_selector"],
                title_selector=cells["title_selector"],
                date_selector=cells["date_selector"],
                link_selector=cells["link_selector"],
                location_selector=cells.get("location_selector") or None,
                site=(cells.get("site") or infer_site_kind(cells["url"])).lower(),
                company=cells.get("company") or None,
            )
        )
    log.info("Loaded %d site configuration(s) from %s", len(sites), path)
    return sites


@dataclass
class Settings:
    """
    Canonical configuration for one 'job_watch' run.

    Sites are loaded lazily from `sites_path` the first time they are needed
    and cached on the instance.
    """

    sites_path: str = "/app/local/config/sites.csv"
    sqlite_path: str = "/app/local/state/jobwatch.db"

    # Rendering
    renderer: str = "playwright"
    headless: bool = True
    nav_timeout_ms: int = 60_000
    card_timeout_ms: int = 15_000
    settle_ms: int = 3_000
    scroll_max: int = 5
    scroll_pause_ms: int = 1_000

    # Pipeline behavior
    max_age_days: int | None = 7
    site_delay_seconds: float = 1.0
    skip_network: bool = False

    _sites: list[SiteDescriptor] = field(default_factory=list, repr=False)

    def sites(self) -> list[SiteDescriptor]:
        if not self._sites:
            self._sites = load_sites(self.sites_path)
        return self._sites

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from runner kwargs with validation. Every key is optional;
        see the dataclass defaults. `max_age_days: null` disables the date window.
        """
        kw = dict(kwargs or {})
        defaults = cls()

        def _int(name: str, default: int) -> int:
            raw = kw.get(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"'{name}' must be an integer (got {raw!r}).") from e

        if "max_age_days" in kw and kw["max_age_days"] is None:
            max_age_days: int | None = None
        else:
            max_age_days = _int("max_age_days", 7)

        try:
            site_delay_seconds = float(kw.get("site_delay_seconds", defaults.site_delay_seconds))
        except (TypeError, ValueError) as e:
            raise ConfigError("'site_delay_seconds' must be a number.") from e

        settings = cls(
            sites_path=str(kw.get("sites_path") or defaults.sites_path),
            sqlite_path=str(kw.get("sqlite_path") or defaults.sqlite_path),
            renderer=str(kw.get("renderer") or defaults.renderer).strip().lower(),
            headless=truthy(kw["headless"]) if "headless" in kw else defaults.headless,
            nav_timeout_ms=_int("nav_timeout_ms", defaults.nav_timeout_ms),
            card_timeout_ms=_int("card_timeout_ms", defaults.card_timeout_ms),
            settle_ms=_int("settle_ms", defaults.settle_ms),
            scroll_max=_int("scroll_max", defaults.scroll_max),
            scroll_pause_ms=_int("scroll_pause_ms", defaults.scroll_pause_ms),
            max_age_days=max_age_days,
            site_delay_seconds=site_delay_seconds,
            skip_network=truthy(kw.get("skip_network")),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
RENDERERS = ("playwright", "static")


def _validate_settings(s: Settings) -> None:
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if not s.sites_path.strip():
        raise ConfigError("'sites_path' cannot be empty.")
    if s.renderer not in RENDERERS:
        raise ConfigError(f"'renderer' must be one of {', '.join(RENDERERS)} (got {s.renderer!r}).")
    if s.max_age_days is not None and s.max_age_days < 0:
        raise ConfigError("'max_age_days' must be >= 0 or null.")
    if s.site_delay_seconds < 0:
        raise ConfigError("'site_delay_seconds' must be >= 0.")
    for name in ("nav_timeout_ms", "card_timeout_ms", "settle_ms", "scroll_pause_ms"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' must be >= 0.")
    if s.scroll_max < 0:
        raise ConfigError("'scroll_max' must be >= 0.")

    # Every site must name a registered policy. Loading the file here also
    # surfaces a missing sites file as a startup failure.
    from .policies.registry import all_kinds

    known = all_kinds()
    for site in s.sites():
        if site.site not in known:
            raise ConfigError(f"Unknown site policy {site.site!r} for {site.url} (known: {', '.join(sorted(known))}).")
