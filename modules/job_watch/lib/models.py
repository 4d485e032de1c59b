from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class RawPosting:
    """
    One posting as extracted from a single card (pre-validation, pre-dedupe).
    `url` is always absolute; relative hrefs are resolved against the page URL.
    """

    title: str
    company: str
    url: str
    posted_date_raw: str
    location: str | None = None


@dataclass(frozen=True)
class NormalizedPosting(RawPosting):
    """
    RawPosting plus the normalized date. `posted_date` is None when the raw
    string could not be parsed; the engine then applies the ingestion-time
    fallback after validation.
    """

    posted_date: datetime | None = None

    @classmethod
    def from_raw(cls, raw: RawPosting, posted_date: datetime | None) -> NormalizedPosting:
        return cls(**asdict(raw), posted_date=posted_date)


@dataclass(frozen=True)
class NewJob:
    """Row to insert; `found_at` defaults to creation time in the repository."""

    title: str
    company: str
    url: str
    posted_date: datetime
    found_at: datetime | None = None


@dataclass(frozen=True)
class PersistedJob:
    """A stored job. `url` is unique across all rows."""

    id: int
    title: str
    company: str
    url: str
    posted_date: datetime
    found_at: datetime


@dataclass
class RunSummary:
    """
    Aggregate counters for one engine pass. Owned by the engine only.

    - found: postings with every required field, across all sites
    - saved: new rows created
    - skipped: stale, rejected by the site policy, or already stored
    - errors: per-card plus per-site failures
    - date_fallbacks: saved postings stamped with ingestion time
    - incomplete: cards dropped for a missing title/date/link
    """

    found: int = 0
    saved: int = 0
    skipped: int = 0
    errors: int = 0
    date_fallbacks: int = 0
    incomplete: int = 0
    sites_total: int = 0
    sites_failed: int = 0
    found_by_site: dict[str, int] = field(default_factory=dict)
    saved_by_site: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def message(self) -> str:
        return (
            f"{self.found} found, {self.saved} saved, {self.skipped} skipped, "
            f"{self.errors} errors across {self.sites_total} sites"
        )
