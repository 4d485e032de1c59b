from __future__ import annotations

import unicodedata
from datetime import datetime, timezone
from typing import Any


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_utc() -> datetime:
    """Timezone-aware 'now' in UTC. Every timestamp in this module is UTC."""
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """
    UTC ISO-8601 timestamp, fixed microsecond precision, 'Z' suffix.
    Fixed width keeps stored strings sortable. Naive values are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def from_iso(s: str) -> datetime:
    """Inverse of to_iso(); tolerates a trailing 'Z'."""
    dt = datetime.fromisoformat(s.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def strip_accents(s: str) -> str:
    """NFD-decompose and drop combining marks: 'Híbrido' -> 'Hibrido'."""
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def collapse_ws(s: str | None) -> str:
    """Collapse internal whitespace runs to one space and trim."""
    return " ".join((s or "").split())
