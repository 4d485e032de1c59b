from __future__ import annotations

from .base import SitePolicy

# Global in-process registry: site tag -> policy class
_REGISTRY: dict[str, type[SitePolicy]] = {}


def register(cls: type[SitePolicy]) -> type[SitePolicy]:
    """
    Class decorator registering a site policy under cls.kind.
    Re-registering the same class is a no-op; a different class for a taken kind is rejected.
    """
    kind = getattr(cls, "kind", "") or ""
    if not isinstance(kind, str) or not kind.strip():
        raise ValueError(f"Cannot register policy {cls!r}: missing/empty 'kind'.")
    key = kind.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Site policy {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(kind: str) -> type[SitePolicy]:
    """
    Look up a policy class by tag (case-insensitive).
    Raises KeyError if not found.
    """
    key = (kind or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No site policy registered for {kind!r}.")
    return _REGISTRY[key]


def all_kinds() -> dict[str, type[SitePolicy]]:
    return dict(_REGISTRY)
