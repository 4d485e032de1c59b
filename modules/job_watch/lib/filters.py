from __future__ import annotations

import re
from collections.abc import Iterable

from .utils import collapse_ws, strip_accents

# Technology vocabulary. A posting must hit at least one of these as a whole word.
TECH_KEYWORDS: tuple[str, ...] = (
    "node",
    "javascript",
    "typescript",
    "js",
    "ts",
    "python",
    "java",
    "react",
    "angular",
    "vue",
    "backend",
    "back-end",
    "frontend",
    "front-end",
    "fullstack",
    "full-stack",
    "full stack",
    "sistemas",
    "sistemas jr",
    "desarrollador",
    "programador",
    "soporte técnico",
    "infraestructura",
    "engineer",
    "developer",
    "golang",
    "c++",
    "cpp",
)

# Seniority vocabulary (junior / trainee / semi-senior, English and Spanish).
JUNIOR_LEVELS: tuple[str, ...] = (
    "junior",
    "trainee",
    "ssr",
    "semi-senior",
    "associate",
    "jr",
    "jr.",
    "semi-sr",
    "semi sr",
    "nivel inicial",
    "iniciante",
    "practicante",
)

# Location policy tokens, matched as substrings of the normalized location.
REGION_TOKENS: tuple[str, ...] = ("argentina", "buenos aires", "caba")
ALLOWED_LOCATION_TOKENS: tuple[str, ...] = REGION_TOKENS + ("remoto", "remota", "remote", "anywhere")
DISALLOWED_MODALITY_TOKENS: tuple[str, ...] = ("hibrido", "hybrid", "presencial", "on-site", "onsite", "oficina")


def _keyword_regex(keywords: Iterable[str]) -> re.Pattern[str]:
    # Longest first so "sistemas jr" wins over "sistemas" in findall().
    # Lookarounds instead of \b so keywords ending in punctuation ("c++", "jr.") still match.
    # Vocabulary and text are both accent-folded, so "tecnico" matches "técnico".
    folded = {strip_accents(k) for k in keywords}
    alternation = "|".join(re.escape(k) for k in sorted(folded, key=len, reverse=True))
    return re.compile(rf"(?<!\w)({alternation})(?!\w)", re.IGNORECASE)


_TECH_RE = _keyword_regex(TECH_KEYWORDS)
_JUNIOR_RE = _keyword_regex(JUNIOR_LEVELS)
_ALL_RE = _keyword_regex(TECH_KEYWORDS + JUNIOR_LEVELS)


def _join(*parts: str | None) -> str:
    return strip_accents(" ".join(p for p in parts if p))


def matches_tech_keywords(text: str, description: str | None = None) -> bool:
    """True if title/description contain any technology keyword as a whole word."""
    return bool(_TECH_RE.search(_join(text, description)))


def matches_junior_level(text: str, description: str | None = None) -> bool:
    """True if title/description contain any seniority keyword as a whole word."""
    return bool(_JUNIOR_RE.search(_join(text, description)))


def is_valid_job(title: str, description: str | None = None, level: str | None = None) -> bool:
    """
    A technology keyword is always required. A seniority keyword is required
    only when a non-empty `level` is supplied; the engine never passes one,
    so in the default path only the technology check applies.
    """
    full_text = _join(title, description, level)
    if not _TECH_RE.search(full_text):
        return False
    return not level or bool(_JUNIOR_RE.search(full_text))


def normalize_location(text: str) -> str:
    """Lowercase, strip diacritics, collapse whitespace."""
    return collapse_ws(strip_accents(text.lower()))


def is_valid_getonbrd_job(
    title: str,
    location: str | None = None,
    description: str | None = None,
    level: str | None = None,
) -> bool:
    """
    Location/modality policy layered on is_valid_job():

      - base check fails                          -> reject
      - no location                               -> reject
      - hybrid/on-site token without a region token -> reject
      - any allowed token (region or remote)      -> accept
      - anything else (other countries/cities)    -> reject

    A region token overrides the modality rejection: "Buenos Aires (Híbrido)"
    is accepted while "Santiago (Híbrido)" is not.
    """
    if not is_valid_job(title, description, level):
        return False
    if not location:
        return False

    normalized = normalize_location(location)
    has_modality = any(t in normalized for t in DISALLOWED_MODALITY_TOKENS)
    has_region = any(t in normalized for t in REGION_TOKENS)
    if has_modality and not has_region:
        return False
    return any(t in normalized for t in ALLOWED_LOCATION_TOKENS)


def matched_keywords(text: str) -> list[str]:
    """Distinct vocabulary hits in `text`, lowercased and accent-folded, in first-seen order."""
    seen: dict[str, None] = {}
    for m in _ALL_RE.finditer(strip_accents(text or "")):
        seen.setdefault(m.group(1).lower(), None)
    return list(seen)
