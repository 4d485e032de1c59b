"""
Engine for one crawl pass: render each configured site, extract postings,
normalize dates, apply the site policy, and persist new jobs.

Features:
  - Strictly sequential: one site at a time, one card at a time
  - Failure isolation per card, then per site; only startup failures propagate
  - Date window plus an explicit ingestion-time fallback for unparseable dates
  - Dependency injection for testability (renderer, repository, policy lookup, sleep, clock)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from . import db, logging_bridge
from .config import Settings, SiteDescriptor
from .dates import is_within_days, parse_posted_date
from .extract import company_from_url, extract_link, extract_text, extract_visible_text
from .models import NormalizedPosting, RawPosting, RunSummary
from .policies.base import SitePolicy
from .rendering import ElementHandle, Renderer, build_renderer
from .utils import now_utc, to_iso

log = logging.getLogger(__name__)

# Per-posting outcomes
SAVED = "saved"
DUPLICATE = "duplicate"
REJECTED = "rejected"
STALE = "stale"


# =============================================================================
# DEFAULT POLICY LOOKUP (PRODUCTION)
# =============================================================================
def _default_get_policy(kind: str) -> type[SitePolicy]:
    from .policies.registry import get as get_policy_class

    return get_policy_class(kind)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    renderer: Renderer | None = None,
    repository: db.JobRepository | None = None,
    get_policy: Callable[[str], type[SitePolicy]] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = now_utc,
) -> RunSummary:
    """
    Run one complete crawl over every configured site.

    Args:
        settings: Validated run configuration (sites, store path, timeouts).
        renderer: Override the renderer (tests); default built from settings.
        repository: Override the job store (tests); default SQLite at settings.sqlite_path.
        get_policy: Override policy lookup by site tag.
        sleep: Politeness delay between sites.
        clock: Source of "now" for date normalization and the fallback stamp.

    Returns:
        RunSummary with found/saved/skipped/errors counters.

    Raises:
        ConfigError if the sites file is missing or invalid, RendererError if
        the renderer fails to start. Nothing else escapes.
    """
    start_ns = time.perf_counter_ns()
    summary = RunSummary()
    sites = settings.sites()
    summary.sites_total = len(sites)

    logging_bridge.activity({
        "component": "job_watch.engine",
        "op": "start",
        "sites": len(sites),
        "renderer": settings.renderer,
        "max_age_days": settings.max_age_days,
        "skip_network": settings.skip_network,
    })

    if settings.skip_network or not sites:
        if not sites:
            log.warning("No sites configured in %s", settings.sites_path)
        _emit_summary(summary, start_ns)
        return summary

    get_policy_func = get_policy or _default_get_policy
    repo = repository or db.SqliteJobRepository(settings.sqlite_path)
    renderer = renderer or build_renderer(settings)

    # Startup failure here is fatal and propagates to the caller.
    renderer.start()
    try:
        for index, site in enumerate(sites):
            if index > 0 and settings.site_delay_seconds > 0:
                sleep(settings.site_delay_seconds)

            log.info("Processing: %s", site.url)
            try:
                _run_site(site, get_policy_func(site.site)(), renderer, repo, settings, summary, clock)
            except Exception as e:
                summary.errors += 1
                summary.sites_failed += 1
                log.error("Error scraping site %s: %r", site.url, e)
                logging_bridge.error({
                    "component": "job_watch.engine",
                    "op": "site_error",
                    "site": site.site,
                    "url": site.url,
                    "error": repr(e),
                })
    finally:
        renderer.close()

    _emit_summary(summary, start_ns)
    return summary


# =============================================================================
# PER-SITE
# =============================================================================
def _run_site(
    site: SiteDescriptor,
    policy: SitePolicy,
    renderer: Renderer,
    repo: db.JobRepository,
    settings: Settings,
    summary: RunSummary,
    clock: Callable[[], datetime],
) -> None:
    found = saved = 0
    with renderer.open_cards(site, scroll_to_load=policy.scroll_to_load) as cards:
        for card in cards:
            try:
                raw = extract_posting(card, site, policy)
                if raw is None:
                    summary.incomplete += 1
                    continue
                found += 1
                summary.found += 1

                outcome = process_posting(raw, policy, repo, settings, summary, now=clock())
                if outcome == SAVED:
                    saved += 1
            except Exception as e:
                summary.errors += 1
                log.error("Error processing card on %s: %r", site.url, e)
                logging_bridge.error({
                    "component": "job_watch.engine",
                    "op": "card_error",
                    "url": site.url,
                    "error": repr(e),
                })

    summary.found_by_site[site.url] = found
    summary.saved_by_site[site.url] = saved
    logging_bridge.activity({
        "component": "job_watch.engine",
        "op": "site_done",
        "site": site.site,
        "url": site.url,
        "cards": len(cards),
        "found": found,
        "saved": saved,
    })


# =============================================================================
# PER-CARD
# =============================================================================
def extract_posting(card: ElementHandle, site: SiteDescriptor, policy: SitePolicy) -> RawPosting | None:
    """
    Pull the configured fields out of one card. Returns None (card dropped)
    when the title, date string or link is missing.
    """
    title = extract_text(card, site.title_selector)
    date_raw = extract_text(card, site.date_selector)
    url = extract_link(card, site.link_selector, site.url)
    if not (title and date_raw and url):
        log.debug("Dropping incomplete card on %s (title=%r, date=%r, url=%r)", site.url, title, date_raw, url)
        return None

    location = None
    if site.location_selector:
        if policy.visible_location:
            location = extract_visible_text(card, site.location_selector)
        else:
            location = extract_text(card, site.location_selector)

    return RawPosting(
        title=title,
        company=site.company or company_from_url(site.url),
        url=url,
        posted_date_raw=date_raw,
        location=location or None,
    )


def process_posting(
    raw: RawPosting,
    policy: SitePolicy,
    repo: db.JobRepository,
    settings: Settings,
    summary: RunSummary,
    *,
    now: datetime,
) -> str:
    """Normalize, filter and persist one posting; tallies the outcome on `summary`."""
    posting = NormalizedPosting.from_raw(raw, parse_posted_date(raw.posted_date_raw, now=now))

    if posting.posted_date is not None and settings.max_age_days is not None:
        if not is_within_days(posting.posted_date, settings.max_age_days, now=now):
            log.debug("Job outside date range: %s (%s)", posting.title, to_iso(posting.posted_date))
            summary.skipped += 1
            return STALE

    if not policy.is_valid(posting):
        log.debug("Job does not match filters: %s", posting.title)
        summary.skipped += 1
        return REJECTED

    # Ingestion-time fallback, applied only after the posting was accepted.
    fallback = posting.posted_date is None
    posted_date = now if fallback else posting.posted_date

    job_id = db.save_if_new(repo, posting.title, posting.company, posting.url, posted_date)
    if job_id is None:
        log.debug("Duplicate job skipped: %s", posting.url)
        summary.skipped += 1
        return DUPLICATE

    if fallback:
        summary.date_fallbacks += 1
        log.warning("Could not parse date %r for %s; using ingestion time", posting.posted_date_raw, posting.url)
        logging_bridge.activity({
            "component": "job_watch.engine",
            "op": "date_fallback",
            "url": posting.url,
            "raw": posting.posted_date_raw,
            "stamped": to_iso(now),
        })

    log.info("Saved: %s (ID: %s)", posting.title, job_id)
    summary.saved += 1
    return SAVED


# =============================================================================
# SUMMARY
# =============================================================================
def _emit_summary(summary: RunSummary, start_ns: int) -> None:
    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    log.info(
        "Crawler summary: found=%d saved=%d skipped=%d errors=%d (date fallbacks=%d, incomplete cards=%d)",
        summary.found,
        summary.saved,
        summary.skipped,
        summary.errors,
        summary.date_fallbacks,
        summary.incomplete,
    )
    logging_bridge.activity({
        "component": "job_watch.engine",
        "op": "summary",
        **summary.as_dict(),
        "total_us": total_us,
    })
