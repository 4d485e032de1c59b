# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, time, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

_PERIOD_FIELDS = ("weeks", "days", "hours", "minutes", "seconds")
_COUNTERS = ("found", "saved", "skipped", "incomplete", "errors")


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: BaseTrigger
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


class SchedulerController:
    """Handle returned by start(); lets the CLI stop and wait on the scheduler."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Stopping scheduler (a crawl in progress finishes on its own).")
            self._scheduler.shutdown(wait=False)
        self._stopped.set()
        LOG.info("Scheduler stopped.")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for stop(); False if the timeout elapsed first."""
        return self._stopped.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load the schedule, register every job and start a background scheduler.

    Crawls never overlap: there is a single executor worker and
    max_instances defaults to 1, so a slow pass pushes the next one back.
    A job whose trigger cannot be built is logged and left out.
    """
    cfg = config_schema.load_config(config_path)
    config_schema.validate(cfg)
    tz = _resolve_timezone(cfg)

    defaults = {"coalesce": True, "max_instances": 1}
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=defaults,
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg["jobs"]:
        try:
            spec = _make_job_spec(raw, default_job_defaults=defaults, tz=tz.zone)
        except (ValueError, TypeError, KeyError):
            LOG.exception("Job %r left out of the schedule.", raw.get("id"))
            continue
        _add_job(scheduler, spec)

    scheduler.start()
    LOG.info("Scheduler running %d job(s) in %s.", len(scheduler.get_jobs()), tz.zone)
    return SchedulerController(scheduler)


def _resolve_timezone(cfg: dict[str, Any]):
    # APScheduler 3.x wants pytz for the scheduler itself.
    name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC.", name)
        return pytz.UTC


def _make_job_spec(raw: dict[str, Any], default_job_defaults: dict[str, Any], tz: str | None) -> JobSpec:
    module = raw.get("module")
    if not module:
        raise ValueError("job has no module")

    def opt_int(name: str) -> int | None:
        value = raw.get(name)
        return None if value is None else int(value)

    max_instances = opt_int("max_instances")
    return JobSpec(
        id=str(raw.get("id") or raw.get("name") or module),
        trigger=_build_trigger(raw.get("trigger"), tz),
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=opt_int("timeout_sec"),
        max_instances=max_instances or default_job_defaults["max_instances"],
        coalesce=bool(raw.get("coalesce", default_job_defaults["coalesce"])),
        misfire_grace_time=opt_int("misfire_grace_time"),
        summary=raw.get("summary") or raw.get("description"),
    )


# ---- Triggers ---------------------------------------------------------------


def _zone(value: Any) -> _dt_tzinfo | None:
    if not value:
        return None
    if isinstance(value, _dt_tzinfo):
        return value
    return ZoneInfo(str(value))


def _reject_unknown(kind: str, body: dict[str, Any], allowed: set[str]) -> None:
    extra = sorted(set(body) - allowed)
    if extra:
        raise ValueError(f"{kind}: unsupported field(s) {extra}")


def _interval_trigger(body: Any, tz: _dt_tzinfo | None) -> BaseTrigger:
    if not isinstance(body, dict):
        raise ValueError("interval: expected a mapping such as {'hours': 6}")
    _reject_unknown("interval", body, {*_PERIOD_FIELDS, "jitter", "timezone", "start_date", "end_date"})

    params: dict[str, Any] = {}
    for name in (*_PERIOD_FIELDS, "jitter"):
        amount = int(body.get(name, 0))
        if amount < 0:
            raise ValueError(f"interval: {name} cannot be negative")
        if amount:
            params[name] = amount
    if not any(name in params for name in _PERIOD_FIELDS):
        raise ValueError("interval: at least one period field must be positive")
    params.update({k: body[k] for k in ("start_date", "end_date") if k in body})
    return IntervalTrigger(timezone=_zone(body.get("timezone")) or tz, **params)


def _cron_trigger(body: Any, tz: _dt_tzinfo | None) -> BaseTrigger:
    if isinstance(body, str):
        if len(body.split()) != 5:
            raise ValueError(f"cron: {body!r} is not a five-field crontab line")
        return CronTrigger.from_crontab(body, timezone=tz)
    if not isinstance(body, dict):
        raise ValueError("cron: expected a crontab string or a mapping")
    fields = {"second", "minute", "hour", "day", "day_of_week", "month"}
    _reject_unknown("cron", body, fields | {"timezone", "start_date", "end_date", "jitter"})
    return CronTrigger(
        second=body.get("second", 0),
        minute=body.get("minute", 0),
        hour=body.get("hour", 0),
        day=body.get("day"),
        day_of_week=body.get("day_of_week"),
        month=body.get("month"),
        start_date=body.get("start_date"),
        end_date=body.get("end_date"),
        jitter=body.get("jitter"),
        timezone=_zone(body.get("timezone")) or tz,
    )


def _date_trigger(body: Any, tz: _dt_tzinfo | None) -> BaseTrigger:
    if isinstance(body, dict):
        run_at, tz = body.get("run_at"), _zone(body.get("timezone")) or tz
    else:
        run_at = body
    if isinstance(run_at, (int, float)) and not isinstance(run_at, bool):
        return DateTrigger(run_date=datetime.fromtimestamp(run_at, tz=timezone.utc), timezone=timezone.utc)
    try:
        when = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"date: cannot parse {run_at!r}") from e
    if when.tzinfo is None:
        when = when.replace(tzinfo=tz or timezone.utc)
    return DateTrigger(run_date=when, timezone=when.tzinfo)


def _daily_time_trigger(body: Any, tz: _dt_tzinfo | None) -> BaseTrigger:
    if isinstance(body, str):
        body = {"time": body}
    if not isinstance(body, dict):
        raise ValueError("daily_time: expected 'HH:MM' or a mapping")
    _reject_unknown("daily_time", body, {"time", "day_of_week", "timezone"})
    times = body.get("time")
    if not times:
        raise ValueError("daily_time: 'time' is required")
    if isinstance(times, str):
        times = [times]

    zone = _zone(body.get("timezone")) or tz
    crons = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=body.get("day_of_week"), timezone=zone)
        for h, m, s in sorted({_parse_hms(str(t)) for t in times})
    ]
    return crons[0] if len(crons) == 1 else OrTrigger(crons)


_TRIGGER_BUILDERS: dict[str, Callable[[Any, _dt_tzinfo | None], BaseTrigger]] = {
    "interval": _interval_trigger,
    "cron": _cron_trigger,
    "date": _date_trigger,
    "daily_time": _daily_time_trigger,
}


def _build_trigger(trig_def: dict[str, Any], tz: str | None) -> BaseTrigger:
    """
    Turn a trigger block into an APScheduler trigger.

      {"interval": {"hours": 6}}                    plus weeks/days/minutes/seconds, jitter
      {"cron": "0 */6 * * *"} or {"cron": {...}}    object form defaults second/minute/hour to 0
      {"date": ISO | epoch | {"run_at": ..., "timezone": ...}}
      {"daily_time": "08:00" | {"time": [...], "day_of_week": "mon-fri"}}

    A 'timezone' inside the block overrides the scheduler's `tz`. Any
    malformed block raises ValueError.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger must be a mapping")
    kinds = [kind for kind in _TRIGGER_BUILDERS if trig_def.get(kind) is not None]
    if len(kinds) != 1:
        raise ValueError(f"trigger needs exactly one of {sorted(_TRIGGER_BUILDERS)}, got {kinds or 'none'}")
    return _TRIGGER_BUILDERS[kinds[0]](trig_def[kinds[0]], _zone(tz))


def _parse_hms(s: str) -> tuple[int, int, int]:
    parts = [int(p) for p in s.strip().split(":")]
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time: {s!r} is not HH:MM or HH:MM:SS")
    hh, mm, ss = (parts + [0])[:3]
    time(hh, mm, ss)
    return hh, mm, ss


# ---- Job execution ------------------------------------------------------------


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register `spec` with a wrapper that runs the module through the runner
    and records one activity line per run. Failures are logged, never raised,
    so the next scheduled run still happens.
    """

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting %s", spec.id, spec.module)
        try:
            meta, run_id = runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs),
                trigger_type="scheduled",
                job_context={"job_id": spec.id, "now_iso": datetime.now(timezone.utc).isoformat()},
                timeout_sec=spec.timeout_sec,
            )
        except Exception:
            LOG.exception("Job[%s] failed.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return

        meta = meta or {}
        elapsed = _time.monotonic() - started
        LOG.info("Job[%s] done in %.1fs: %s", spec.id, elapsed, meta.get("message", "OK"))
        _write_activity(spec, status="ok", duration_s=elapsed, run_id=run_id, meta=meta)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    job = scheduler.get_job(spec.id)
    LOG.info("Job[%s] registered, next run at %s", spec.id, getattr(job, "next_run_time", None))


def _write_activity(
    spec: JobSpec,
    status: str,
    duration_s: float,
    run_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    fields: dict[str, Any] = {
        "job_id": spec.id,
        "module": spec.module,
        "status": status,
        "duration_ms": int(duration_s * 1000),
        "summary": spec.summary,
        "run_id": run_id,
    }
    # Crawl counters, when the module reported them.
    fields.update({k: meta[k] for k in _COUNTERS if meta and k in meta})
    try:
        write_activity_log({
            "ts": datetime.now(timezone.utc).isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "fields": fields,
        })
    except (OSError, TypeError, ValueError):
        LOG.debug("Could not write activity for job[%s]", spec.id, exc_info=True)
