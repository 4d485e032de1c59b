# service/config_schema.py
"""
Schedule configuration: which modules run, when, and with what kwargs.

Document shape (JSON, or YAML for .yml/.yaml files):

    {
      "timezone": "America/Argentina/Buenos_Aires",
      "jobs": [
        {
          "id": "job-watch",
          "module": "modules.job_watch.main",
          "trigger": {"interval": {"hours": 6}},
          "kwargs": {"sites_path": "...", "renderer": "playwright"},
          "timeout_sec": 1800
        }
      ]
    }

Crawler jobs get their kwargs checked against the run settings, so a typo
such as "max_age_day" fails at load time instead of being silently ignored.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
from collections.abc import Callable
from typing import Any

import yaml

logger = logging.getLogger(__name__)

JOB_WATCH_MODULE = "modules.job_watch.main"
TRIGGER_KINDS = ("cron", "interval", "date", "daily_time")

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
_INTERVAL_FIELDS = ("weeks", "days", "hours", "minutes", "seconds", "jitter")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when the schedule config is invalid."""


# ---- Public API --------------------------------------------------------------


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Read and normalize the schedule config.

    The path is the explicit argument, else $CONFIG_PATH; with neither, an
    empty schedule is returned. Job ids are filled in and numeric/bool job
    options are coerced, so callers see a uniform shape.
    """
    source = path or os.environ.get("CONFIG_PATH")
    if source:
        cfg = _read_document(source)
    else:
        logger.info("No schedule config given; starting with no jobs.")
        cfg = {}

    if not isinstance(cfg.get("jobs"), list):
        cfg["jobs"] = []
    if not (isinstance(cfg.get("timezone"), str) and cfg["timezone"].strip()):
        cfg["timezone"] = os.environ.get("TZ", "UTC")
    cfg["jobs"] = [_normalize_job(job, idx) for idx, job in enumerate(cfg["jobs"])]
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """Check the whole document; raises ConfigError on the first problem."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a mapping.")
    if "timezone" in cfg and cfg["timezone"] is not None and not isinstance(cfg["timezone"], str):
        raise ConfigError("'timezone' must be a string.")
    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("Config needs a 'jobs' list.")

    ids: set[str] = set()
    for idx, job in enumerate(jobs):
        job_id = _check_job(job, idx)
        if job_id in ids:
            raise ConfigError(f"Job id '{job_id}' is used more than once.")
        ids.add(job_id)


# ---- Per-job checks ------------------------------------------------------------


def _job_id(job: dict[str, Any], idx: int) -> str:
    for key in ("id", "name", "module"):
        value = job.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return f"job_{idx}"


def _check_job(job: Any, idx: int) -> str:
    if not isinstance(job, dict):
        raise ConfigError(f"jobs[{idx}] must be a mapping.")
    module = job.get("module")
    if not (isinstance(module, str) and module.strip()):
        raise ConfigError(f"jobs[{idx}] needs a 'module' (e.g. {JOB_WATCH_MODULE!r}).")

    job_id = _job_id(job, idx)
    _check_trigger(job.get("trigger"), job_id)

    kwargs = job.get("kwargs", {})
    if not isinstance(kwargs, dict):
        raise ConfigError(f"Job '{job_id}': 'kwargs' must be a mapping.")
    if module.strip() == JOB_WATCH_MODULE:
        _check_job_watch_kwargs(kwargs, job_id)

    for name, coerce in _JOB_OPTIONS.items():
        if name in job:
            coerce(job[name], name, job_id)
    for name in ("summary", "description"):
        if name in job and not isinstance(job[name], str):
            raise ConfigError(f"Job '{job_id}': '{name}' must be a string.")
    return job_id


def _check_trigger(trigger: Any, job_id: str) -> None:
    if not isinstance(trigger, dict):
        raise ConfigError(f"Job '{job_id}': 'trigger' must be a mapping.")
    kinds = [k for k in TRIGGER_KINDS if k in trigger]
    if len(kinds) != 1:
        raise ConfigError(f"Job '{job_id}': trigger needs exactly one of {', '.join(TRIGGER_KINDS)}.")
    kind = kinds[0]
    value = trigger[kind]

    if kind == "interval":
        if not isinstance(value, dict):
            raise ConfigError(f"Job '{job_id}': interval must be a mapping of time fields.")
        for name in _INTERVAL_FIELDS:
            if name in value:
                _as_int(value[name], f"interval.{name}", job_id, minimum=0)
    elif kind == "cron":
        if not isinstance(value, (str, dict)):
            raise ConfigError(f"Job '{job_id}': cron must be a crontab string or a mapping.")
    elif kind == "date":
        if isinstance(value, bool) or value in (None, "", {}) or not isinstance(value, (str, int, float, dict)):
            raise ConfigError(f"Job '{job_id}': date must be ISO-8601, epoch seconds, or {{'run_at': ...}}.")
    else:
        times = value.get("time") if isinstance(value, dict) else value
        if isinstance(times, str):
            times = [times]
        if not (isinstance(times, list) and times):
            raise ConfigError(f"Job '{job_id}': daily_time needs 'HH:MM' or {{'time': ['HH:MM', ...]}}.")
        bad = [t for t in times if not _HHMM_RE.match(str(t).strip())]
        if bad:
            raise ConfigError(f"Job '{job_id}': daily_time entries must be 24h HH:MM[:SS], got {bad!r}.")


def _check_job_watch_kwargs(kwargs: dict[str, Any], job_id: str) -> None:
    from modules.job_watch.lib.config import Settings

    known = {f.name for f in dataclasses.fields(Settings) if not f.name.startswith("_")}
    # "<field>_env" names an environment variable the runner resolves.
    unknown = sorted(str(k) for k in kwargs if str(k).removesuffix("_env") not in known)
    if unknown:
        raise ConfigError(f"Job '{job_id}': unknown crawler kwargs {unknown} (known: {', '.join(sorted(known))}).")


# ---- Coercion -------------------------------------------------------------------


def _as_bool(value: Any, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if isinstance(value, str) else None
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"Job '{job_id}': '{field}' must be true/false.")


def _as_int(value: Any, field: str, job_id: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if number < minimum:
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= {minimum} (got {number}).")
    return number


def _min_int(minimum: int) -> Callable[[Any, str, str], int]:
    return lambda value, field, job_id: _as_int(value, field, job_id, minimum=minimum)


_JOB_OPTIONS: dict[str, Callable[[Any, str, str], Any]] = {
    "coalesce": _as_bool,
    "timeout_sec": _min_int(0),
    "max_instances": _min_int(1),
    "misfire_grace_time": _min_int(0),
}


def _normalize_job(job: Any, idx: int) -> dict[str, Any]:
    if not isinstance(job, dict):
        raise ConfigError(f"jobs[{idx}] must be a mapping.")
    out = dict(job)
    out["id"] = _job_id(out, idx)
    for name, coerce in _JOB_OPTIONS.items():
        if name in out:
            out[name] = coerce(out[name], name, out["id"])
    return out


# ---- File reading -----------------------------------------------------------------


def _read_document(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Schedule config not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read schedule config {path}: {e}") from e

    is_yaml = path.lower().endswith((".yml", ".yaml"))
    try:
        data = yaml.safe_load(text) if is_yaml else json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot parse schedule config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Schedule config {path} must contain a mapping at the top level.")
    return data
