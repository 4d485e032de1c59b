# service/runner.py
"""
Run one module's `run(**kwargs)` a single time.

Both the scheduler and the CLI go through run_module_once(), so every run,
scheduled or ad-hoc, leaves exactly one activity record behind.
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any

from service.logging_utils import write_activity_log

DEFAULT_MODULE = "modules.job_watch.main"

log = logging.getLogger(__name__)

_TRUE_WORDS = frozenset({"true", "t", "yes", "y"})
_FALSE_WORDS = frozenset({"false", "f", "no", "n"})


def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _coerce_text(text: str) -> Any:
    """'null' -> None, JSON containers, yes/no words, then int/float; else the stripped text."""
    s = text.strip()
    low = s.lower()
    if low == "null":
        return None
    if s[:1] + s[-1:] in ("{}", "[]"):
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return s
    if low in _TRUE_WORDS:
        return True
    if low in _FALSE_WORDS:
        return False
    for number in (int, float):
        try:
            return number(s)
        except ValueError:
            continue
    return s


def _normalize_kwargs_types(kwargs: dict[str, object] | None) -> dict[str, object]:
    """
    Prepare config or CLI kwargs for the module.

    A key ending in "_env" holds the name of an environment variable; it is
    replaced by that variable's value under the key without the suffix, or
    dropped when the variable is unset so the module default applies
    ({"sqlite_path_env": "JOB_WATCH_DB"} -> {"sqlite_path": "..."}). String
    values go through _coerce_text; anything else is passed as-is.
    """
    out: dict[str, object] = {}
    for key, value in (kwargs or {}).items():
        if isinstance(key, str) and key.endswith("_env") and isinstance(value, str):
            env_value = os.getenv(value.strip(), "")
            if env_value:
                out[key.removesuffix("_env")] = env_value
        elif isinstance(value, str):
            out[key] = _coerce_text(value)
        else:
            out[key] = value
    return out


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    mod = importlib.import_module(module_path)
    entry = getattr(mod, "run", None)
    if not callable(entry):
        raise AttributeError(f"{module_path!r} has no callable run(**kwargs).")
    return entry


def _meta_from_return(value: Any) -> tuple[str, dict[str, Any] | None]:
    """A module may return None, a message string, or a meta dict with an optional 'message'."""
    if value is None:
        return "OK", None
    if isinstance(value, str):
        return value, None
    if isinstance(value, dict):
        return str(value.get("message", "OK")), value
    raise TypeError(f"run() returned {type(value).__name__}; expected None, str or dict.")


def run_module_once(
    module: str = DEFAULT_MODULE,
    kwargs: dict[str, object] | None = None,
    trigger_type: str = "adhoc",
    job_context: dict[str, object] | None = None,
    timeout_sec: int | None = None,
) -> tuple[dict[str, Any] | None, str]:
    """
    Import `module`, call its run() with normalized kwargs and log the outcome.

    Returns (meta, run_id). Anything the module raises, including a timeout
    when `timeout_sec` is set, is recorded and then re-raised for the caller
    to turn into an exit code.
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = {**(job_context or {})}
    context.update(run_id=run_id, module=module, trigger_type=trigger_type, started_at=now_iso())

    call_kwargs = _normalize_kwargs_types(kwargs)
    entry = _resolve_callable(module)

    failure: BaseException | None = None
    meta: dict[str, Any] | None = None
    started = time.monotonic()
    try:
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner") as pool:
            future = pool.submit(entry, **call_kwargs)
            message, meta = _meta_from_return(future.result(timeout=timeout_sec or None))
    except FutureTimeout:
        failure = TimeoutError(f"{module} did not finish within {timeout_sec}s")
        message, meta = str(failure), {"timeout_sec": timeout_sec}
    except BaseException as e:
        failure = e
        message, meta = str(e), {"exception_type": type(e).__name__}

    record = {
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": failure is None,
        "message": message,
        "duration_ms": int((time.monotonic() - started) * 1000),
        "context": context,
        "kwargs": call_kwargs,
        "meta": meta or {},
    }
    try:
        write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        log.warning("Activity record for run %s not written: %s", run_id, e)

    if failure is not None:
        raise failure
    return meta, run_id
