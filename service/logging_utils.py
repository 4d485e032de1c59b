# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per write so tests can redirect) --------
#
#   LOG_DIR                 base directory for JSONL files (default /app/local/logs)
#   ACTIVITY_LOG_PREFIX     filename prefix for activity records (default "activity")
#   ERROR_LOG_PREFIX        filename prefix for error records (default "error")
#   ACTIVITY_LOG_MAX_BYTES  size-based rotation threshold; <=0 disables
#   LOG_DISABLE             "1" turns every write into a no-op

_REDACTED = "***REDACTED***"

# Case-insensitive substrings; any key containing one is scrubbed.
_DEFAULT_REDACT_KEYS = frozenset({
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
})

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record as a JSON line.

    May raise on unrecoverable I/O or serialization errors; callers that must
    not fail go through modules.job_watch.lib.logging_bridge.
    Never mutates the passed-in dict.
    """
    _write_jsonl(_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one structured error record, parallel to the activity log."""
    _write_jsonl(_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    """Return today's activity log path (<prefix>-YYYY-MM-DD.jsonl)."""
    return _path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def redact(record: dict[str, Any], keys: Iterable[str] | None = None) -> dict[str, Any]:
    """
    Redacted deep copy of `record`: values whose KEY contains any of `keys`
    (case-insensitive substring) are replaced. Input is not mutated.
    """
    return _redact_deep(record, tuple(keys or _DEFAULT_REDACT_KEYS))


# ---- Internal helpers --------------------------------------------------------


def _path_for_today(prefix: str) -> str:
    log_dir = os.getenv("LOG_DIR", "/app/local/logs")
    return os.path.join(log_dir, f"{prefix}-{_dt.date.today().isoformat()}.jsonl")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _rotate_if_needed(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{stamp}")


def _redact_deep(value: Any, patterns: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and any(p in k.lower() for p in patterns):
                out[k] = _REDACTED
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    if os.getenv("LOG_DISABLE") == "1":
        return

    payload = _redact_deep(record, tuple(_DEFAULT_REDACT_KEYS))
    payload["_meta"] = {"host": _HOSTNAME, "pid": _PID}

    # Serialize before touching the file; datetimes and other objects fall back to str().
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    os.makedirs(os.path.dirname(path), exist_ok=True)
    _rotate_if_needed(path)

    # O_APPEND makes a single write atomic on POSIX.
    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, data)
    finally:
        os.close(fd)
