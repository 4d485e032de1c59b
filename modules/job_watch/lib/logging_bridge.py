from __future__ import annotations

import logging
from typing import Any

from service import logging_utils as _sink

_LOG_ACTIVITY = logging.getLogger("job_watch.activity")
_LOG_ERROR = logging.getLogger("job_watch.error")


def activity(record: dict[str, Any]) -> None:
    """
    Write a structured activity record to the JSONL sink.
    Falls back to stdlib logging if the sink cannot write.
    """
    try:
        _sink.write_activity_log(record)
    except Exception:
        _LOG_ACTIVITY.info(_sink.redact(record))
        _LOG_ACTIVITY.debug("activity sink write failed", exc_info=True)


def error(record: dict[str, Any]) -> None:
    """
    Write a structured error record to the JSONL sink.
    Falls back to stdlib logging as a structured error.
    """
    try:
        _sink.write_error_log(record)
    except Exception:
        _LOG_ERROR.error(_sink.redact(record))
        _LOG_ERROR.debug("error sink write failed", exc_info=True)
