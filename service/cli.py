# service/cli.py
"""
Command-line entry point for the job crawler (installed as `job-watch`).

Subcommands
-----------
run [--module M] [--kwargs k=v ...]
    - Executes one crawl pass via runner.run_module_once(...)
    - Prints the found/saved/skipped/errors summary
    - Exit 0 on a completed run (even with per-site/per-card errors),
      1 on a startup failure, 130 on Ctrl-C

serve
    - Starts the APScheduler service loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

list-schedule
    - Loads the schedule config and prints configured jobs

list-sites [--sites-path P]
    - Prints the site descriptors and their policy tags

list-jobs [--days N] [--limit N] [--sqlite-path P]
    - Prints stored jobs, newest posted date first

cleanup [--days N] [--sqlite-path P]
    - Deletes stored jobs first seen more than N days ago

validate-config
    - Loads/validates the schedule config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")

DEFAULT_SITES_PATH = "/app/local/config/sites.csv"
DEFAULT_SQLITE_PATH = "/app/local/state/jobwatch.db"

_SUMMARY_LINES = (("found", "Jobs found"), ("saved", "Jobs saved"), ("skipped", "Jobs skipped"), ("errors", "Errors"))


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Turn repeated --kwargs key=value items into a dict.
    Values are decoded as JSON when they parse (true, 3, null, ["a"]),
    otherwise kept as plain strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...] = ("ID", "DETAILS")) -> None:
    """Print rows as a boxed, left-aligned table."""
    rows = [tuple(str(c) for c in r) for r in rows]
    widths = [max([len(h)] + [len(r[i]) for r in rows]) for i, h in enumerate(headers)]
    sep = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _extract_jobs_from_config(cfg: dict[str, Any]) -> list[tuple[str, str, str]]:
    out = []
    for idx, j in enumerate(cfg.get("jobs") or []):
        jid = str(j.get("id") or j.get("name") or idx)
        trigger = json.dumps(j.get("trigger"), default=str, sort_keys=True)
        desc = j.get("summary") or j.get("description") or j.get("module") or ""
        out.append((jid, trigger, str(desc)))
    return out


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _repository(sqlite_path: str):
    from modules.job_watch.lib.db import SqliteJobRepository

    return SqliteJobRepository(sqlite_path)


# ------------------------------ Subcommands ----------------------------------
def _load_schedule(args: argparse.Namespace, *, check: bool) -> dict[str, Any] | None:
    """Load (and optionally validate) the schedule; prints the error and returns None on failure."""
    try:
        cfg = _config_schema.load_config(args.config)
        if check:
            _config_schema.validate(cfg)
    except _config_schema.ConfigError as e:
        LOG.error("Schedule config rejected: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return None
    return cfg


def cmd_validate_config(args: argparse.Namespace) -> int:
    if _load_schedule(args, check=True) is None:
        return 1
    print("OK: configuration is valid.")
    return 0


def cmd_list_schedule(args: argparse.Namespace) -> int:
    cfg = _load_schedule(args, check=False)
    if cfg is None:
        return 1
    rows = _extract_jobs_from_config(cfg)
    if rows:
        _print_table(rows, headers=("JOB", "TRIGGER", "DETAILS"))
    else:
        print("No jobs found in config.")
    return 0


def cmd_list_sites(args: argparse.Namespace) -> int:
    from modules.job_watch.lib.config import ConfigError, load_sites

    try:
        sites = load_sites(args.sites_path)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if not sites:
        print(f"No sites configured in {args.sites_path}.")
        return 0
    _print_table(
        ((s.site, s.company or "-", s.url) for s in sites),
        headers=("POLICY", "COMPANY", "URL"),
    )
    return 0


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        repo = _repository(args.sqlite_path)
        jobs = repo.list_jobs(since_days=args.days, limit=args.limit)
    except Exception as e:
        LOG.exception("Failed to list stored jobs: %s", e)
        print(f"ERROR: failed to list stored jobs: {e}", file=sys.stderr)
        return 1
    if not jobs:
        print("No jobs stored.")
        return 0
    _print_table(
        ((str(j.id), j.posted_date.strftime("%Y-%m-%d"), j.company, j.title, j.url) for j in jobs),
        headers=("ID", "POSTED", "COMPANY", "TITLE", "URL"),
    )
    print(f"{len(jobs)} job(s) shown, {repo.count()} stored.")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    if args.days < 0:
        print("ERROR: --days must be >= 0", file=sys.stderr)
        return 1
    cutoff = datetime.now().astimezone() - timedelta(days=args.days)
    try:
        deleted = _repository(args.sqlite_path).delete_found_before(cutoff)
    except Exception as e:
        LOG.exception("Cleanup failed: %s", e)
        print(f"ERROR: cleanup failed: {e}", file=sys.stderr)
        return 1
    L.write_activity_log({"ts": _now_iso(), "event": "cli_cleanup", "days": args.days, "deleted": deleted})
    print(f"Deleted {deleted} job(s) first seen more than {args.days} day(s) ago.")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    kwargs = _parse_kv_pairs(args.kwargs or [])
    LOG.debug("Run module %s with kwargs=%s", args.module, kwargs)

    try:
        meta, run_id = _runner.run_module_once(module=args.module, kwargs=kwargs)
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "module": args.module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1

    L.write_activity_log({
        "ts": _now_iso(),
        "event": "cli_run",
        "run_id": run_id,
        "module": args.module,
        "trigger_type": "adhoc",
        "kwargs": kwargs,
        "duration_ms": int((time.monotonic() - start_time) * 1000),
    })

    meta = meta or {}
    if all(key in meta for key, _ in _SUMMARY_LINES):
        for key, label in _SUMMARY_LINES:
            print(f"{label + ':':<14}{meta[key]}")
    print(f"DONE: {meta.get('message', 'Module run completed.')}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run scheduled crawls until SIGINT/SIGTERM."""
    stop_requested = threading.Event()

    def _on_signal(signum, _frame):
        LOG.info("Received %s; stopping.", signal.Signals(signum).name)
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _on_signal)

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start", "config": args.config})
    controller = None
    try:
        controller = _scheduler.start(config_path=args.config)
        LOG.info("Serving jobs: %s", ", ".join(controller.get_job_ids()) or "(none)")
        while not stop_requested.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("serve aborted: %s", e)
        L.write_error_log({"ts": _now_iso(), "where": "cli.serve", "error": repr(e)})
        return 1
    finally:
        _safe_stop(controller)

    L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
    return 0


def _safe_stop(controller: Any) -> None:
    if controller is None:
        return
    try:
        controller.stop()
        controller.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Scheduler did not stop cleanly")


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="job-watch",
        description="Job listing crawler command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to schedule config file (fallbacks to CONFIG_PATH env or an empty schedule).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Run one crawl pass now.")
    sp.add_argument("--module", default=_runner.DEFAULT_MODULE, help="Module to run (default: %(default)s).")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Settings overrides such as renderer=static or max_age_days=3 (JSON values decoded).",
    )
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("serve", help="Run the crawler on its configured schedule.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("list-schedule", help="Print all scheduled jobs from config.")
    sp.set_defaults(func=cmd_list_schedule)

    sp = sub.add_parser("list-sites", help="Print the configured listing sites.")
    sp.add_argument("--sites-path", default=os.getenv("SITES_PATH", DEFAULT_SITES_PATH))
    sp.set_defaults(func=cmd_list_sites)

    sp = sub.add_parser("list-jobs", help="Print stored jobs, newest first.")
    sp.add_argument("--days", type=int, default=None, help="Only jobs posted in the last N days.")
    sp.add_argument("--limit", type=int, default=None)
    sp.add_argument("--sqlite-path", default=os.getenv("SQLITE_PATH", DEFAULT_SQLITE_PATH))
    sp.set_defaults(func=cmd_list_jobs)

    sp = sub.add_parser("cleanup", help="Delete stored jobs first seen more than N days ago.")
    sp.add_argument("--days", type=int, default=30)
    sp.add_argument("--sqlite-path", default=os.getenv("SQLITE_PATH", DEFAULT_SQLITE_PATH))
    sp.set_defaults(func=cmd_cleanup)

    sp = sub.add_parser("validate-config", help="Verify schedule configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
