from __future__ import annotations

import contextlib
import os
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from .logging_bridge import error as log_error
from .models import NewJob, PersistedJob
from .utils import from_iso, now_utc, to_iso


class DuplicateJobError(Exception):
    """A row with the same url already exists."""


# ---- Repository contract ----------------------------------------------------


class JobRepository(ABC):
    """
    Persistent store keyed by job URL.

    The only concurrency guarantee relied upon: create() on an existing url
    raises DuplicateJobError instead of writing a second row.
    """

    @abstractmethod
    def exists(self, url: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def create(self, job: NewJob) -> int:
        """Insert and return the new id; DuplicateJobError on a url collision."""
        raise NotImplementedError


def save_if_new(
    repo: JobRepository,
    title: str,
    company: str,
    url: str,
    posted_date: datetime,
) -> int | None:
    """
    Persist a job unless its url is already stored.

    Returns the new id, or None when the url was already present. A uniqueness
    violation between the existence check and the insert (another writer got
    there first) is also reported as None rather than raised.
    """
    if repo.exists(url):
        return None
    try:
        return repo.create(NewJob(title=title, company=company, url=url, posted_date=posted_date))
    except DuplicateJobError:
        return None


# ---- SQLite implementation ---------------------------------------------------


class SqliteJobRepository(JobRepository):
    """
    SQLite-backed repository. The UNIQUE index on url backs the at-most-once
    contract; a connection is opened per call, so one instance can be shared
    for a whole run.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self._ready = False

    def init_db(self) -> None:
        """Ensure the database file and schema exist. Safe to call multiple times."""
        _ensure_dir(self.sqlite_path)
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            _apply_pragmas(conn)
            _ensure_schema(conn)
        self._ready = True

    def exists(self, url: str) -> bool:
        with self._conn() as conn:
            row = conn.execute("SELECT 1 FROM jobs WHERE url = ? LIMIT 1", (url,)).fetchone()
        return row is not None

    def create(self, job: NewJob) -> int:
        found_at = job.found_at or now_utc()
        try:
            with self._conn() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO jobs (title, company, url, posted_date, found_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (job.title, job.company, job.url, to_iso(job.posted_date), to_iso(found_at)),
                )
                return int(cur.lastrowid)
        except sqlite3.IntegrityError as e:
            raise DuplicateJobError(job.url) from e
        except sqlite3.Error as e:
            log_error({
                "component": "job_watch.db",
                "op": "create",
                "sqlite_path": self.sqlite_path,
                "url": job.url,
                "error": repr(e),
            })
            raise

    # ---- reporting & retention -------------------------------------------

    def list_jobs(self, since_days: int | None = None, limit: int | None = None) -> list[PersistedJob]:
        """Stored jobs, newest posted_date first; optionally only the last N days."""
        sql = "SELECT id, title, company, url, posted_date, found_at FROM jobs"
        params: list[object] = []
        if since_days is not None:
            sql += " WHERE posted_date >= ?"
            params.append(to_iso(now_utc() - timedelta(days=since_days)))
        sql += " ORDER BY posted_date DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            PersistedJob(
                id=r[0],
                title=r[1],
                company=r[2],
                url=r[3],
                posted_date=from_iso(r[4]),
                found_at=from_iso(r[5]),
            )
            for r in rows
        ]

    def count(self) -> int:
        if not os.path.exists(self.sqlite_path):
            return 0
        with self._conn() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
        return int(n or 0)

    def delete_found_before(self, cutoff: datetime) -> int:
        """Retention sweep: drop rows first seen before `cutoff`. Returns rows deleted."""
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM jobs WHERE found_at < ?", (to_iso(cutoff),))
            return int(cur.rowcount or 0)

    # ---- internals ---------------------------------------------------------

    @contextlib.contextmanager
    def _conn(self):
        if not self._ready:
            self.init_db()
        conn = _connect(self.sqlite_path)
        try:
            _apply_pragmas(conn)
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()


# ---- In-memory implementation (tests, dry runs) -------------------------------


class InMemoryJobRepository(JobRepository):
    """Dict-backed repository with the same uniqueness contract."""

    def __init__(self) -> None:
        self.rows: dict[str, PersistedJob] = {}
        self._next_id = 1

    def exists(self, url: str) -> bool:
        return url in self.rows

    def create(self, job: NewJob) -> int:
        if job.url in self.rows:
            raise DuplicateJobError(job.url)
        job_id = self._next_id
        self._next_id += 1
        self.rows[job.url] = PersistedJob(
            id=job_id,
            title=job.title,
            company=job.company,
            url=job.url,
            posted_date=job.posted_date,
            found_at=job.found_at or now_utc(),
        )
        return job_id


# ---- Internal utilities -----------------------------------------------------


def reset_db(sqlite_path: str) -> None:
    """Remove the DB file entirely (for pytest fixtures). Safe if it doesn't exist."""
    with contextlib.suppress(FileNotFoundError):
        os.remove(sqlite_path)


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; transactions are managed explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id          INTEGER PRIMARY KEY AUTOINCREMENT,
          title       TEXT NOT NULL,
          company     TEXT NOT NULL,
          url         TEXT NOT NULL,
          posted_date TEXT NOT NULL,
          found_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        );
        """
    )
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_url ON jobs (url);")
    conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_found_at ON jobs (found_at);")
