"""
SQLite store shared by the pulse scheduler, shared memory, and the workforce queue.

Tables:
- bots: bot definitions supplied by the bot-storage collaborator
- pulse_jobs / pulse_logs: recurring or triggered wakes and their history
- shared_memory: durable (namespace, key) -> JSON value rows
- workforce_jobs: the durable job queue
- workforce_runs: run records that outlive queue retention
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite busy timeout (ms) - wait before raising SQLITE_BUSY
SQLITE_BUSY_TIMEOUT_MS = 5000

MAX_DB_RETRIES = 3
DB_RETRY_DELAY_SEC = 0.1

SCHEMA = """
CREATE TABLE IF NOT EXISTS bots (
    id              TEXT PRIMARY KEY,
    user_id         TEXT,
    name            TEXT NOT NULL,
    hivelang_code   TEXT NOT NULL DEFAULT '',
    system_prompt   TEXT,
    created_at      REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS pulse_jobs (
    id              TEXT PRIMARY KEY,
    bot_id          TEXT NOT NULL,
    trigger_type    TEXT NOT NULL DEFAULT 'schedule',
    trigger_config  TEXT NOT NULL DEFAULT '{}',
    last_run        REAL,
    next_run        REAL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    lease_owner     TEXT,
    lease_expires   REAL,
    created_at      REAL NOT NULL,
    updated_at      REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS pulse_logs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id              TEXT NOT NULL,
    bot_id              TEXT NOT NULL,
    status              TEXT NOT NULL,
    output              TEXT,
    execution_time_ms   INTEGER,
    created_at          REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS shared_memory (
    namespace       TEXT NOT NULL,
    key             TEXT NOT NULL,
    value           TEXT NOT NULL,
    updated_at      REAL NOT NULL,
    PRIMARY KEY (namespace, key)
);

CREATE TABLE IF NOT EXISTS workforce_jobs (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    request         TEXT NOT NULL,
    state           TEXT NOT NULL DEFAULT 'waiting',
    progress        TEXT,
    result          TEXT,
    error           TEXT,
    attempts        INTEGER NOT NULL DEFAULT 0,
    worker_id       TEXT,
    lease_expires   REAL,
    created_at      REAL NOT NULL,
    updated_at      REAL NOT NULL,
    finished_at     REAL
);

CREATE TABLE IF NOT EXISTS workforce_runs (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    request         TEXT NOT NULL,
    result          TEXT,
    status          TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_pulse_jobs_due ON pulse_jobs(is_active, next_run);
CREATE INDEX IF NOT EXISTS idx_pulse_logs_job ON pulse_logs(job_id);
CREATE INDEX IF NOT EXISTS idx_workforce_jobs_state ON workforce_jobs(state, created_at);
"""


class Database:
    """
    Thread-safe wrapper around one sqlite connection.

    All statements run under an RLock. ``transaction()`` opens an IMMEDIATE
    transaction so read-then-update sequences (job claims) are atomic across
    processes sharing the file. Coroutines reach the database through
    ``run()``, which hops onto a worker thread.
    """

    def __init__(self, path: Union[str, Path], *, create_schema: bool = True) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self.conn = sqlite3.connect(
            self.path,
            check_same_thread=False,
            timeout=SQLITE_BUSY_TIMEOUT_MS / 1000.0,
            isolation_level=None,
        )
        self.conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")

        if create_schema:
            self.create_schema()
        logger.info("Database opened at %s", self.path)

    def create_schema(self) -> None:
        with self._lock:
            self.conn.executescript(SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements atomically, retrying on a locked database."""
        with self._lock:
            retries = 0
            while True:
                try:
                    self.conn.execute("BEGIN IMMEDIATE")
                    break
                except sqlite3.OperationalError as exc:
                    if "database is locked" in str(exc) and retries < MAX_DB_RETRIES:
                        retries += 1
                        logger.warning("Database locked, retry %d/%d", retries, MAX_DB_RETRIES)
                        time.sleep(DB_RETRY_DELAY_SEC * retries)
                    else:
                        raise
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking store call off the event loop."""
        return await asyncio.to_thread(fn, *args, **kwargs)

    def close(self) -> None:
        with self._lock:
            self.conn.close()
