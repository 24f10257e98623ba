#!/usr/bin/env python3
"""
run_log.py — SQLite run log for upperclip.

Creates upperclip.db in the given folder. Two kinds of row are written:

    runs(id, session_id, timestamp, target, steps, source, mode,
         dry_run, chars_in, chars_out, status, error)
        one per ChainRunner.run — what ran, on what, and how it ended
    log_entries(id, session_id, timestamp, tag, message, transform_name)
        the free-text lines the runner prints to stderr

A session row is only created by the first write, so opening the log just
to read it (--history, --runs, --sessions) leaves nothing behind. Writes go
through a queue to a writer thread; reads use their own connection.
"""

import queue
import sqlite3
import sys
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path

RETAIN_DAYS = 30
DB_NAME     = "upperclip.db"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS sessions (
        id                TEXT PRIMARY KEY,
        started_at        TEXT NOT NULL,
        transforms_folder TEXT
    );
    CREATE TABLE IF NOT EXISTS runs (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id  TEXT NOT NULL,
        timestamp   TEXT NOT NULL,
        target      TEXT NOT NULL,
        steps       TEXT NOT NULL,
        source      TEXT NOT NULL,
        mode        TEXT,
        dry_run     INTEGER NOT NULL,
        chars_in    INTEGER NOT NULL,
        chars_out   INTEGER,
        status      TEXT NOT NULL,
        error       TEXT
    );
    CREATE TABLE IF NOT EXISTS log_entries (
        id             INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id     TEXT NOT NULL,
        timestamp      TEXT NOT NULL,
        tag            TEXT NOT NULL,
        message        TEXT NOT NULL,
        transform_name TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_runs_session ON runs(session_id);
    CREATE INDEX IF NOT EXISTS idx_log_session  ON log_entries(session_id);
"""

INSERT_RUN = (
    "INSERT INTO runs(session_id, timestamp, target, steps, source, mode,"
    " dry_run, chars_in, chars_out, status, error)"
    " VALUES(?,?,?,?,?,?,?,?,?,?,?)"
)
INSERT_ENTRY = (
    "INSERT INTO log_entries(session_id, timestamp, tag, message, transform_name)"
    " VALUES(?,?,?,?,?)"
)


class RunLog:
    def __init__(self, folder: str, transforms_folder: str = ""):
        self._db_path           = str(Path(folder) / DB_NAME)
        self._transforms_folder = transforms_folder
        self._session           = str(uuid.uuid4())[:8]
        self._queue             = queue.Queue()
        self._lock              = threading.Lock()
        self._writer            = None

        with self._connect() as conn:
            conn.executescript(SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    # ── Session ───────────────────────────────────────────────────────────────

    def _ensure_session(self):
        with self._lock:
            if self._writer is not None:
                return
            now = datetime.now()
            cutoff = (now - timedelta(days=RETAIN_DAYS)).isoformat()
            with self._connect() as conn:
                conn.execute("DELETE FROM log_entries WHERE timestamp < ?", (cutoff,))
                conn.execute("DELETE FROM runs WHERE timestamp < ?", (cutoff,))
                conn.execute(
                    "DELETE FROM sessions WHERE started_at < ? AND id NOT IN "
                    "(SELECT session_id FROM runs UNION SELECT session_id FROM log_entries)",
                    (cutoff,)
                )
                conn.execute(
                    "INSERT INTO sessions(id, started_at, transforms_folder) VALUES(?,?,?)",
                    (self._session, now.isoformat(), self._transforms_folder)
                )
            self._writer = threading.Thread(target=self._writer_loop, daemon=True)
            self._writer.start()

    def _put(self, sql: str, params: tuple):
        self._ensure_session()
        self._queue.put((sql, params))

    def _writer_loop(self):
        conn = self._connect()
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    break
                conn.execute(*item)
                conn.commit()
            except sqlite3.Error as exc:
                print(f"[run_log] write failed: {exc}", file=sys.stderr)
            finally:
                self._queue.task_done()
        conn.close()

    # ── Writing ───────────────────────────────────────────────────────────────

    def log(self, message: str, tag: str = "info", transform_name: str = ""):
        self._put(INSERT_ENTRY, (
            self._session, datetime.now().isoformat(), tag, message, transform_name,
        ))

    def record_run(self, target: str, steps: list, source: str, mode: str,
                   dry_run: bool, chars_in: int, chars_out: int = None,
                   error: str = ""):
        """One row per run; a run with *error* set is stored with status 'err'."""
        self._put(INSERT_RUN, (
            self._session,
            datetime.now().isoformat(),
            target,
            ",".join(steps),
            source,
            mode or "",
            int(dry_run),
            chars_in,
            chars_out,
            "err" if error else "ok",
            error,
        ))

    def flush(self):
        """Block until every queued write has been committed."""
        self._queue.join()

    def stop(self):
        if self._writer is None:
            return
        self._queue.put(None)
        self._writer.join(timeout=3)

    # ── Reading ───────────────────────────────────────────────────────────────

    def _select(self, sql: str, filters: dict, limit: int) -> list:
        clauses = [f"{col} = ?" for col, val in filters.items() if val]
        params  = [val for val in filters.values() if val]
        where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(f"{sql} {where} ORDER BY id DESC LIMIT ?",
                                params + [limit]).fetchall()
        return [dict(r) for r in reversed(rows)]

    def entries(self, limit: int = 50, tag: str = None, session_id: str = None) -> list:
        """Newest *limit* log lines, oldest first."""
        return self._select(
            "SELECT id, session_id, timestamp, tag, message, transform_name FROM log_entries",
            {"tag": tag, "session_id": session_id}, limit,
        )

    def runs(self, limit: int = 50, status: str = None, session_id: str = None) -> list:
        """Newest *limit* runs, oldest first."""
        return self._select(
            "SELECT id, session_id, timestamp, target, steps, source, mode, dry_run,"
            " chars_in, chars_out, status, error FROM runs",
            {"status": status, "session_id": session_id}, limit,
        )

    def sessions(self, limit: int = 20) -> list:
        """Newest sessions first, with how many runs and failed runs each had."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT s.id, s.started_at, s.transforms_folder,"
                " COUNT(r.id) AS run_count,"
                " COALESCE(SUM(r.status = 'err'), 0) AS error_count"
                " FROM sessions s LEFT JOIN runs r ON r.session_id = s.id"
                " GROUP BY s.id ORDER BY s.started_at DESC LIMIT ?",
                (limit,)
            ).fetchall()
        return [dict(r) for r in rows]

    @property
    def session_id(self) -> str:
        return self._session

    @property
    def db_path(self) -> str:
        return self._db_path
