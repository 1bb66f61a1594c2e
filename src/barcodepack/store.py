from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from .models import FormatOptions, JobStatus
from .utils import utc_now_iso


def _row_to_job(row: sqlite3.Row) -> JobStatus:
    flags = json.loads(row["formats_json"])
    return JobStatus(
        job_id=row["job_id"],
        order_id=row["order_id"],
        output_root=row["output_root"],
        start_base=row["start_base"],
        end_base=row["end_base"],
        chunk_size=int(row["chunk_size"]),
        formats=FormatOptions(
            pdf=bool(flags.get("pdf")),
            eps=bool(flags.get("eps")),
            number_list=bool(flags.get("number_list", True)),
        ),
        total_chunks=int(row["total_chunks"]),
        completed_chunks=int(row["completed_chunks"]),
        failed_chunks=int(row["failed_chunks"]),
        archive_path=row["archive_path"],
        created_at=row["created_at"],
        finished_at=row["finished_at"],
        callback_url=row["callback_url"],
        callback_token=row["callback_token"],
    )


class Store:
    """SQLite-backed job records, chunk completions, audit events and lease locks.

    One connection is shared by the worker threads of a process; every call
    holds ``self._lock`` for the duration of its statement or transaction.
    """

    def __init__(self, db_path: Path, timeout: float = 30.0) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def init_schema(self) -> None:
        with self._lock:
            self.conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    job_id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL,
                    output_root TEXT NOT NULL,
                    start_base TEXT NOT NULL,
                    end_base TEXT NOT NULL,
                    chunk_size INTEGER NOT NULL,
                    formats_json TEXT NOT NULL,
                    total_chunks INTEGER NOT NULL,
                    completed_chunks INTEGER NOT NULL DEFAULT 0,
                    failed_chunks INTEGER NOT NULL DEFAULT 0,
                    archive_path TEXT,
                    created_at TEXT NOT NULL,
                    finished_at TEXT,
                    callback_url TEXT,
                    callback_token TEXT
                );

                CREATE TABLE IF NOT EXISTS chunk_completions (
                    job_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    failed_codes INTEGER NOT NULL,
                    completed_at TEXT NOT NULL,
                    PRIMARY KEY (job_id, chunk_index)
                );

                CREATE TABLE IF NOT EXISTS job_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    details_json TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS locks (
                    lock_key TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    expires_at REAL NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_jobs_order_id
                    ON jobs(order_id);
                CREATE INDEX IF NOT EXISTS idx_job_events_job_timestamp
                    ON job_events(job_id, timestamp);
                """
            )
            self.conn.commit()

    def add_event(self, job_id: str, event_type: str, details: dict[str, Any] | None = None) -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO job_events(job_id, event_type, timestamp, details_json)
                VALUES (?, ?, ?, ?)
                """,
                (job_id, event_type, utc_now_iso(), json.dumps(details or {}, sort_keys=True)),
            )
            self.conn.commit()

    def list_events(self, job_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT event_type, timestamp, details_json FROM job_events WHERE job_id = ? ORDER BY id",
                (job_id,),
            ).fetchall()
        return [
            {
                "event_type": row["event_type"],
                "timestamp": row["timestamp"],
                "details": json.loads(row["details_json"]),
            }
            for row in rows
        ]

    def insert_job(self, job: JobStatus) -> None:
        flags = {"pdf": job.formats.pdf, "eps": job.formats.eps, "number_list": job.formats.number_list}
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO jobs(
                    job_id, order_id, output_root, start_base, end_base, chunk_size, formats_json,
                    total_chunks, completed_chunks, failed_chunks, archive_path, created_at,
                    finished_at, callback_url, callback_token
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 0, NULL, ?, NULL, ?, ?)
                """,
                (
                    job.job_id,
                    job.order_id,
                    job.output_root,
                    job.start_base,
                    job.end_base,
                    job.chunk_size,
                    json.dumps(flags, sort_keys=True),
                    job.total_chunks,
                    job.created_at,
                    job.callback_url,
                    job.callback_token,
                ),
            )
            self.conn.commit()

    def get_job(self, job_id: str) -> JobStatus | None:
        with self._lock:
            row = self.conn.execute("SELECT * FROM jobs WHERE job_id = ?", (job_id,)).fetchone()
        if row is None:
            return None
        return _row_to_job(row)

    def list_jobs(self) -> list[JobStatus]:
        with self._lock:
            rows = self.conn.execute("SELECT * FROM jobs ORDER BY created_at, job_id").fetchall()
        return [_row_to_job(row) for row in rows]

    def jobs_for_order(self, order_id: str) -> list[JobStatus]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM jobs WHERE order_id = ? ORDER BY created_at, job_id",
                (order_id,),
            ).fetchall()
        return [_row_to_job(row) for row in rows]

    def delete_job(self, job_id: str) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM chunk_completions WHERE job_id = ?", (job_id,))
            self.conn.execute("DELETE FROM job_events WHERE job_id = ?", (job_id,))
            self.conn.execute("DELETE FROM jobs WHERE job_id = ?", (job_id,))

    def record_chunk_done(self, job_id: str, chunk_index: int, failed_codes: int) -> bool:
        """Count a chunk as done once; a re-delivered chunk index changes nothing.

        Returns True when this call moved ``completed_chunks``.
        """
        with self._lock, self.conn:
            cursor = self.conn.execute(
                """
                INSERT OR IGNORE INTO chunk_completions(job_id, chunk_index, failed_codes, completed_at)
                VALUES (?, ?, ?, ?)
                """,
                (job_id, chunk_index, failed_codes, utc_now_iso()),
            )
            if cursor.rowcount == 0:
                return False
            cursor = self.conn.execute(
                """
                UPDATE jobs
                SET completed_chunks = completed_chunks + 1,
                    failed_chunks = failed_chunks + ?
                WHERE job_id = ?
                """,
                (failed_codes, job_id),
            )
            if cursor.rowcount == 0:
                # Job was deleted or never existed.
                self.conn.execute(
                    "DELETE FROM chunk_completions WHERE job_id = ? AND chunk_index = ?",
                    (job_id, chunk_index),
                )
                return False
        return True

    def set_archive(self, job_id: str, archive_path: str, finished_at: str) -> bool:
        """Set the terminal fields unless a different archive is already recorded."""
        with self._lock, self.conn:
            cursor = self.conn.execute(
                """
                UPDATE jobs
                SET archive_path = ?, finished_at = ?
                WHERE job_id = ? AND (archive_path IS NULL OR archive_path = ?)
                """,
                (archive_path, finished_at, job_id, archive_path),
            )
        return cursor.rowcount > 0

    def try_acquire_lock(self, key: str, owner: str, lease_seconds: float, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM locks WHERE lock_key = ? AND expires_at <= ?", (key, current))
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO locks(lock_key, owner, expires_at) VALUES (?, ?, ?)",
                (key, owner, current + lease_seconds),
            )
        return cursor.rowcount > 0

    def release_lock(self, key: str, owner: str) -> bool:
        with self._lock, self.conn:
            cursor = self.conn.execute("DELETE FROM locks WHERE lock_key = ? AND owner = ?", (key, owner))
        return cursor.rowcount > 0

    def lock_owner(self, key: str) -> str | None:
        with self._lock:
            row = self.conn.execute("SELECT owner FROM locks WHERE lock_key = ?", (key,)).fetchone()
        return None if row is None else str(row["owner"])
