from __future__ import annotations

import threading

from .models import JobStatus


class ProgressAggregator:
    """In-memory per-job ``(done, total)`` counters shared by worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done: dict[str, int] = {}
        self._total: dict[str, int] = {}

    def set_total(self, job_id: str, total: int) -> None:
        with self._lock:
            self._total[job_id] = total
            self._done.setdefault(job_id, 0)

    def increment_done(self, job_id: str) -> int:
        with self._lock:
            self._done[job_id] = self._done.get(job_id, 0) + 1
            return self._done[job_id]

    def read(self, job_id: str) -> tuple[int, int]:
        with self._lock:
            return self._done.get(job_id, 0), self._total.get(job_id, 0)

    def forget(self, job_id: str) -> None:
        with self._lock:
            self._done.pop(job_id, None)
            self._total.pop(job_id, None)


def effective_progress(aggregator: ProgressAggregator | None, job: JobStatus) -> tuple[int, int]:
    """Larger of the fast-path and durable ``done`` readings, with the durable total."""
    done = job.completed_chunks
    total = job.total_chunks
    if aggregator is not None:
        fast_done, fast_total = aggregator.read(job.job_id)
        done = max(done, fast_done)
        total = total or fast_total
    return done, total
