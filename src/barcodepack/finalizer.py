from __future__ import annotations

import logging
import os
import shutil
import time
import uuid
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .app_logging import log_with_fields
from .archive import Archiver
from .config import AppConfig
from .errors import FinalizeTimeout, InvalidInput, ResourceError
from .models import JobStatus
from .number_list import write_number_lists
from .store import Store
from .utils import archive_path_for, iter_archive_members, utc_now_iso
from .webhook import WebhookNotifier
from .worker import ensure_skeleton

SECONDS_PER_DAY = 86400


class FinalizeOutcome(str, Enum):
    BUILT = "built"
    CACHED = "cached"
    LOCKED = "locked"


def finalize_lock_key(job_id: str) -> str:
    return f"finalize:{job_id}"


def copy_front_matter(output_root: Path, source_dir: Path | None, order_id: str) -> list[Path]:
    """Copy static documents into the package root, never overwriting."""
    if source_dir is None:
        return []
    if not source_dir.is_dir():
        raise ResourceError(f"Front matter directory missing: {source_dir}")
    copied: list[Path] = []
    for source in sorted(source_dir.iterdir()):
        if not source.is_file():
            continue
        destination = output_root / source.name.replace("{order_id}", order_id)
        if destination.exists():
            continue
        shutil.copy2(source, destination)
        copied.append(destination)
    return copied


def archive_is_fresh(archive: Path, output_root: Path, horizon_seconds: float, now: float) -> bool:
    """Archive younger than the horizon and no member newer than it (mtime only)."""
    if horizon_seconds <= 0 or not archive.is_file():
        return False
    archive_mtime = archive.stat().st_mtime
    if now - archive_mtime >= horizon_seconds:
        return False
    return all(path.stat().st_mtime <= archive_mtime for path in iter_archive_members(output_root))


class Finalizer:
    def __init__(
        self,
        config: AppConfig,
        store: Store,
        archiver: Archiver,
        logger: logging.Logger,
        notifier: WebhookNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store
        self.archiver = archiver
        self.logger = logger
        self.notifier = notifier
        self.clock = clock

    def finalize(self, job_id: str) -> FinalizeOutcome:
        job = self.store.get_job(job_id)
        if job is None:
            raise InvalidInput(f"Unknown job: {job_id}")

        lock_key = finalize_lock_key(job_id)
        owner = uuid.uuid4().hex
        if not self.store.try_acquire_lock(lock_key, owner, self.config.finalize.lock_lease_seconds, self.clock()):
            log_with_fields(self.logger, logging.INFO, "finalize_lock_held", job_id=job_id)
            return FinalizeOutcome.LOCKED

        try:
            log_with_fields(self.logger, logging.INFO, "finalize_started", job_id=job_id, owner=owner)
            return self._finalize_locked(job)
        except Exception as exc:
            log_with_fields(self.logger, logging.ERROR, "finalize_failed", job_id=job_id, error=str(exc))
            self.store.add_event(job_id, "finalize_failed", {"error": str(exc)})
            raise
        finally:
            self.store.release_lock(lock_key, owner)

    def _finalize_locked(self, job: JobStatus) -> FinalizeOutcome:
        started = self.clock()
        output_root = Path(job.output_root)
        if not output_root.is_dir():
            raise ResourceError(f"Output root missing for job {job.job_id}: {output_root}")

        ensure_skeleton(output_root, job.formats)
        copy_front_matter(output_root, self.config.paths.front_matter, job.order_id)
        if job.formats.number_list:
            write_number_lists(output_root, job.order_id, job.start_base, job.end_base)

        archive = archive_path_for(output_root)
        horizon = self.config.archive.cache_days * SECONDS_PER_DAY
        if archive_is_fresh(archive, output_root, horizon, self.clock()):
            finished_at = job.finished_at or utc_now_iso()
            self._record_archive(job, archive, finished_at)
            log_with_fields(self.logger, logging.INFO, "finalize_cached", job_id=job.job_id, path=str(archive))
            return FinalizeOutcome.CACHED

        self._check_deadline(job, started)
        # Built beside the final name and swapped in, so a failed rebuild
        # leaves the previous archive in place.
        partial = archive.with_name(f"{output_root.name}.partial.zip")
        partial.unlink(missing_ok=True)
        try:
            file_count, total_bytes = self.archiver.build(output_root, partial)
            self._check_deadline(job, started)
            os.replace(partial, archive)
        finally:
            partial.unlink(missing_ok=True)

        finished_at = utc_now_iso()
        self._record_archive(job, archive, finished_at)
        self.store.add_event(
            job.job_id,
            "finalized",
            {"archive_path": str(archive), "files": file_count, "bytes": total_bytes, "archiver": self.archiver.name},
        )
        log_with_fields(
            self.logger,
            logging.INFO,
            "archive_written",
            job_id=job.job_id,
            path=str(archive),
            files=file_count,
            bytes=total_bytes,
            archiver=self.archiver.name,
        )

        if self.notifier is not None:
            refreshed = self.store.get_job(job.job_id)
            if refreshed is not None:
                self.notifier.notify(refreshed)
        return FinalizeOutcome.BUILT

    def _record_archive(self, job: JobStatus, archive: Path, finished_at: str) -> None:
        if not self.store.set_archive(job.job_id, str(archive), finished_at):
            raise ResourceError(f"Job {job.job_id} already records a different archive")

    def _check_deadline(self, job: JobStatus, started: float) -> None:
        if self.clock() - started > self.config.finalize.timeout_seconds:
            raise FinalizeTimeout(f"Finalize of job {job.job_id} exceeded {self.config.finalize.timeout_seconds}s")
