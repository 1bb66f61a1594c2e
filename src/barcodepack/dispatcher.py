from __future__ import annotations

import logging
import shutil
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path

from .app_logging import log_with_fields
from .archive import Archiver, select_archiver
from .config import AppConfig
from .errors import ChunkTimeout, InvalidInput, ResourceError
from .finalizer import FinalizeOutcome, Finalizer
from .models import ChunkResult, ChunkWorkItem, FormatOptions, JobSpec, JobStatus
from .partition import count_chunks, plan_chunks, validate_order_id, validate_range
from .progress import ProgressAggregator
from .raster import RasterRenderer
from .store import Store
from .utils import archive_path_for, random_suffix, utc_now_iso
from .vector import VectorRenderer
from .watchdog import CompletionWatchdog, WatchdogState
from .webhook import WebhookNotifier
from .worker import ChunkWorker, ensure_skeleton


class Dispatcher:
    """Accepts jobs and runs their chunks on a local thread pool."""

    def __init__(
        self,
        config: AppConfig,
        store: Store,
        logger: logging.Logger,
        aggregator: ProgressAggregator | None = None,
        archiver: Archiver | None = None,
        notifier: WebhookNotifier | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.logger = logger
        self.aggregator = aggregator if aggregator is not None else ProgressAggregator()
        self.archiver = archiver if archiver is not None else select_archiver(config.archive, logger)
        self.notifier = notifier if notifier is not None else WebhookNotifier(config.webhook, logger)
        self.worker = ChunkWorker(
            RasterRenderer(config.raster, config.paths.font),
            VectorRenderer(config.vector),
            store,
            self.aggregator,
            logger,
        )
        self.finalizer = Finalizer(config, store, self.archiver, logger, notifier=self.notifier)
        self.watchdog = CompletionWatchdog(config.watchdog, store, self.finalizer, logger, aggregator=self.aggregator)

    def submit(self, spec: JobSpec, replace_existing: bool = False) -> tuple[JobStatus, list[ChunkWorkItem]]:
        validate_range(spec.start_base, spec.end_base)
        validate_order_id(spec.order_id)
        formats = FormatOptions.resolve(
            spec.formats,
            enable_pdf=self.config.render.enable_pdf,
            enable_eps=self.config.render.enable_eps,
        )
        if replace_existing:
            self.replace_order(spec.order_id)

        chunk_size = self.config.render.chunk_size
        job_id = str(uuid.uuid4())
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        output_root = self.config.paths.storage / f"order-{stamp}-{random_suffix()}"
        try:
            output_root.mkdir(parents=True)
        except OSError as exc:
            raise ResourceError(f"Cannot create output root {output_root}: {exc}") from exc
        ensure_skeleton(output_root, formats)

        job = JobStatus(
            job_id=job_id,
            order_id=spec.order_id,
            output_root=str(output_root),
            start_base=spec.start_base,
            end_base=spec.end_base,
            chunk_size=chunk_size,
            formats=formats,
            total_chunks=count_chunks(spec.start_base, spec.end_base, chunk_size),
            completed_chunks=0,
            failed_chunks=0,
            archive_path=None,
            created_at=utc_now_iso(),
            finished_at=None,
            callback_url=spec.callback_url,
            callback_token=spec.callback_token,
        )
        self.store.insert_job(job)
        self.aggregator.set_total(job_id, job.total_chunks)
        self.store.add_event(
            job_id,
            "accepted",
            {"order_id": spec.order_id, "start": spec.start_base, "end": spec.end_base, "formats": formats.to_list()},
        )
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_accepted",
            job_id=job_id,
            order_id=spec.order_id,
            start=spec.start_base,
            end=spec.end_base,
            total_chunks=job.total_chunks,
            output_root=str(output_root),
        )
        items = plan_chunks(
            job_id=job_id,
            order_id=spec.order_id,
            output_root=output_root,
            start_base=spec.start_base,
            end_base=spec.end_base,
            chunk_size=chunk_size,
            formats=formats,
        )
        return job, items

    def replace_order(self, order_id: str) -> list[str]:
        removed: list[str] = []
        for job in self.store.jobs_for_order(order_id):
            output_root = Path(job.output_root)
            if output_root.exists():
                shutil.rmtree(output_root)
            archive_path_for(output_root).unlink(missing_ok=True)
            self.store.delete_job(job.job_id)
            self.aggregator.forget(job.job_id)
            removed.append(job.job_id)
            log_with_fields(
                self.logger,
                logging.INFO,
                "job_replaced",
                job_id=job.job_id,
                order_id=order_id,
                output_root=str(output_root),
            )
        return removed

    def run(self, job_id: str, items: list[ChunkWorkItem]) -> JobStatus:
        results: list[ChunkResult] = []
        with ThreadPoolExecutor(max_workers=self.config.render.workers) as executor:
            futures = {executor.submit(self.run_chunk, item): item for item in items}
            for future in as_completed(futures):
                results.append(future.result())

        # Batch-complete callback, then the watchdog's single check as the backstop.
        outcome = self.finalizer.finalize(job_id)
        state = self.watchdog.check(job_id)
        job = self.store.get_job(job_id)
        if job is None:
            raise InvalidInput(f"Unknown job: {job_id}")
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_run_complete",
            job_id=job_id,
            chunks=len(results),
            rendered=sum(result.rendered for result in results),
            failed=sum(result.failed for result in results),
            finalize=outcome.value,
            watchdog=state.value,
        )
        return job

    def generate(self, spec: JobSpec, replace_existing: bool = False) -> JobStatus:
        job, items = self.submit(spec, replace_existing=replace_existing)
        return self.run(job.job_id, items)

    def run_chunk(self, item: ChunkWorkItem) -> ChunkResult:
        max_attempts = self.config.render.max_attempts
        for attempt in range(1, max_attempts + 1):
            deadline = time.monotonic() + self.config.render.chunk_timeout_seconds
            try:
                return self.worker.run(item, deadline)
            except (ChunkTimeout, ResourceError, OSError) as exc:
                log_with_fields(
                    self.logger,
                    logging.WARNING,
                    "chunk_attempt_failed",
                    job_id=item.job_id,
                    chunk_index=item.chunk_index,
                    attempt=attempt,
                    error=str(exc),
                )

        # Exhausted chunks still count as done; every code is a failure.
        log_with_fields(
            self.logger,
            logging.ERROR,
            "chunk_exhausted",
            job_id=item.job_id,
            chunk_index=item.chunk_index,
            attempts=max_attempts,
        )
        result = ChunkResult(chunk_index=item.chunk_index, failed=item.size)
        result.counted = self.worker.mark_done(item, item.size)
        return result

    def finalize(self, job_id: str) -> FinalizeOutcome:
        return self.finalizer.finalize(job_id)

    def watch(self, job_id: str) -> WatchdogState:
        return self.watchdog.watch(job_id)
