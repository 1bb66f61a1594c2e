from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .app_logging import log_with_fields
from .config import WatchdogConfig
from .errors import InvalidInput, WatchdogExpired
from .finalizer import Finalizer
from .progress import ProgressAggregator, effective_progress
from .store import Store
from .utils import archive_path_for


class WatchdogState(str, Enum):
    POLLING = "polling"
    TERMINAL = "terminal"


class CompletionWatchdog:
    """Backstop for a missed completion callback: polls progress and finalizes once."""

    def __init__(
        self,
        config: WatchdogConfig,
        store: Store,
        finalizer: Finalizer,
        logger: logging.Logger,
        aggregator: ProgressAggregator | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.finalizer = finalizer
        self.logger = logger
        self.aggregator = aggregator
        self.sleep = sleep
        self.clock = clock

    def check(self, job_id: str) -> WatchdogState:
        job = self.store.get_job(job_id)
        if job is None:
            raise InvalidInput(f"Unknown job: {job_id}")

        if job.archive_path or archive_path_for(Path(job.output_root)).exists():
            log_with_fields(self.logger, logging.INFO, "watchdog_terminal", job_id=job_id, reason="archive_exists")
            return WatchdogState.TERMINAL

        done, total = effective_progress(self.aggregator, job)
        if total > 0 and done >= total:
            outcome = self.finalizer.finalize(job_id)
            log_with_fields(
                self.logger,
                logging.INFO,
                "watchdog_dispatch",
                job_id=job_id,
                done=done,
                total=total,
                outcome=outcome.value,
            )
            return WatchdogState.TERMINAL

        log_with_fields(self.logger, logging.INFO, "watchdog_progress", job_id=job_id, done=done, total=total)
        return WatchdogState.POLLING

    def watch(self, job_id: str) -> WatchdogState:
        started = self.clock()
        while True:
            state = self.check(job_id)
            if state is WatchdogState.TERMINAL:
                return state
            if self.clock() - started >= self.config.max_lifetime_seconds:
                log_with_fields(self.logger, logging.ERROR, "watchdog_expired", job_id=job_id)
                raise WatchdogExpired(
                    f"Job {job_id} did not complete within {self.config.max_lifetime_seconds}s"
                )
            self.sleep(self.config.interval_seconds)
