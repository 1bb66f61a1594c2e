from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from .app_logging import log_with_fields
from .errors import ChunkTimeout, InvalidInput, ResourceError
from .models import ArtifactFormat, ChunkResult, ChunkWorkItem, FormatOptions, Symbology
from .progress import ProgressAggregator
from .raster import RasterRenderer
from .store import Store
from .symbology import codes_for_base
from .utils import iter_bases
from .vector import VectorRenderer


def artifact_path(output_root: Path, symbology: Symbology, artifact: ArtifactFormat, code: str) -> Path:
    return output_root / symbology.value / artifact.directory / f"{symbology.value}-{code}.{artifact.extension}"


def ensure_skeleton(output_root: Path, formats: FormatOptions) -> None:
    for symbology in Symbology:
        for artifact in formats.artifact_formats():
            directory = output_root / symbology.value / artifact.directory
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ResourceError(f"Cannot create directory {directory}: {exc}") from exc


class ChunkWorker:
    def __init__(
        self,
        raster: RasterRenderer,
        vector: VectorRenderer,
        store: Store,
        aggregator: ProgressAggregator | None,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.raster = raster
        self.vector = vector
        self.store = store
        self.aggregator = aggregator
        self.logger = logger
        self.clock = clock

    def run(self, item: ChunkWorkItem, deadline: float | None = None) -> ChunkResult:
        result = self.process(item, deadline)
        result.counted = self.mark_done(item, result.failed)
        return result

    def process(self, item: ChunkWorkItem, deadline: float | None = None) -> ChunkResult:
        """Render every missing artifact of the chunk; does not touch the counters."""
        log_with_fields(
            self.logger,
            logging.INFO,
            "chunk_started",
            job_id=item.job_id,
            chunk_index=item.chunk_index,
            start=item.start_base,
            end=item.end_base,
        )
        # Font problems are fatal to the chunk, not per-code failures.
        self.raster.load_font()
        result = ChunkResult(chunk_index=item.chunk_index)
        artifacts = item.formats.artifact_formats()

        for base in iter_bases(item.start_base, item.end_base):
            if deadline is not None and self.clock() > deadline:
                raise ChunkTimeout(f"chunk {item.chunk_index} of job {item.job_id} exceeded its deadline at {base}")
            try:
                upc12, ean13 = codes_for_base(base)
                for symbology, code in ((Symbology.UPCA, upc12), (Symbology.EAN13, ean13)):
                    for artifact in artifacts:
                        destination = artifact_path(item.output_root, symbology, artifact, code)
                        if destination.exists():
                            result.skipped += 1
                            continue
                        self._render(artifact, code, destination)
                        result.rendered += 1
                        log_with_fields(
                            self.logger,
                            logging.DEBUG,
                            "artifact_written",
                            job_id=item.job_id,
                            chunk_index=item.chunk_index,
                            path=str(destination),
                        )
            except (InvalidInput, OSError) as exc:
                result.failed += 1
                log_with_fields(
                    self.logger,
                    logging.WARNING,
                    "code_render_failed",
                    job_id=item.job_id,
                    chunk_index=item.chunk_index,
                    base=base,
                    error=str(exc),
                )
        return result

    def mark_done(self, item: ChunkWorkItem, failed_codes: int) -> bool:
        counted = self.store.record_chunk_done(item.job_id, item.chunk_index, failed_codes)
        if not counted:
            log_with_fields(
                self.logger,
                logging.INFO,
                "chunk_duplicate_ignored",
                job_id=item.job_id,
                chunk_index=item.chunk_index,
            )
            return False
        done = None
        if self.aggregator is not None:
            done = self.aggregator.increment_done(item.job_id)
        log_with_fields(
            self.logger,
            logging.INFO,
            "chunk_done",
            job_id=item.job_id,
            chunk_index=item.chunk_index,
            failed=failed_codes,
            done=done,
        )
        return True

    def _render(self, artifact: ArtifactFormat, code: str, destination: Path) -> None:
        if artifact is ArtifactFormat.RASTER:
            self.raster.render(code, destination)
        elif artifact is ArtifactFormat.PDF:
            self.vector.render_pdf(code, destination)
        else:
            self.vector.render_eps(code, destination)
