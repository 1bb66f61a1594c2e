"""Shared fixtures for the test modules."""

from __future__ import annotations

import logging
from pathlib import Path

from barcodepack.app_logging import null_logger
from barcodepack.config import AppConfig, ArchiveConfig, PathsConfig, RenderConfig
from barcodepack.models import FormatOptions, JobStatus

UPC_CODES = ["000000000017", "000000000024", "000000000031", "000000000048", "000000000055"]
EAN_CODES = ["0" + code for code in UPC_CODES]


def make_job(
    job_id: str = "job-1",
    order_id: str = "A-1",
    total_chunks: int = 3,
    output_root: str | None = None,
    formats: FormatOptions | None = None,
    callback_url: str | None = "https://example.com/hook",
) -> JobStatus:
    return JobStatus(
        job_id=job_id,
        order_id=order_id,
        output_root=output_root or f"/tmp/{job_id}",
        start_base="00000000001",
        end_base="00000000005",
        chunk_size=2,
        formats=formats or FormatOptions(pdf=True, eps=False, number_list=True),
        total_chunks=total_chunks,
        completed_chunks=0,
        failed_chunks=0,
        archive_path=None,
        created_at="2025-01-01T00:00:00+00:00",
        finished_at=None,
        callback_url=callback_url,
        callback_token="secret",
    )


def make_config(root: Path, **render: object) -> AppConfig:
    paths = PathsConfig(
        storage=root / "storage",
        db=root / "barcodepack.db",
        log=root / "barcodepack.log",
    )
    paths.storage.mkdir(parents=True, exist_ok=True)
    return AppConfig(
        paths=paths,
        render=RenderConfig(**render),
        archive=ArchiveConfig(prefer_external=False),
    )


def quiet_logger(name: str = "barcodepack.test") -> logging.Logger:
    return null_logger(name)
