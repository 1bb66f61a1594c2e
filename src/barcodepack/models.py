from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import InvalidInput


class Symbology(str, Enum):
    UPCA = "UPC-12"
    EAN13 = "EAN-13"

    @property
    def length(self) -> int:
        return 12 if self is Symbology.UPCA else 13


class ArtifactFormat(str, Enum):
    RASTER = "jpg"
    PDF = "pdf"
    EPS = "eps"

    @property
    def directory(self) -> str:
        return self.value.upper()

    @property
    def extension(self) -> str:
        return self.value


REQUEST_FORMATS = frozenset({"jpg", "pdf", "eps", "xls"})


@dataclass(frozen=True, slots=True)
class FormatOptions:
    pdf: bool = False
    eps: bool = False
    number_list: bool = True
    raster: bool = field(default=True, init=False)

    @classmethod
    def resolve(cls, requested: list[str] | None, *, enable_pdf: bool, enable_eps: bool) -> FormatOptions:
        """Build the per-job flags from a request, falling back to deployment defaults."""
        if not requested:
            return cls(pdf=enable_pdf, eps=enable_eps, number_list=True)
        unknown = sorted(set(requested) - REQUEST_FORMATS)
        if unknown:
            raise InvalidInput(f"Unknown formats: {', '.join(unknown)}")
        chosen = set(requested)
        return cls(pdf="pdf" in chosen, eps="eps" in chosen, number_list="xls" in chosen)

    def artifact_formats(self) -> list[ArtifactFormat]:
        output = [ArtifactFormat.RASTER]
        if self.pdf:
            output.append(ArtifactFormat.PDF)
        if self.eps:
            output.append(ArtifactFormat.EPS)
        return output

    def to_list(self) -> list[str]:
        names = ["jpg"]
        if self.pdf:
            names.append("pdf")
        if self.eps:
            names.append("eps")
        if self.number_list:
            names.append("xls")
        return names


@dataclass(frozen=True, slots=True)
class JobSpec:
    order_id: str
    start_base: str
    end_base: str
    formats: list[str] | None = None
    callback_url: str | None = None
    callback_token: str | None = None


@dataclass(frozen=True, slots=True)
class ChunkWorkItem:
    job_id: str
    order_id: str
    chunk_index: int
    start_base: str
    end_base: str
    output_root: Path
    formats: FormatOptions

    @property
    def size(self) -> int:
        return int(self.end_base) - int(self.start_base) + 1


@dataclass(slots=True)
class JobStatus:
    job_id: str
    order_id: str
    output_root: str
    start_base: str
    end_base: str
    chunk_size: int
    formats: FormatOptions
    total_chunks: int
    completed_chunks: int
    failed_chunks: int
    archive_path: str | None
    created_at: str
    finished_at: str | None
    callback_url: str | None = None
    callback_token: str | None = None

    @property
    def finished(self) -> bool:
        return self.archive_path is not None

    @property
    def percentage(self) -> int:
        if self.finished:
            return 100
        if self.total_chunks <= 0:
            return 0
        return min(100, (self.completed_chunks * 100) // self.total_chunks)


@dataclass(slots=True)
class ChunkResult:
    chunk_index: int
    rendered: int = 0
    skipped: int = 0
    failed: int = 0
    counted: bool = False
