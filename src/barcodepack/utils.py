from __future__ import annotations

import re
import secrets
import string
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

BASE_WIDTH = 11
ARTIFACT_EXTENSIONS = frozenset({"jpg", "jpeg", "pdf", "eps"})
LIST_EXTENSIONS = frozenset({"csv"})
ARCHIVE_EXTENSIONS = ARTIFACT_EXTENSIONS | LIST_EXTENSIONS

_DIGITS_REGEX = re.compile(r"[0-9]+")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def is_digits(value: str, length: int) -> bool:
    return len(value) == length and _DIGITS_REGEX.fullmatch(value) is not None


def add_base(base: str, delta: int, width: int = BASE_WIDTH) -> str:
    """Add ``delta`` to a fixed-width decimal string, keeping leading zeros."""
    value = int(base, 10) + delta
    if value < 0:
        value = 0
    return str(value).zfill(width)


def extension_of(path: Path) -> str:
    return path.suffix.lower().lstrip(".")


def is_archive_member(path: Path) -> bool:
    return path.is_file() and extension_of(path) in ARCHIVE_EXTENSIONS


def iter_archive_members(root: Path) -> list[Path]:
    return sorted(path for path in root.rglob("*") if is_archive_member(path))


def random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def archive_path_for(output_root: Path) -> Path:
    """Archive sits next to the output root: ``<parent>/<root name>.zip``."""
    return output_root.parent / f"{output_root.name}.zip"


def iter_bases(start_base: str, end_base: str) -> Iterator[str]:
    count = int(end_base) - int(start_base) + 1
    for offset in range(count):
        yield add_base(start_base, offset, len(start_base))
