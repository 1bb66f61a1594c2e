"""Per-symbology CSV lists of every code in a job."""

from __future__ import annotations

import csv
import filecmp
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from .models import ArtifactFormat, Symbology
from .symbology import codes_for_base
from .utils import iter_bases

LIST_EXTENSION = "csv"

_RASTER_NAME_PATTERNS = {
    Symbology.UPCA: re.compile(r"^UPC-12-([0-9]{12})\.jpe?g$", re.IGNORECASE),
    Symbology.EAN13: re.compile(r"^EAN-13-([0-9]{13})\.jpe?g$", re.IGNORECASE),
}


def number_list_path(output_root: Path, symbology: Symbology, order_id: str) -> Path:
    name = f"{symbology.value} Number List - Order # {order_id}.{LIST_EXTENSION}"
    return output_root / symbology.value / name


def codes_from_range(start_base: str, end_base: str, symbology: Symbology) -> Iterator[str]:
    position = 0 if symbology is Symbology.UPCA else 1
    for base in iter_bases(start_base, end_base):
        yield codes_for_base(base)[position]


def codes_from_rasters(output_root: Path) -> dict[Symbology, list[str]]:
    """Recover codes from rendered JPEG names; directory order is arbitrary, so sort."""
    output: dict[Symbology, list[str]] = {}
    for symbology, pattern in _RASTER_NAME_PATTERNS.items():
        directory = output_root / symbology.value / ArtifactFormat.RASTER.directory
        codes: set[str] = set()
        if directory.is_dir():
            for path in directory.iterdir():
                match = pattern.match(path.name)
                if match:
                    codes.add(match.group(1))
        output[symbology] = sorted(codes)
    return output


def write_number_list(destination: Path, symbology: Symbology, codes: Iterable[str]) -> bool:
    """Write the list unless an identical one is already there. Returns True on write.

    Rows go straight to ``<name>.part``; it replaces the destination only when
    the bytes differ, so an unchanged list keeps its mtime.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    with partial.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\r\n")
        writer.writerow([symbology.value])
        writer.writerows([code] for code in codes)
    if destination.is_file() and filecmp.cmp(partial, destination, shallow=False):
        partial.unlink()
        return False
    partial.replace(destination)
    return True


def write_number_lists(
    output_root: Path,
    order_id: str,
    start_base: str | None,
    end_base: str | None,
) -> list[Path]:
    scanned = None if start_base and end_base else codes_from_rasters(output_root)
    written: list[Path] = []
    for symbology in (Symbology.UPCA, Symbology.EAN13):
        if scanned is None:
            codes: Iterable[str] = codes_from_range(start_base, end_base, symbology)
        else:
            codes = scanned[symbology]
        destination = number_list_path(output_root, symbology, order_id)
        write_number_list(destination, symbology, codes)
        written.append(destination)
    return written
