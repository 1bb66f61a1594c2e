from __future__ import annotations

from pathlib import Path

from .errors import InvalidInput
from .models import ChunkWorkItem, FormatOptions
from .utils import BASE_WIDTH, add_base, is_digits


def validate_range(start_base: str, end_base: str) -> None:
    if not is_digits(start_base, BASE_WIDTH):
        raise InvalidInput(f"start must be exactly {BASE_WIDTH} digits, got {start_base!r}")
    if not is_digits(end_base, BASE_WIDTH):
        raise InvalidInput(f"end must be exactly {BASE_WIDTH} digits, got {end_base!r}")
    if start_base > end_base:
        raise InvalidInput(f"start {start_base} is greater than end {end_base}")


def validate_order_id(order_id: str) -> None:
    """The order id ends up in file names, so it must be a single path component."""
    if not order_id.strip():
        raise InvalidInput("order id must not be empty")
    for forbidden in ("/", "\\", "\0", ".."):
        if forbidden in order_id:
            raise InvalidInput(f"order id must not contain {forbidden!r}, got {order_id!r}")


def partition_range(start_base: str, end_base: str, chunk_size: int) -> list[tuple[str, str]]:
    """Split ``[start_base, end_base]`` into consecutive inclusive sub-ranges."""
    validate_range(start_base, end_base)
    if chunk_size < 1:
        raise InvalidInput(f"chunk size must be >= 1, got {chunk_size}")
    last = int(end_base)
    chunks: list[tuple[str, str]] = []
    cursor = start_base
    while int(cursor) <= last:
        chunk_end = add_base(cursor, chunk_size - 1)
        if int(chunk_end) > last:
            chunk_end = end_base
        chunks.append((cursor, chunk_end))
        cursor = add_base(cursor, chunk_size)
    return chunks


def count_chunks(start_base: str, end_base: str, chunk_size: int) -> int:
    validate_range(start_base, end_base)
    if chunk_size < 1:
        raise InvalidInput(f"chunk size must be >= 1, got {chunk_size}")
    span = int(end_base) - int(start_base) + 1
    return (span + chunk_size - 1) // chunk_size


def plan_chunks(
    *,
    job_id: str,
    order_id: str,
    output_root: Path,
    start_base: str,
    end_base: str,
    chunk_size: int,
    formats: FormatOptions,
) -> list[ChunkWorkItem]:
    return [
        ChunkWorkItem(
            job_id=job_id,
            order_id=order_id,
            chunk_index=index,
            start_base=chunk_start,
            end_base=chunk_end,
            output_root=output_root,
            formats=formats,
        )
        for index, (chunk_start, chunk_end) in enumerate(partition_range(start_base, end_base, chunk_size))
    ]
