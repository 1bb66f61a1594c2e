from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import zipfile
from pathlib import Path
from typing import Protocol

from .app_logging import log_with_fields
from .config import ArchiveConfig
from .errors import ArchiveError
from .utils import extension_of, iter_archive_members

# Already compressed; deflating them again costs CPU for no gain.
STORED_EXTENSIONS = frozenset({"jpg", "jpeg", "pdf", "eps"})


class Archiver(Protocol):
    name: str

    def build(self, source_dir: Path, destination: Path) -> tuple[int, int]: ...


def is_stored(path: Path) -> bool:
    return extension_of(path) in STORED_EXTENSIONS


def _collect(source_dir: Path) -> list[Path]:
    if not source_dir.is_dir():
        raise ArchiveError(f"Archive source is not a directory: {source_dir}")
    return iter_archive_members(source_dir)


class ZipArchiver:
    name = "zipfile"

    def __init__(self, config: ArchiveConfig) -> None:
        self.config = config

    def build(self, source_dir: Path, destination: Path) -> tuple[int, int]:
        members = _collect(source_dir)
        total_bytes = 0
        try:
            with zipfile.ZipFile(destination, "w", allowZip64=True) as archive:
                for path in members:
                    arcname = path.relative_to(source_dir).as_posix()
                    if self.config.compression == "store" or is_stored(path):
                        archive.write(path, arcname, compress_type=zipfile.ZIP_STORED)
                    else:
                        archive.write(
                            path,
                            arcname,
                            compress_type=zipfile.ZIP_DEFLATED,
                            compresslevel=self.config.level,
                        )
                    total_bytes += path.stat().st_size
        except OSError as exc:
            raise ArchiveError(f"Failed to write archive {destination}: {exc}") from exc
        return len(members), total_bytes


class SevenZipArchiver:
    """Multi-threaded zip creation through an external ``7z`` binary."""

    name = "7z"

    def __init__(self, config: ArchiveConfig, executable: str) -> None:
        self.config = config
        self.executable = executable

    def _run(self, cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        return subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True, check=False)

    def _require_ok(self, process: subprocess.CompletedProcess[str], context: str) -> None:
        if process.returncode != 0:
            stderr = process.stderr.strip()
            stdout = process.stdout.strip()
            output = stderr if stderr else stdout
            raise ArchiveError(f"{context} failed: {output or 'exit code ' + str(process.returncode)}")

    def _add(self, source_dir: Path, destination: Path, members: list[Path], level: int) -> None:
        if not members:
            return
        with tempfile.TemporaryDirectory(prefix="barcodepack-7z-") as tmp_dir:
            list_file = Path(tmp_dir) / "members.txt"
            list_file.write_text(
                "".join(f"{path.relative_to(source_dir).as_posix()}\n" for path in members),
                encoding="utf-8",
            )
            cmd = [
                self.executable,
                "a",
                "-tzip",
                f"-mx={level}",
                "-mmt=on",
                "-y",
                "-bd",
                "-scsUTF-8",
                str(destination.resolve()),
                f"@{list_file}",
            ]
            self._require_ok(self._run(cmd, source_dir), f"{self.executable} a -mx={level}")

    def build(self, source_dir: Path, destination: Path) -> tuple[int, int]:
        members = _collect(source_dir)
        if self.config.compression == "store":
            stored, compressed = members, []
        else:
            stored = [path for path in members if is_stored(path)]
            compressed = [path for path in members if not is_stored(path)]
        self._add(source_dir, destination, stored, 0)
        self._add(source_dir, destination, compressed, self.config.level)
        if not members:
            # 7z refuses to create an empty archive.
            with zipfile.ZipFile(destination, "w"):
                pass
        with zipfile.ZipFile(destination) as archive:
            entries = [info for info in archive.infolist() if not info.is_dir()]
        if len(entries) != len(members):
            raise ArchiveError(f"{destination} holds {len(entries)} entries, expected {len(members)}")
        return len(members), sum(path.stat().st_size for path in members)


def select_archiver(config: ArchiveConfig, logger: logging.Logger) -> Archiver:
    executable = shutil.which(config.external_tool) if config.prefer_external else None
    archiver: Archiver
    if executable:
        archiver = SevenZipArchiver(config, executable)
    else:
        archiver = ZipArchiver(config)
    log_with_fields(logger, logging.INFO, "archiver_selected", archiver=archiver.name, executable=executable)
    return archiver
