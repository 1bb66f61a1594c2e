from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from string import Formatter

import yaml
from reportlab.pdfbase import pdfmetrics

DOWNLOAD_URL_FIELDS = frozenset({"job_id", "order_id", "archive_path"})


@dataclass(slots=True)
class PathsConfig:
    storage: Path
    db: Path
    log: Path
    font: Path | None = None
    front_matter: Path | None = None


@dataclass(slots=True)
class RenderConfig:
    chunk_size: int = 20
    enable_pdf: bool = True
    enable_eps: bool = True
    workers: int = 4
    chunk_timeout_seconds: float = 3600
    max_attempts: int = 3


@dataclass(slots=True)
class RasterConfig:
    width: int = 460
    height: int = 300
    dpi: int = 300
    quiet_x: int = 42
    pad_top: int = 12
    text_height: int = 72
    text_gap: int = -10
    font_size: int = 34
    guard_extra: int = 6
    jpeg_quality: int = 95


@dataclass(slots=True)
class VectorConfig:
    module_pt: float = 1.0
    bar_height_pt: float = 50.0
    quiet_modules: int = 11
    font: str = "Helvetica"
    font_pt: float = 10.0
    text_gap_pt: float = 2.0
    with_text: bool = True


@dataclass(slots=True)
class ArchiveConfig:
    compression: str = "deflate"
    level: int = 3
    cache_days: float = 0
    external_tool: str = "7z"
    prefer_external: bool = True


@dataclass(slots=True)
class FinalizeConfig:
    lock_lease_seconds: int = 600
    timeout_seconds: float = 3600


@dataclass(slots=True)
class WatchdogConfig:
    interval_seconds: float = 15
    max_lifetime_seconds: float = 86400


@dataclass(slots=True)
class WebhookConfig:
    timeout_seconds: float = 10
    download_url_template: str = "file://{archive_path}"


@dataclass(slots=True)
class AppConfig:
    paths: PathsConfig
    render: RenderConfig = field(default_factory=RenderConfig)
    raster: RasterConfig = field(default_factory=RasterConfig)
    vector: VectorConfig = field(default_factory=VectorConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    finalize: FinalizeConfig = field(default_factory=FinalizeConfig)
    watchdog: WatchdogConfig = field(default_factory=WatchdogConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"`{name}` must be a mapping")
    return value


def _to_bool(value: object, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"1", "true", "yes", "on"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"0", "false", "no", "off"}:
        return False
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f"`{key}` must be a boolean")


def _check_url_template(template: str) -> None:
    try:
        names = {name for _, name, _, _ in Formatter().parse(template) if name is not None}
    except ValueError as exc:
        raise ValueError(f"`webhook.download_url_template` is malformed: {exc}") from exc
    unknown = sorted(names - DOWNLOAD_URL_FIELDS)
    if unknown:
        raise ValueError(
            f"`webhook.download_url_template` has unknown placeholders {unknown}; "
            f"allowed: {sorted(DOWNLOAD_URL_FIELDS)}"
        )


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    paths_raw = _require(raw, "paths", "root")
    if not isinstance(paths_raw, dict):
        raise ValueError("`paths` must be a mapping")

    def to_path(value: object) -> Path:
        output = Path(str(value)).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    def optional_path(key: str) -> Path | None:
        value = paths_raw.get(key)
        if value in (None, ""):
            return None
        return to_path(value)

    paths = PathsConfig(
        storage=to_path(_require(paths_raw, "storage", "paths")),
        db=to_path(_require(paths_raw, "db", "paths")),
        log=to_path(_require(paths_raw, "log", "paths")),
        font=optional_path("font"),
        front_matter=optional_path("front_matter"),
    )

    render_raw = _section(raw, "render")
    render = RenderConfig(
        chunk_size=int(render_raw.get("chunk_size", 20)),
        enable_pdf=_to_bool(render_raw.get("enable_pdf", True), "render.enable_pdf"),
        enable_eps=_to_bool(render_raw.get("enable_eps", True), "render.enable_eps"),
        workers=int(render_raw.get("workers", 4)),
        chunk_timeout_seconds=float(render_raw.get("chunk_timeout_seconds", 3600)),
        max_attempts=int(render_raw.get("max_attempts", 3)),
    )
    if render.chunk_size < 1:
        raise ValueError("`render.chunk_size` must be >= 1")
    if render.workers < 1:
        raise ValueError("`render.workers` must be >= 1")
    if render.max_attempts < 1:
        raise ValueError("`render.max_attempts` must be >= 1")
    if render.chunk_timeout_seconds <= 0:
        raise ValueError("`render.chunk_timeout_seconds` must be > 0")

    raster_raw = _section(raw, "raster")
    defaults = RasterConfig()
    raster = RasterConfig(
        **{item.name: int(raster_raw.get(item.name, getattr(defaults, item.name))) for item in fields(RasterConfig)}
    )
    if raster.width <= 2 * raster.quiet_x:
        raise ValueError("`raster.width` must leave room for bars between the quiet zones")
    if raster.dpi < 1 or raster.dpi > 65535:
        raise ValueError("`raster.dpi` must be between 1 and 65535")
    if not 1 <= raster.jpeg_quality <= 100:
        raise ValueError("`raster.jpeg_quality` must be between 1 and 100")

    vector_raw = _section(raw, "vector")
    vector = VectorConfig(
        module_pt=float(vector_raw.get("module_pt", 1.0)),
        bar_height_pt=float(vector_raw.get("bar_height_pt", 50.0)),
        quiet_modules=int(vector_raw.get("quiet_modules", 11)),
        font=str(vector_raw.get("font", "Helvetica")),
        font_pt=float(vector_raw.get("font_pt", 10.0)),
        text_gap_pt=float(vector_raw.get("text_gap_pt", 2.0)),
        with_text=_to_bool(vector_raw.get("with_text", True), "vector.with_text"),
    )
    if vector.module_pt <= 0 or vector.bar_height_pt <= 0:
        raise ValueError("`vector.module_pt` and `vector.bar_height_pt` must be > 0")
    if vector.quiet_modules < 0:
        raise ValueError("`vector.quiet_modules` must be >= 0")
    if vector.font not in pdfmetrics.standardFonts:
        raise ValueError(f"`vector.font` must be a standard PDF font, got {vector.font!r}")

    archive_raw = _section(raw, "archive")
    archive = ArchiveConfig(
        compression=str(archive_raw.get("compression", "deflate")).lower(),
        level=int(archive_raw.get("level", 3)),
        cache_days=float(archive_raw.get("cache_days", 0)),
        external_tool=str(archive_raw.get("external_tool", "7z")),
        prefer_external=_to_bool(archive_raw.get("prefer_external", True), "archive.prefer_external"),
    )
    if archive.compression not in {"deflate", "store"}:
        raise ValueError("`archive.compression` must be either `deflate` or `store`")
    if not 0 <= archive.level <= 9:
        raise ValueError("`archive.level` must be between 0 and 9")
    if archive.cache_days < 0:
        raise ValueError("`archive.cache_days` must be >= 0")

    finalize_raw = _section(raw, "finalize")
    finalize = FinalizeConfig(
        lock_lease_seconds=int(finalize_raw.get("lock_lease_seconds", 600)),
        timeout_seconds=float(finalize_raw.get("timeout_seconds", 3600)),
    )
    if finalize.lock_lease_seconds < 1:
        raise ValueError("`finalize.lock_lease_seconds` must be >= 1")

    watchdog_raw = _section(raw, "watchdog")
    watchdog = WatchdogConfig(
        interval_seconds=float(watchdog_raw.get("interval_seconds", 15)),
        max_lifetime_seconds=float(watchdog_raw.get("max_lifetime_seconds", 86400)),
    )
    if watchdog.interval_seconds <= 0:
        raise ValueError("`watchdog.interval_seconds` must be > 0")

    webhook_raw = _section(raw, "webhook")
    webhook = WebhookConfig(
        timeout_seconds=float(webhook_raw.get("timeout_seconds", 10)),
        download_url_template=str(webhook_raw.get("download_url_template", "file://{archive_path}")),
    )
    _check_url_template(webhook.download_url_template)

    return AppConfig(
        paths=paths,
        render=render,
        raster=raster,
        vector=vector,
        archive=archive,
        finalize=finalize,
        watchdog=watchdog,
        webhook=webhook,
    )


def ensure_local_paths(config: AppConfig) -> None:
    config.paths.storage.mkdir(parents=True, exist_ok=True)
    config.paths.db.parent.mkdir(parents=True, exist_ok=True)
    config.paths.log.parent.mkdir(parents=True, exist_ok=True)
