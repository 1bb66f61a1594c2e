"""JPEG rendering of UPC-A / EAN-13 symbols with human-readable digits."""

from __future__ import annotations

import io
import os
import struct
import threading
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from .config import RasterConfig
from .errors import ResourceError
from .models import Symbology
from .symbology import MODULE_COUNT, digit_groups, encode_modules, is_guard_module, symbology_for_code

JFIF_MARKER = b"JFIF\x00"


def set_jpeg_dpi(jpeg: bytes, xdpi: int, ydpi: int) -> bytes:
    """Patch the JFIF APP0 density fields so viewers see ``xdpi`` x ``ydpi``.

    Layout after ``JFIF\\0``: version (2 bytes), units (1), Xdensity (2),
    Ydensity (2), all big-endian. Buffers without a JFIF header are
    returned unchanged.
    """
    position = jpeg.find(JFIF_MARKER)
    if position < 0:
        return jpeg
    units_offset = position + len(JFIF_MARKER) + 2
    density = struct.pack(">BHH", 1, max(1, min(65535, xdpi)), max(1, min(65535, ydpi)))
    return jpeg[:units_offset] + density + jpeg[units_offset + len(density) :]


class RasterRenderer:
    def __init__(self, config: RasterConfig, font_path: Path | None = None) -> None:
        self.config = config
        self.font_path = font_path
        # FreeType handles are not shared between threads.
        self._local = threading.local()

    def load_font(self) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        font = getattr(self._local, "font", None)
        if font is not None:
            return font
        if self.font_path is None:
            self._local.font = ImageFont.load_default(size=self.config.font_size)
            return self._local.font
        if not os.access(self.font_path, os.R_OK):
            raise ResourceError(f"Font not readable: {self.font_path}")
        try:
            self._local.font = ImageFont.truetype(str(self.font_path), self.config.font_size)
        except OSError as exc:
            raise ResourceError(f"Font could not be loaded: {self.font_path}: {exc}") from exc
        return self._local.font

    def render_bytes(self, code: str) -> bytes:
        symbology = symbology_for_code(code)
        font = self.load_font()
        cfg = self.config

        image = Image.new("RGB", (cfg.width, cfg.height), "white")
        draw = ImageDraw.Draw(image)

        bars_w = cfg.width - 2 * cfg.quiet_x
        bars_h = cfg.height - cfg.pad_top - cfg.text_height
        module = bars_w / float(MODULE_COUNT)
        pattern = encode_modules(code, symbology)

        for index, bit in enumerate(pattern):
            if bit != "1":
                continue
            x1 = round(cfg.quiet_x + index * module)
            x2 = round(cfg.quiet_x + (index + 1) * module - 0.001)
            y2 = cfg.pad_top + bars_h
            if is_guard_module(index):
                y2 = min(cfg.height - 1, y2 + cfg.guard_extra)
            draw.rectangle((x1, cfg.pad_top, x2, y2), fill="black")

        text_top = round(cfg.pad_top + bars_h + cfg.text_gap)
        half_w = bars_w / 2.0
        groups = digit_groups(code, symbology)
        boxes = [
            (0, cfg.quiet_x),
            (cfg.quiet_x, round(half_w)),
            (round(cfg.quiet_x + half_w), round(half_w)),
        ]
        if symbology is Symbology.UPCA:
            boxes.append((cfg.width - cfg.quiet_x, cfg.quiet_x))
        for text, (box_x, box_w) in zip(groups, boxes):
            self._draw_centered(draw, font, text, box_x, text_top, box_w, cfg.text_height)

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=cfg.jpeg_quality)
        return set_jpeg_dpi(buffer.getvalue(), cfg.dpi, cfg.dpi)

    def render(self, code: str, destination: Path) -> Path:
        payload = self.render_bytes(code)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"Cannot create directory {destination.parent}: {exc}") from exc
        partial = destination.with_name(destination.name + ".part")
        partial.write_bytes(payload)
        partial.replace(destination)
        return destination

    @staticmethod
    def _draw_centered(
        draw: ImageDraw.ImageDraw,
        font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
        text: str,
        box_x: int,
        box_y: int,
        box_w: int,
        box_h: int,
    ) -> None:
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_w = right - left
        text_h = bottom - top
        x = box_x + round((box_w - text_w) / 2) - left
        y = box_y + round((box_h - text_h) / 2) - top
        draw.text((x, y), text, fill="black", font=font)
