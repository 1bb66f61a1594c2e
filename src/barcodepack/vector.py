"""PDF and EPS writers for UPC-A / EAN-13 symbols.

Bars are emitted as one filled rectangle per contiguous run of dark
modules. Human-readable digits use a standard Type 1 font by name, so
nothing is embedded. All coordinates are in points with the origin at the
bottom-left; bars sit on top of the text block.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from pathlib import Path

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from .config import VectorConfig
from .errors import ResourceError
from .models import Symbology
from .symbology import MODULE_COUNT, bar_runs, encode_modules, symbology_for_code

# Approximate advance of a digit in Helvetica, as a fraction of the font size.
DIGIT_WIDTH_RATIO = 0.60


@dataclass(frozen=True, slots=True)
class VectorLayout:
    width: float
    height: float
    text_block: float
    bars: list[tuple[float, float, float, float]]
    digits: list[tuple[float, float, str]]


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


def _module_center(quiet_x: float, module_pt: float, module_index: float) -> float:
    return quiet_x + module_pt * module_index


def _digit_positions(
    code: str,
    symbology: Symbology,
    config: VectorConfig,
) -> list[tuple[float, float, str]]:
    module_pt = config.module_pt
    quiet_x = config.quiet_modules * module_pt
    char_w = DIGIT_WIDTH_RATIO * config.font_pt
    baseline = config.font_pt * 0.2
    positions: list[tuple[float, float, str]] = []

    def place(center: float, digit: str) -> None:
        positions.append((center - char_w / 2, baseline, digit))

    # Lead digit sits in the left quiet zone.
    place(quiet_x - 3 * module_pt, code[0])
    if symbology is Symbology.EAN13:
        left_digits = [(slot, code[slot]) for slot in range(1, 7)]
        right_digits = [(slot, code[6 + slot]) for slot in range(1, 7)]
    else:
        # UPC-A: digits 1..5 sit under left symbol slots 2..6, digits 6..10
        # under right slots 1..5, the check digit in the right quiet zone.
        left_digits = [(index + 1, code[index]) for index in range(1, 6)]
        right_digits = [(slot, code[5 + slot]) for slot in range(1, 6)]
    for slot, digit in left_digits:
        place(_module_center(quiet_x, module_pt, 3 + 7 * (slot - 0.5)), digit)
    for slot, digit in right_digits:
        place(_module_center(quiet_x, module_pt, 3 + 42 + 5 + 7 * (slot - 0.5)), digit)
    if symbology is Symbology.UPCA:
        trailing = MODULE_COUNT + max(0, config.quiet_modules - 3)
        place(_module_center(quiet_x, module_pt, trailing), code[11])
    return positions


def build_layout(code: str, config: VectorConfig) -> VectorLayout:
    symbology = symbology_for_code(code)
    pattern = encode_modules(code, symbology)
    text_block = config.font_pt + config.text_gap_pt if config.with_text else 0.0
    quiet_x = config.quiet_modules * config.module_pt
    bars = [
        (quiet_x + start * config.module_pt, text_block, length * config.module_pt, config.bar_height_pt)
        for start, length in bar_runs(pattern)
    ]
    digits = _digit_positions(code, symbology, config) if config.with_text else []
    return VectorLayout(
        width=(MODULE_COUNT + 2 * config.quiet_modules) * config.module_pt,
        height=config.bar_height_pt + text_block,
        text_block=text_block,
        bars=bars,
        digits=digits,
    )


def pdf_bytes(code: str, config: VectorConfig) -> bytes:
    layout = build_layout(code, config)
    buffer = io.BytesIO()
    # Uncompressed and invariant: the same code always gives the same bytes.
    c = canvas.Canvas(buffer, pagesize=(layout.width, layout.height), pageCompression=0, invariant=1)
    c.setTitle(code)
    c.setFillColor(colors.black)
    for x, y, width, height in layout.bars:
        c.rect(x, y, width, height, stroke=0, fill=1)
    if layout.digits:
        c.setFont(config.font, config.font_pt)
        for x, y, digit in layout.digits:
            c.drawString(x, y, digit)
    c.showPage()
    c.save()
    return buffer.getvalue()


def eps_bytes(code: str, config: VectorConfig) -> bytes:
    layout = build_layout(code, config)
    lines = [
        "%!PS-Adobe-3.0 EPSF-3.0",
        f"%%BoundingBox: 0 0 {math.ceil(layout.width)} {math.ceil(layout.height)}",
        f"%%HiResBoundingBox: 0 0 {layout.width:.3f} {layout.height:.3f}",
        f"%%Title: {code}",
        "%%LanguageLevel: 2",
        "%%Pages: 1",
        "%%EndComments",
        "0 setgray",
    ]
    lines.extend(f"{_num(x)} {_num(y)} {_num(w)} {_num(h)} rectfill" for x, y, w, h in layout.bars)
    if layout.digits:
        lines.append(f"/{config.font} findfont {_num(config.font_pt)} scalefont setfont")
        lines.extend(f"{_num(x)} {_num(y)} moveto ({digit}) show" for x, y, digit in layout.digits)
    lines.append("showpage")
    lines.append("%%EOF")
    return ("\n".join(lines) + "\n").encode("ascii")


class VectorRenderer:
    def __init__(self, config: VectorConfig) -> None:
        self.config = config

    def render_pdf(self, code: str, destination: Path) -> Path:
        return self._write(pdf_bytes(code, self.config), destination)

    def render_eps(self, code: str, destination: Path) -> Path:
        return self._write(eps_bytes(code, self.config), destination)

    @staticmethod
    def _write(payload: bytes, destination: Path) -> Path:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"Cannot create directory {destination.parent}: {exc}") from exc
        partial = destination.with_name(destination.name + ".part")
        partial.write_bytes(payload)
        partial.replace(destination)
        return destination
