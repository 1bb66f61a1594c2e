from pathlib import Path
from tempfile import TemporaryDirectory
import re
import unittest

from barcodepack.config import VectorConfig
from barcodepack.errors import InvalidInput
from barcodepack.vector import VectorRenderer, build_layout, eps_bytes, pdf_bytes


class PdfTest(unittest.TestCase):
    def test_document_structure(self) -> None:
        payload = pdf_bytes("036000291452", VectorConfig())
        self.assertTrue(payload.startswith(b"%PDF-"))
        self.assertTrue(payload.rstrip().endswith(b"%%EOF"))
        startxref = int(re.search(rb"startxref\s+(\d+)", payload).group(1))
        self.assertTrue(payload[startxref:].startswith(b"xref"))

    def test_page_size_bars_and_digits(self) -> None:
        payload = pdf_bytes("036000291452", VectorConfig())
        # (95 + 2 * 11) modules wide, 50 bar + 10 font + 2 gap high
        self.assertRegex(payload, rb"/MediaBox \[\s*0 0 117 62\s*\]")
        self.assertIn(b"/BaseFont /Helvetica", payload)
        self.assertEqual(payload.count(b" re f"), 30)
        self.assertEqual(payload.count(b") Tj"), 12)

    def test_ean13_digit_count(self) -> None:
        payload = pdf_bytes("4006381333931", VectorConfig())
        self.assertEqual(payload.count(b") Tj"), 13)

    def test_without_text(self) -> None:
        payload = pdf_bytes("036000291452", VectorConfig(with_text=False))
        self.assertRegex(payload, rb"/MediaBox \[\s*0 0 117 50\s*\]")
        self.assertNotIn(b"Tj", payload)

    def test_same_code_gives_same_bytes(self) -> None:
        self.assertEqual(pdf_bytes("036000291452", VectorConfig()), pdf_bytes("036000291452", VectorConfig()))


class EpsTest(unittest.TestCase):
    def test_bounding_boxes(self) -> None:
        payload = eps_bytes("036000291452", VectorConfig(module_pt=0.33))
        text = payload.decode("ascii")
        self.assertTrue(text.startswith("%!PS-Adobe-3.0 EPSF-3.0\n"))
        # 117 modules * 0.33pt = 38.61pt
        self.assertIn("%%BoundingBox: 0 0 39 62\n", text)
        self.assertIn("%%HiResBoundingBox: 0 0 38.610 62.000\n", text)
        self.assertEqual(text.count(" rectfill"), 30)
        self.assertEqual(text.count(") show"), 12)
        self.assertTrue(text.endswith("showpage\n%%EOF\n"))

    def test_bars_fit_inside_box(self) -> None:
        config = VectorConfig()
        layout = build_layout("4006381333931", config)
        for x, y, width, height in layout.bars:
            self.assertGreaterEqual(x, config.quiet_modules * config.module_pt)
            self.assertLessEqual(x + width, layout.width - config.quiet_modules * config.module_pt)
            self.assertAlmostEqual(y + height, layout.height)
        for x, _, _ in layout.digits:
            self.assertGreaterEqual(x, 0)
            self.assertLessEqual(x, layout.width)

    def test_invalid_code(self) -> None:
        with self.assertRaises(InvalidInput):
            eps_bytes("036000", VectorConfig())


class VectorRendererTest(unittest.TestCase):
    def test_writes_files(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            renderer = VectorRenderer(VectorConfig())
            pdf = renderer.render_pdf("036000291452", root / "UPC-12" / "PDF" / "UPC-12-036000291452.pdf")
            eps = renderer.render_eps("036000291452", root / "UPC-12" / "EPS" / "UPC-12-036000291452.eps")
            self.assertTrue(pdf.read_bytes().startswith(b"%PDF"))
            self.assertTrue(eps.read_bytes().startswith(b"%!PS"))
            self.assertFalse((pdf.parent / (pdf.name + ".part")).exists())


if __name__ == "__main__":
    unittest.main()
