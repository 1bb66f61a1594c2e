from io import BytesIO
from pathlib import Path
from tempfile import TemporaryDirectory
import struct
import unittest

from PIL import Image

from barcodepack.config import RasterConfig
from barcodepack.errors import InvalidInput, ResourceError
from barcodepack.raster import RasterRenderer, set_jpeg_dpi


def jfif_density(payload: bytes) -> tuple[int, int, int]:
    position = payload.find(b"JFIF\x00") + 5 + 2
    return struct.unpack(">BHH", payload[position : position + 5])


class SetJpegDpiTest(unittest.TestCase):
    def test_patches_density(self) -> None:
        buffer = BytesIO()
        Image.new("RGB", (8, 8), "white").save(buffer, format="JPEG")
        patched = set_jpeg_dpi(buffer.getvalue(), 300, 300)
        self.assertEqual(jfif_density(patched), (1, 300, 300))
        self.assertEqual(len(patched), len(buffer.getvalue()))

    def test_leaves_non_jfif_alone(self) -> None:
        self.assertEqual(set_jpeg_dpi(b"not a jpeg", 300, 300), b"not a jpeg")


class RasterRendererTest(unittest.TestCase):
    def test_render_bytes_size_and_dpi(self) -> None:
        config = RasterConfig()
        payload = RasterRenderer(config).render_bytes("036000291452")
        self.assertEqual(jfif_density(payload), (1, 300, 300))
        with Image.open(BytesIO(payload)) as image:
            self.assertEqual(image.format, "JPEG")
            self.assertEqual(image.size, (460, 300))
            self.assertEqual(tuple(round(value) for value in image.info["dpi"]), (300, 300))
            gray = image.convert("L")
            bars_bottom = config.pad_top + (config.height - config.pad_top - config.text_height)
            # First module of the start guard is a bar; the quiet zone is blank.
            self.assertLess(gray.getpixel((44, 120)), 100)
            self.assertGreater(gray.getpixel((10, 120)), 155)
            # Guard bars run past the bottom of the data bars.
            self.assertLess(gray.getpixel((44, bars_bottom + 3)), 100)

    def test_renders_ean13(self) -> None:
        payload = RasterRenderer(RasterConfig()).render_bytes("4006381333931")
        with Image.open(BytesIO(payload)) as image:
            self.assertEqual(image.size, (460, 300))

    def test_render_writes_file_atomically(self) -> None:
        with TemporaryDirectory() as temp_dir:
            destination = Path(temp_dir) / "UPC-12" / "JPG" / "UPC-12-036000291452.jpg"
            RasterRenderer(RasterConfig()).render("036000291452", destination)
            self.assertTrue(destination.is_file())
            self.assertEqual(sorted(path.name for path in destination.parent.iterdir()), [destination.name])

    def test_invalid_code(self) -> None:
        with self.assertRaises(InvalidInput):
            RasterRenderer(RasterConfig()).render_bytes("12345")

    def test_unreadable_font(self) -> None:
        with TemporaryDirectory() as temp_dir:
            renderer = RasterRenderer(RasterConfig(), font_path=Path(temp_dir) / "missing.ttf")
            with self.assertRaises(ResourceError):
                renderer.render_bytes("036000291452")

    def test_corrupt_font(self) -> None:
        with TemporaryDirectory() as temp_dir:
            font_path = Path(temp_dir) / "broken.ttf"
            font_path.write_bytes(b"not a font")
            with self.assertRaises(ResourceError):
                RasterRenderer(RasterConfig(), font_path=font_path).load_font()


if __name__ == "__main__":
    unittest.main()
