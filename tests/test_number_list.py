from pathlib import Path
from tempfile import TemporaryDirectory
import csv
import unittest

from barcodepack.models import Symbology
from barcodepack.number_list import (
    codes_from_range,
    codes_from_rasters,
    number_list_path,
    write_number_list,
    write_number_lists,
)
from support import EAN_CODES, UPC_CODES


class NumberListTest(unittest.TestCase):
    def test_codes_from_range(self) -> None:
        self.assertEqual(list(codes_from_range("00000000001", "00000000005", Symbology.UPCA)), UPC_CODES)
        self.assertEqual(list(codes_from_range("00000000001", "00000000005", Symbology.EAN13)), EAN_CODES)

    def test_codes_from_range_is_lazy(self) -> None:
        codes = codes_from_range("00000000001", "99999999999", Symbology.UPCA)
        self.assertEqual(next(codes), UPC_CODES[0])
        self.assertEqual(next(codes), UPC_CODES[1])

    def test_codes_from_rasters_sorted(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            upc_dir = root / "UPC-12" / "JPG"
            ean_dir = root / "EAN-13" / "JPG"
            upc_dir.mkdir(parents=True)
            ean_dir.mkdir(parents=True)
            for code in reversed(UPC_CODES):
                (upc_dir / f"UPC-12-{code}.jpg").write_bytes(b"x")
            (upc_dir / "UPC-12-000000000062.jpg.part").write_bytes(b"x")
            (upc_dir / "thumbs.db").write_bytes(b"x")
            (ean_dir / f"EAN-13-{EAN_CODES[3]}.jpeg").write_bytes(b"x")
            (ean_dir / f"EAN-13-{EAN_CODES[0]}.jpg").write_bytes(b"x")

            codes = codes_from_rasters(root)
            self.assertEqual(codes[Symbology.UPCA], UPC_CODES)
            self.assertEqual(codes[Symbology.EAN13], [EAN_CODES[0], EAN_CODES[3]])

    def test_codes_from_rasters_without_directories(self) -> None:
        with TemporaryDirectory() as temp_dir:
            codes = codes_from_rasters(Path(temp_dir))
            self.assertEqual(codes, {Symbology.UPCA: [], Symbology.EAN13: []})

    def test_write_lists(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            written = write_number_lists(root, "A-1", "00000000001", "00000000003")
            self.assertEqual(
                [path.relative_to(root).as_posix() for path in written],
                [
                    "UPC-12/UPC-12 Number List - Order # A-1.csv",
                    "EAN-13/EAN-13 Number List - Order # A-1.csv",
                ],
            )
            with number_list_path(root, Symbology.UPCA, "A-1").open(newline="", encoding="utf-8") as handle:
                rows = list(csv.reader(handle))
            self.assertEqual(rows, [["UPC-12"], ["000000000017"], ["000000000024"], ["000000000031"]])

    def test_identical_list_is_not_rewritten(self) -> None:
        with TemporaryDirectory() as temp_dir:
            destination = Path(temp_dir) / "UPC-12" / "list.csv"
            self.assertTrue(write_number_list(destination, Symbology.UPCA, UPC_CODES))
            self.assertFalse(write_number_list(destination, Symbology.UPCA, UPC_CODES))
            self.assertTrue(write_number_list(destination, Symbology.UPCA, UPC_CODES[:2]))
            self.assertEqual([path.name for path in destination.parent.iterdir()], ["list.csv"])

    def test_large_range_is_streamed_from_a_generator(self) -> None:
        with TemporaryDirectory() as temp_dir:
            destination = Path(temp_dir) / "EAN-13" / "list.csv"
            codes = codes_from_range("00000000001", "00000020000", Symbology.EAN13)
            self.assertTrue(write_number_list(destination, Symbology.EAN13, codes))
            lines = destination.read_bytes().decode("utf-8").split("\r\n")
            self.assertEqual(len(lines), 20002)
            self.assertEqual(lines[0], "EAN-13")
            self.assertEqual(lines[1], EAN_CODES[0])
            self.assertEqual(lines[-2][:12], "0" + "00000020000")
            self.assertEqual(lines[-1], "")

    def test_fallback_scans_rasters_without_range(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            upc_dir = root / "UPC-12" / "JPG"
            upc_dir.mkdir(parents=True)
            (upc_dir / f"UPC-12-{UPC_CODES[1]}.jpg").write_bytes(b"x")
            write_number_lists(root, "A-1", None, None)
            content = number_list_path(root, Symbology.UPCA, "A-1").read_bytes().decode("utf-8")
            self.assertEqual(content, f"UPC-12\r\n{UPC_CODES[1]}\r\n")
            content = number_list_path(root, Symbology.EAN13, "A-1").read_bytes().decode("utf-8")
            self.assertEqual(content, "EAN-13\r\n")


if __name__ == "__main__":
    unittest.main()
