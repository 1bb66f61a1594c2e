import unittest

from barcodepack.errors import InvalidInput
from barcodepack.models import Symbology
from barcodepack.symbology import (
    G_CODES,
    L_CODES,
    MODULE_COUNT,
    R_CODES,
    bar_runs,
    codes_for_base,
    digit_groups,
    ean13_check_digit,
    ean13_from_upc12,
    encode_modules,
    is_guard_module,
    make_upc12,
    normalize_code,
    symbology_for_code,
    upc_check_digit,
)


class CheckDigitTest(unittest.TestCase):
    def test_upc_check_digit_known_value(self) -> None:
        # odd positions 1+3+5+7+9+1=26 (x3=78), even 2+4+6+8+0=20, 98 -> 2
        self.assertEqual(upc_check_digit("12345678901"), 2)
        self.assertEqual(make_upc12("12345678901"), "123456789012")
        self.assertEqual(make_upc12("03600029145"), "036000291452")

    def test_ean13_check_digit_known_value(self) -> None:
        self.assertEqual(ean13_check_digit("400638133393"), 1)
        self.assertEqual(ean13_check_digit("590123412345"), 7)

    def test_ean13_from_upc_is_zero_prefixed_upc(self) -> None:
        bases = ["00000000000", "00000000001", "12345678901", "99999999999", "03600029145", "80000000007"]
        bases.extend(str(value).zfill(11) for value in range(0, 100000000000, 7919113573))
        for base in bases:
            upc12, ean13 = codes_for_base(base)
            self.assertEqual(ean13, "0" + upc12)
            self.assertEqual(ean13_check_digit("0" + upc12[:11]), int(upc12[11]))
            self.assertEqual(ean13_from_upc12(upc12), ean13)

    def test_rejects_malformed_bases(self) -> None:
        for value in ["1234567890", "123456789012", "1234567890a", "", " 2345678901", "１２３４５６７８９０１"]:
            with self.assertRaises(InvalidInput):
                upc_check_digit(value)
        with self.assertRaises(InvalidInput):
            ean13_check_digit("12345678901")
        with self.assertRaises(InvalidInput):
            ean13_from_upc12("12345678901x")


class EncodeModulesTest(unittest.TestCase):
    def test_upc_a_pattern(self) -> None:
        left = ["0001101", "0111101", "0101111", "0001101", "0001101", "0001101"]
        right = ["1101100", "1110100", "1100110", "1011100", "1001110", "1101100"]
        expected = "101" + "".join(left) + "01010" + "".join(right) + "101"
        self.assertEqual(encode_modules("036000291452", Symbology.UPCA), expected)
        self.assertEqual(encode_modules("0036000291452", Symbology.EAN13), expected)

    def test_ean13_uses_parity_for_lead_digit(self) -> None:
        pattern = encode_modules("4006381333931", Symbology.EAN13)
        # lead digit 4 selects LGLLGG
        left = [L_CODES["0"], G_CODES["0"], L_CODES["6"], L_CODES["3"], G_CODES["8"], G_CODES["1"]]
        right = [R_CODES[digit] for digit in "333931"]
        self.assertEqual(pattern, "101" + "".join(left) + "01010" + "".join(right) + "101")

    def test_pattern_is_always_95_modules(self) -> None:
        for base in ["00000000000", "12345678901", "99999999999", "55555555555"]:
            upc12, ean13 = codes_for_base(base)
            for code in (upc12, ean13):
                pattern = encode_modules(code)
                self.assertEqual(len(pattern), MODULE_COUNT)
                self.assertTrue(set(pattern) <= {"0", "1"})
        for lead in "123456789":
            data = lead + "12345678901"
            code = data + str(ean13_check_digit(data))
            self.assertEqual(len(encode_modules(code, Symbology.EAN13)), MODULE_COUNT)

    def test_rejects_malformed_codes(self) -> None:
        for code in ["12345", "03600029145a", "01234567890123", "", "0360002914 2"]:
            with self.assertRaises(InvalidInput):
                encode_modules(code)
        with self.assertRaises(InvalidInput):
            encode_modules("0036000291452", Symbology.UPCA)
        with self.assertRaises(InvalidInput):
            normalize_code("036000291452", Symbology.EAN13)

    def test_guard_modules(self) -> None:
        self.assertTrue(is_guard_module(0))
        self.assertTrue(is_guard_module(2))
        self.assertFalse(is_guard_module(3))
        self.assertFalse(is_guard_module(44))
        self.assertTrue(is_guard_module(45))
        self.assertTrue(is_guard_module(49))
        self.assertFalse(is_guard_module(50))
        self.assertTrue(is_guard_module(92))
        self.assertTrue(is_guard_module(94))

    def test_bar_runs(self) -> None:
        self.assertEqual(bar_runs("0110111"), [(1, 2), (4, 3)])
        self.assertEqual(bar_runs("000"), [])
        self.assertEqual(len(bar_runs(encode_modules("036000291452"))), 30)


class GroupingTest(unittest.TestCase):
    def test_digit_groups(self) -> None:
        self.assertEqual(digit_groups("036000291452", Symbology.UPCA), ["0", "36000", "29145", "2"])
        self.assertEqual(digit_groups("4006381333931", Symbology.EAN13), ["4", "006381", "333931"])

    def test_symbology_for_code(self) -> None:
        self.assertIs(symbology_for_code("036000291452"), Symbology.UPCA)
        self.assertIs(symbology_for_code("4006381333931"), Symbology.EAN13)
        with self.assertRaises(InvalidInput):
            symbology_for_code("12345")


if __name__ == "__main__":
    unittest.main()
