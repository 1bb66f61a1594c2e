"""UPC-A and EAN-13 check digits and module patterns.

UPC-A symbols are encoded as EAN-13 symbols with a leading zero: the parity
pattern for lead digit 0 is all-L, so the bars are identical.
"""

from __future__ import annotations

from .errors import InvalidInput
from .models import Symbology
from .utils import is_digits

MODULE_COUNT = 95

START_GUARD = "101"
CENTER_GUARD = "01010"
END_GUARD = "101"

L_CODES = {
    "0": "0001101",
    "1": "0011001",
    "2": "0010011",
    "3": "0111101",
    "4": "0100011",
    "5": "0110001",
    "6": "0101111",
    "7": "0111011",
    "8": "0110111",
    "9": "0001011",
}

G_CODES = {
    "0": "0100111",
    "1": "0110011",
    "2": "0011011",
    "3": "0100001",
    "4": "0011101",
    "5": "0111001",
    "6": "0000101",
    "7": "0010001",
    "8": "0001001",
    "9": "0010111",
}

R_CODES = {
    "0": "1110010",
    "1": "1100110",
    "2": "1101100",
    "3": "1000010",
    "4": "1011100",
    "5": "1001110",
    "6": "1010000",
    "7": "1000100",
    "8": "1001000",
    "9": "1110100",
}

# Left-half L/G selection keyed by the EAN-13 lead digit.
PARITY = {
    "0": "LLLLLL",
    "1": "LLGLGG",
    "2": "LLGGLG",
    "3": "LLGGGL",
    "4": "LGLLGG",
    "5": "LGGLLG",
    "6": "LGGGLL",
    "7": "LGLGLG",
    "8": "LGLGGL",
    "9": "LGGLGL",
}

# Module index ranges (inclusive start, exclusive end) of the three guards.
GUARD_RANGES = ((0, 3), (45, 50), (92, 95))


def upc_check_digit(base11: str) -> int:
    if not is_digits(base11, 11):
        raise InvalidInput(f"UPC base must be exactly 11 digits, got {base11!r}")
    digits = [int(char) for char in base11]
    odd_sum = sum(digits[0::2])
    even_sum = sum(digits[1::2])
    return (10 - ((odd_sum * 3 + even_sum) % 10)) % 10


def ean13_check_digit(data12: str) -> int:
    if not is_digits(data12, 12):
        raise InvalidInput(f"EAN-13 data must be exactly 12 digits, got {data12!r}")
    total = sum(int(char) * (3 if index % 2 else 1) for index, char in enumerate(data12))
    return (10 - (total % 10)) % 10


def make_upc12(base11: str) -> str:
    return f"{base11}{upc_check_digit(base11)}"


def ean13_from_upc12(upc12: str) -> str:
    if not is_digits(upc12, 12):
        raise InvalidInput(f"UPC-A must be exactly 12 digits, got {upc12!r}")
    data12 = "0" + upc12[:11]
    return f"{data12}{ean13_check_digit(data12)}"


def codes_for_base(base11: str) -> tuple[str, str]:
    """Return ``(upc12, ean13)`` for an 11-digit base."""
    upc12 = make_upc12(base11)
    return upc12, ean13_from_upc12(upc12)


def normalize_code(code: str, symbology: Symbology | None = None) -> str:
    """Return the 13-digit EAN form of a UPC-A or EAN-13 code."""
    if symbology is Symbology.UPCA or (symbology is None and len(code) == 12):
        if not is_digits(code, 12):
            raise InvalidInput(f"UPC-A code must be exactly 12 digits, got {code!r}")
        return "0" + code
    if not is_digits(code, 13):
        raise InvalidInput(f"EAN-13 code must be exactly 13 digits, got {code!r}")
    return code


def encode_modules(code: str, symbology: Symbology | None = None) -> str:
    ean13 = normalize_code(code, symbology)
    parity = PARITY[ean13[0]]
    parts = [START_GUARD]
    for table_name, digit in zip(parity, ean13[1:7]):
        parts.append(L_CODES[digit] if table_name == "L" else G_CODES[digit])
    parts.append(CENTER_GUARD)
    parts.extend(R_CODES[digit] for digit in ean13[7:13])
    parts.append(END_GUARD)
    pattern = "".join(parts)
    if len(pattern) != MODULE_COUNT:
        raise InvalidInput(f"EAN-13 pattern must be {MODULE_COUNT} modules, got {len(pattern)}")
    return pattern


def is_guard_module(index: int) -> bool:
    return any(start <= index < end for start, end in GUARD_RANGES)


def bar_runs(pattern: str) -> list[tuple[int, int]]:
    """Collapse a module pattern into ``(first_module, run_length)`` pairs of bars."""
    runs: list[tuple[int, int]] = []
    index = 0
    while index < len(pattern):
        if pattern[index] != "1":
            index += 1
            continue
        start = index
        while index < len(pattern) and pattern[index] == "1":
            index += 1
        runs.append((start, index - start))
    return runs


def digit_groups(code: str, symbology: Symbology) -> list[str]:
    """Human-readable grouping: UPC-A ``1|5|5|1``, EAN-13 ``1|6|6``."""
    if symbology is Symbology.UPCA:
        if not is_digits(code, 12):
            raise InvalidInput(f"UPC-A code must be exactly 12 digits, got {code!r}")
        return [code[0], code[1:6], code[6:11], code[11]]
    if not is_digits(code, 13):
        raise InvalidInput(f"EAN-13 code must be exactly 13 digits, got {code!r}")
    return [code[0], code[1:7], code[7:13]]


def symbology_for_code(code: str) -> Symbology:
    if is_digits(code, 12):
        return Symbology.UPCA
    if is_digits(code, 13):
        return Symbology.EAN13
    raise InvalidInput(f"Barcode must be 12 (UPC-A) or 13 (EAN-13) digits, got {code!r}")
