"""
UPC normalization.

State feeds list the same product as UPC-A, EAN-13, zero-suppressed UPC-E,
GTIN-14 or with leading zeros dropped by a spreadsheet. Everything is reduced
to one canonical 12-digit UPC-A so that entries from different feeds (and
scanned barcodes) match.

The check digit is only used as a confidence signal. Feeds carry codes with
wrong check digits that are still the codes cashiers ring up, so a bad check
digit never rejects a row.
"""

import re
from typing import Any, List

from schemas.apl import UPCVariants

MIN_UPC_LENGTH = 8
MAX_UPC_LENGTH = 14

_NON_DIGITS = re.compile(r"\D")


def _digits_only(raw: Any) -> str:
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def calculate_check_digit(body: str) -> int:
    """
    GS1 check digit for a code body (everything but the check digit).

    Weights alternate 3, 1 starting from the rightmost body digit, which for an
    11-digit UPC-A body is the same as 3, 1 from the left.
    """
    total = sum(
        int(d) * (3 if i % 2 == 0 else 1)
        for i, d in enumerate(reversed(body))
    )
    return (10 - total % 10) % 10


def validate_check_digit(code: str) -> bool:
    digits = _digits_only(code)
    if len(digits) < 2:
        return False
    return calculate_check_digit(digits[:-1]) == int(digits[-1])


def expand_upce(upce: str) -> str:
    """
    Expand an 8-digit zero-suppressed UPC-E code to 12-digit UPC-A.

    Layout is number system + 6 significant digits + check digit. The last
    significant digit says where the manufacturer/product zeros were removed.
    """
    digits = _digits_only(upce)
    if len(digits) != 8:
        raise ValueError(f"UPC-E must have 8 digits, got {len(digits)}: {upce!r}")

    number_system = digits[0]
    middle = digits[1:7]
    check = digits[7]
    last = middle[5]

    if last in "012":
        manufacturer = middle[0:2] + last + "00"
        product = "00" + middle[2:5]
    elif last == "3":
        manufacturer = middle[0:3] + "00"
        product = "000" + middle[3:5]
    elif last == "4":
        manufacturer = middle[0:4] + "0"
        product = "0000" + middle[4]
    else:
        manufacturer = middle[0:5]
        product = "0000" + last

    return number_system + manufacturer + product + check


def normalize_upc(raw: Any) -> UPCVariants:
    """
    Normalize a raw code to its canonical forms.

    Returns UPCVariants with is_valid False when the code has fewer than 8 or
    more than 14 digits after stripping non-digits.
    """
    original = "" if raw is None else str(raw)
    digits = _digits_only(original)

    if len(digits) < MIN_UPC_LENGTH or len(digits) > MAX_UPC_LENGTH:
        return UPCVariants(original=original)

    if len(digits) == 8:
        upc12 = expand_upce(digits)
    elif len(digits) <= 12:
        upc12 = digits.zfill(12)
    else:
        # GTIN-13/14: drop indicator/leading zeros when nothing significant is lost
        significant = digits.lstrip("0")
        upc12 = significant.zfill(12) if len(significant) <= 12 else significant

    ean13 = "0" + upc12 if len(upc12) == 12 else upc12

    return UPCVariants(
        original=original,
        upc12=upc12,
        ean13=ean13,
        trimmed=upc12.lstrip("0") or "0",
        check_digit=upc12[-1],
        is_valid=True,
        check_digit_valid=validate_check_digit(upc12),
    )


def generate_upc_variants(raw: Any) -> List[str]:
    """Every stored/scanned spelling of a code, canonical form first."""
    variants = normalize_upc(raw)
    digits = _digits_only(raw)
    if not variants.is_valid:
        return [digits] if digits else []

    candidates = [
        variants.upc12,
        variants.ean13,
        variants.upc12.zfill(14),
        variants.trimmed,
        digits,
    ]
    seen = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.append(candidate)
    return seen


def format_upc_for_display(raw: Any) -> str:
    """N-MMMMM-PPPPP-C for 12-digit codes, digits otherwise."""
    variants = normalize_upc(raw)
    if not variants.is_valid or len(variants.upc12) != 12:
        return _digits_only(raw) or variants.original
    u = variants.upc12
    return f"{u[0]}-{u[1:6]}-{u[6:11]}-{u[11]}"


def are_upcs_equivalent(a: Any, b: Any) -> bool:
    va = normalize_upc(a)
    vb = normalize_upc(b)
    return va.is_valid and vb.is_valid and va.upc12 == vb.upc12
