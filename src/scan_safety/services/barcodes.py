"""Barcode validation and canonicalization."""

import re
from dataclasses import dataclass

from scan_safety.domain.barcodes import CanonicalBarcode, Symbology
from scan_safety.domain.errors import InvalidBarcodeFormat

_WHITESPACE = re.compile(r"\s+")
_RETAIL_PATTERN = re.compile(r"^\d{8,14}$")
_UPC_A_LENGTH = 12
_EAN13_LENGTH = 13


@dataclass(frozen=True)
class BarcodeValidation:
    """Non-raising validation result."""

    is_valid: bool
    error: str | None = None


def parse_symbology(tag: str) -> Symbology | None:
    """Map a device symbology tag such as ``ean13`` or ``EAN13`` to an enum."""
    cleaned = tag.strip().lower().replace("-", "").replace("_", "")
    for symbology in Symbology:
        if cleaned == symbology.tag.replace("_", ""):
            return symbology
    return None


def normalize(symbol: str, symbology: Symbology) -> CanonicalBarcode:
    """Validate a decoded symbol and return its canonical form.

    Raises InvalidBarcodeFormat when the stripped symbol does not match the
    pattern for its symbology. Callers must not look up invalid symbols.
    """
    cleaned = _WHITESPACE.sub("", symbol)
    if not cleaned:
        raise InvalidBarcodeFormat(symbol, "Empty barcode data")
    if symbology.is_upc_ean and not _RETAIL_PATTERN.match(cleaned):
        if not cleaned.isdigit():
            message = f"Invalid {symbology.display_name} barcode - must be numeric"
        else:
            message = f"Invalid {symbology.display_name} barcode length"
        raise InvalidBarcodeFormat(symbol, message)
    return CanonicalBarcode(
        value=cleaned,
        symbology=symbology,
        formatted=format_barcode(cleaned, symbology),
    )


def validate_barcode(symbol: str, symbology: Symbology) -> BarcodeValidation:
    """Return whether a symbol would normalize, without raising."""
    try:
        normalize(symbol, symbology)
    except InvalidBarcodeFormat as exc:
        return BarcodeValidation(is_valid=False, error=exc.message)
    return BarcodeValidation(is_valid=True)


def format_barcode(value: str, symbology: Symbology) -> str:
    """Group UPC-A and EAN-13 digits for display; other values pass through."""
    if symbology is Symbology.UPC_A and len(value) == _UPC_A_LENGTH:
        return f"{value[0]}-{value[1:6]}-{value[6:11]}-{value[11]}"
    if symbology is Symbology.EAN13 and len(value) == _EAN13_LENGTH:
        return f"{value[0]}-{value[1:7]}-{value[7:12]}-{value[12]}"
    return value
