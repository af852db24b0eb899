"""Domain models for decoded barcodes."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class SymbologyInfo:
    """Static description of a barcode symbology."""

    tag: str
    display_name: str
    numeric: bool


class Symbology(Enum):
    """Barcode symbologies the camera subsystem can decode."""

    UPC_A = SymbologyInfo("upc_a", "UPC-A", numeric=True)
    UPC_E = SymbologyInfo("upc_e", "UPC-E", numeric=True)
    EAN13 = SymbologyInfo("ean13", "EAN-13", numeric=True)
    EAN8 = SymbologyInfo("ean8", "EAN-8", numeric=True)
    CODE128 = SymbologyInfo("code128", "Code 128", numeric=False)
    CODE39 = SymbologyInfo("code39", "Code 39", numeric=False)
    CODE93 = SymbologyInfo("code93", "Code 93", numeric=False)
    CODABAR = SymbologyInfo("codabar", "Codabar", numeric=False)
    DATAMATRIX = SymbologyInfo("datamatrix", "Data Matrix", numeric=False)
    PDF417 = SymbologyInfo("pdf417", "PDF417", numeric=False)
    QR = SymbologyInfo("qr", "QR Code", numeric=False)

    @property
    def tag(self) -> str:
        return self.value.tag

    @property
    def display_name(self) -> str:
        return self.value.display_name

    @property
    def is_upc_ean(self) -> bool:
        """Return True for the digit-only retail families."""
        return self.value.numeric


@dataclass(frozen=True)
class BarcodeReading:
    """A raw decode as reported by the camera subsystem."""

    symbol: str
    symbology: Symbology
    captured_at: datetime


@dataclass(frozen=True)
class CanonicalBarcode:
    """A validated, whitespace-free barcode ready for catalog lookup."""

    value: str
    symbology: Symbology
    formatted: str


@dataclass(frozen=True)
class ScanRecord:
    """The last accepted scan, as observed by the presentation layer."""

    raw_symbol: str
    barcode: str
    formatted: str
    type_name: str
    captured_at: datetime
