"""Error taxonomy for the scan-to-safety pipeline."""


class ScanSafetyError(Exception):
    """Base class for pipeline errors."""


class CapabilityUnsupported(ScanSafetyError):
    """The device cannot scan barcodes at all. Terminal, never retried."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PermissionDenied(ScanSafetyError):
    """Camera permission was refused. Retried only on explicit user action."""

    def __init__(self, can_ask_again: bool = True) -> None:
        super().__init__("Camera permission denied")
        self.can_ask_again = can_ask_again


class InvalidBarcodeFormat(ScanSafetyError, ValueError):
    """A decoded symbol does not match its symbology's format."""

    def __init__(self, symbol: str, message: str) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.message = message


class LookupFailed(ScanSafetyError):
    """The product catalog could not answer a lookup."""

    def __init__(self, barcode: str, message: str = "Product lookup failed") -> None:
        super().__init__(message)
        self.barcode = barcode
        self.message = message
