"""Domain models for scan sessions."""

from dataclasses import dataclass
from enum import Enum


class ScanState(Enum):
    """States of the scan session controller."""

    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    PERMISSION_DENIED = "permission_denied"
    UNSUPPORTED = "unsupported"
    ACTIVE = "active"
    PROCESSING = "processing"
    ALERT_LOCKED = "alert_locked"
    PAUSED = "paused"
    ERROR = "error"


class AppLifecycle(Enum):
    """App foreground/background signal."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


@dataclass(frozen=True)
class PermissionStatus:
    """Camera permission as reported by the device."""

    granted: bool
    can_ask_again: bool = True


@dataclass(frozen=True)
class CameraCapabilities:
    """Camera hardware features."""

    has_camera: bool
    has_flash: bool = False


@dataclass(frozen=True)
class DeviceSupport:
    """Whether the device can scan barcodes at all."""

    supported: bool
    reason: str | None = None
