"""Scan session state machine.

Drives one camera scanning session: device support and permission checks,
decode handling with duplicate suppression and cool-down, a debounced product
lookup, and the alert lock that keeps warning and danger verdicts on screen
until the user acknowledges them.

Every timer and lookup runs as an asyncio task owned by the controller.
Leaving the state that started a task cancels it, and a generation counter
turns results that arrive after such a transition into no-ops.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from scan_safety.domain.barcodes import BarcodeReading, ScanRecord, Symbology
from scan_safety.domain.errors import (
    CapabilityUnsupported,
    InvalidBarcodeFormat,
    LookupFailed,
    PermissionDenied,
)
from scan_safety.domain.products import Product
from scan_safety.domain.restrictions import SubjectRef
from scan_safety.domain.safety import SafetyAssessment
from scan_safety.domain.sessions import (
    AppLifecycle,
    CameraCapabilities,
    DeviceSupport,
    PermissionStatus,
    ScanState,
)
from scan_safety.services.barcodes import normalize, parse_symbology
from scan_safety.services.catalog import ProductLookup
from scan_safety.services.history import ScanHistory

_logger = logging.getLogger(__name__)

NO_CAMERA_MESSAGE = "No camera available on this device"
UNSUPPORTED_MESSAGE = "Barcode scanning is not supported on this device"
PERMISSION_MESSAGE = "Camera permission is needed to scan product barcodes."
PERMISSION_SETTINGS_MESSAGE = (
    "Camera access is required to scan product barcodes. "
    "Please enable it in your device settings."
)
LOOKUP_TIMEOUT_MESSAGE = "Product lookup timed out. Please try again."
PROCESSING_FAILED_MESSAGE = "Failed to process barcode"
ASSESSMENT_FAILED_MESSAGE = "Failed to assess product safety"

_RUNNING_STATES = {ScanState.ACTIVE, ScanState.PROCESSING, ScanState.ALERT_LOCKED}
_STARTABLE_STATES = {ScanState.IDLE, ScanState.PERMISSION_DENIED, ScanState.PAUSED}


class CameraHandle(Protocol):
    """An acquired camera; closing it releases the hardware."""

    def close(self) -> None:
        """Release the camera."""


class CapabilityProvider(Protocol):
    """Device camera and permission capabilities."""

    async def check_permission(self) -> PermissionStatus:
        """Return the current camera permission without prompting."""

    async def request_permission(self) -> PermissionStatus:
        """Prompt the user for camera permission."""

    async def get_capabilities(self) -> CameraCapabilities:
        """Return camera hardware features."""

    async def is_device_supported(self) -> DeviceSupport:
        """Return whether barcode scanning works on this device."""

    def open_camera(
        self,
        on_decode: Callable[[str, str], None],
        on_error: Callable[[str], None],
    ) -> CameraHandle:
        """Acquire the camera and start delivering decode events."""


class Assessor(Protocol):
    """Produces a verdict for a product and subject."""

    def assess_product(self, product: Product, subject: SubjectRef) -> SafetyAssessment:
        """Return a fresh assessment."""


@dataclass
class ScanSessionController:
    """State machine for one scan screen."""

    capabilities: CapabilityProvider
    catalog: ProductLookup
    assessor: Assessor
    history: ScanHistory
    subject: SubjectRef
    debounce_seconds: float = 0.5
    cooldown_seconds: float = 2.0
    duplicate_window_seconds: float = 2.0
    lookup_timeout_seconds: float = 10.0
    clock: Callable[[], float] = time.monotonic

    state: ScanState = field(default=ScanState.IDLE, init=False)
    error: str | None = field(default=None, init=False)
    last_reading: BarcodeReading | None = field(default=None, init=False)
    last_scan: ScanRecord | None = field(default=None, init=False)
    pending_barcode: str | None = field(default=None, init=False)
    product: Product | None = field(default=None, init=False)
    assessment: SafetyAssessment | None = field(default=None, init=False)
    permission: PermissionStatus | None = field(default=None, init=False)
    camera_capabilities: CameraCapabilities | None = field(default=None, init=False)

    _camera: CameraHandle | None = field(default=None, init=False, repr=False)
    _processing_task: asyncio.Task | None = field(default=None, init=False, repr=False)
    _cooldown_task: asyncio.Task | None = field(default=None, init=False, repr=False)
    _cooling_down: bool = field(default=False, init=False, repr=False)
    _generation: int = field(default=0, init=False, repr=False)
    _last_barcode: str | None = field(default=None, init=False, repr=False)
    _last_barcode_at: float = field(default=0.0, init=False, repr=False)
    _resume_alert: bool = field(default=False, init=False, repr=False)
    _resume_start: bool = field(default=False, init=False, repr=False)
    _app_state: AppLifecycle = field(
        default=AppLifecycle.ACTIVE, init=False, repr=False
    )

    @property
    def is_scanning(self) -> bool:
        """Return True when a decode event would be accepted right now."""
        return self.state is ScanState.ACTIVE and not self._cooling_down

    @property
    def camera_active(self) -> bool:
        return self._camera is not None

    async def start_scanning(self) -> bool:
        """Check support and permission, then activate the camera.

        Returns True when the session is scanning (or already running).
        A refused permission is not retried; calling again prompts again.
        """
        if self.state in _RUNNING_STATES:
            return True
        if self.state not in _STARTABLE_STATES:
            return False

        generation = self._generation
        self.state = ScanState.REQUESTING_PERMISSION
        self.error = None
        try:
            capabilities = await self.capabilities.get_capabilities()
            if generation != self._generation:
                return False
            self.camera_capabilities = capabilities
            if not capabilities.has_camera:
                self._mark_unsupported(NO_CAMERA_MESSAGE)
                return False

            support = await self.capabilities.is_device_supported()
            if generation != self._generation:
                return False
            if not support.supported:
                self._mark_unsupported(support.reason or UNSUPPORTED_MESSAGE)
                return False

            permission = await self.capabilities.check_permission()
            if generation != self._generation:
                return False
            if not permission.granted:
                permission = await self.capabilities.request_permission()
                if generation != self._generation:
                    return False
            self.permission = permission
            if not permission.granted:
                self._deny(permission)
                return False

            self._activate()
        except CapabilityUnsupported as exc:
            if generation == self._generation:
                self._mark_unsupported(exc.reason)
            return False
        except PermissionDenied as exc:
            if generation == self._generation:
                self._deny(
                    PermissionStatus(granted=False, can_ask_again=exc.can_ask_again)
                )
            return False
        except Exception as exc:
            if generation != self._generation:
                return False
            _logger.exception("Failed to start scanning")
            self._fail(f"Failed to start camera: {exc}")
            return False
        return self.state in _RUNNING_STATES

    def handle_barcode_scanned(self, symbol: str, symbology: str | Symbology) -> bool:
        """Handle a raw decode event; return True when it starts a lookup.

        Readings are ignored outside ACTIVE and during a cool-down. Duplicates
        of the previous barcode are dropped silently. A malformed symbol
        surfaces an error and starts a cool-down.
        """
        if not self.is_scanning:
            return False

        resolved = (
            symbology
            if isinstance(symbology, Symbology)
            else parse_symbology(symbology)
        )
        try:
            if resolved is None:
                raise InvalidBarcodeFormat(
                    symbol, f"Unsupported barcode type: {symbology}"
                )
            barcode = normalize(symbol, resolved)
        except InvalidBarcodeFormat as exc:
            self.error = exc.message
            self._start_cooldown()
            return False

        if self._is_duplicate(barcode.value):
            return False

        self._last_barcode = barcode.value
        self._last_barcode_at = self.clock()
        self.last_reading = BarcodeReading(
            symbol=symbol, symbology=resolved, captured_at=_utcnow()
        )
        self.last_scan = ScanRecord(
            raw_symbol=symbol,
            barcode=barcode.value,
            formatted=barcode.formatted,
            type_name=resolved.display_name,
            captured_at=self.last_reading.captured_at,
        )
        self.pending_barcode = barcode.value
        self.error = None
        self.state = ScanState.PROCESSING
        self._processing_task = asyncio.get_running_loop().create_task(
            self._process(barcode.value, self._generation)
        )
        return True

    def acknowledge_alert(self) -> bool:
        """Leave ALERT_LOCKED; the only way back to scanning after a warning."""
        if self.state is ScanState.ALERT_LOCKED:
            self._enter_active()
            return True
        if self.state is ScanState.PAUSED and self._resume_alert:
            self._resume_alert = False
            return True
        return False

    def stop_scanning(self) -> None:
        """Stop the session from any state and release the camera."""
        self._abandon()
        self._resume_alert = False
        self._resume_start = False
        self.state = ScanState.IDLE

    async def reset(self) -> bool:
        """Clear the scan state; restart the permission flow after an error."""
        self.last_scan = None
        self.last_reading = None
        self._last_barcode = None
        if self.state is ScanState.ERROR:
            self.error = None
            self.state = ScanState.IDLE
            return await self.start_scanning()
        if self.state is ScanState.ALERT_LOCKED:
            return self.acknowledge_alert()
        if self.state in {ScanState.ACTIVE, ScanState.PROCESSING}:
            self._generation += 1
            self._cancel_tasks()
            self._enter_active()
            return True
        self.error = None
        return False

    async def handle_app_state(self, app_state: AppLifecycle) -> None:
        """React to the app moving between foreground and background.

        Leaving the foreground halts scanning, including a start or resume
        still waiting on the capability provider; their results are dropped.
        """
        self._app_state = app_state
        if app_state in {AppLifecycle.BACKGROUND, AppLifecycle.INACTIVE}:
            if self.state in _RUNNING_STATES:
                self._resume_alert = self.state is ScanState.ALERT_LOCKED
                self._abandon()
                self.state = ScanState.PAUSED
            elif self.state is ScanState.REQUESTING_PERMISSION:
                self._abandon()
                self._resume_start = True
                self.state = ScanState.PAUSED
            elif self.state is ScanState.PAUSED:
                self._generation += 1
            return

        if self.state is not ScanState.PAUSED:
            return
        if self._resume_start:
            self._resume_start = False
            await self.start_scanning()
            return
        generation = self._generation
        try:
            permission = await self.capabilities.check_permission()
            if generation != self._generation:
                return
            self.permission = permission
            if not permission.granted:
                self._deny(permission)
                return
            self._activate()
        except PermissionDenied as exc:
            if generation == self._generation:
                self._deny(
                    PermissionStatus(granted=False, can_ask_again=exc.can_ask_again)
                )
        except Exception as exc:
            if generation != self._generation:
                return
            _logger.exception("Failed to resume scanning")
            self._fail(f"Failed to resume camera: {exc}")

    def handle_camera_error(self, message: str) -> None:
        """Move to ERROR after a capability-layer failure."""
        _logger.warning("Camera error: %s", message)
        self._fail(message)

    async def settle(self) -> None:
        """Wait until the outstanding lookup, if any, has finished."""
        task = self._processing_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "ScanSessionController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop_scanning()

    async def _process(self, barcode: str, generation: int) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
            product = await asyncio.wait_for(
                self.catalog.find_by_barcode(barcode),
                timeout=self.lookup_timeout_seconds,
            )
        except TimeoutError:
            self._finish_lookup(generation, LOOKUP_TIMEOUT_MESSAGE)
            return
        except LookupFailed as exc:
            self._finish_lookup(generation, exc.message)
            return
        except Exception:
            if generation == self._generation:
                _logger.exception("Lookup failed for barcode %s", barcode)
            self._finish_lookup(generation, PROCESSING_FAILED_MESSAGE)
            return

        if generation != self._generation:
            return
        if product is None:
            self._finish_lookup(
                generation,
                f"Product {barcode} not found. "
                "Please add product information manually.",
            )
            return

        try:
            assessment = self.assessor.assess_product(product, self.subject)
        except Exception:
            _logger.exception("Assessment failed for product %s", product.id)
            self._finish_lookup(generation, ASSESSMENT_FAILED_MESSAGE)
            return

        self._processing_task = None
        self.pending_barcode = None
        self._last_barcode_at = self.clock()
        self.product = product
        self.assessment = assessment
        self.history.record(product, assessment)
        if assessment.overall_level.is_blocking:
            self.state = ScanState.ALERT_LOCKED
        else:
            self._enter_active()

    def _finish_lookup(self, generation: int, message: str) -> None:
        if generation != self._generation:
            return
        self._processing_task = None
        self._last_barcode_at = self.clock()
        self._enter_active()
        self.error = message

    def _is_duplicate(self, barcode: str) -> bool:
        return (
            barcode == self._last_barcode
            and self.clock() - self._last_barcode_at < self.duplicate_window_seconds
        )

    def _start_cooldown(self) -> None:
        self._cancel(self._cooldown_task)
        self._cooling_down = True
        self._cooldown_task = asyncio.get_running_loop().create_task(
            self._end_cooldown(self._generation)
        )

    async def _end_cooldown(self, generation: int) -> None:
        await asyncio.sleep(self.cooldown_seconds)
        if generation != self._generation:
            return
        self._cooldown_task = None
        self._cooling_down = False
        if self.state is ScanState.ACTIVE:
            self.error = None

    def _activate(self) -> None:
        if self._app_state is not AppLifecycle.ACTIVE:
            self._release_camera()
            self.state = ScanState.PAUSED
            return
        if self._camera is None:
            generation = self._generation
            handle = self.capabilities.open_camera(
                self.handle_barcode_scanned, self.handle_camera_error
            )
            if generation != self._generation:
                handle.close()
                return
            self._camera = handle
        if self._resume_alert:
            self._resume_alert = False
            self.state = ScanState.ALERT_LOCKED
            return
        self._enter_active()

    def _enter_active(self) -> None:
        self.state = ScanState.ACTIVE
        self.pending_barcode = None
        self.error = None

    def _deny(self, permission: PermissionStatus) -> None:
        self._release_camera()
        self.state = ScanState.PERMISSION_DENIED
        self.error = (
            PERMISSION_MESSAGE
            if permission.can_ask_again
            else PERMISSION_SETTINGS_MESSAGE
        )

    def _mark_unsupported(self, reason: str) -> None:
        self._abandon()
        self.state = ScanState.UNSUPPORTED
        self.error = reason

    def _fail(self, message: str) -> None:
        self._abandon()
        self.state = ScanState.ERROR
        self.error = message

    def _abandon(self) -> None:
        """Invalidate in-flight work, cancel timers and release the camera."""
        self._generation += 1
        self._cancel_tasks()
        self._release_camera()
        self.pending_barcode = None
        self._last_barcode = None

    def _cancel_tasks(self) -> None:
        self._cancel(self._processing_task)
        self._cancel(self._cooldown_task)
        self._processing_task = None
        self._cooldown_task = None
        self._cooling_down = False

    def _release_camera(self) -> None:
        camera, self._camera = self._camera, None
        if camera is not None:
            camera.close()

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)
