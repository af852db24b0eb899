"""Bounded, most-recent-first scan history."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime

from scan_safety.domain.products import Product
from scan_safety.domain.safety import RiskLevel, SafetyAssessment

DEFAULT_CAPACITY = 10


@dataclass(frozen=True)
class HistoryEntry:
    """A scanned product with the verdict it received, if any."""

    product: Product
    scanned_at: datetime
    assessment: SafetyAssessment | None = None

    @property
    def level(self) -> RiskLevel | None:
        if self.assessment is None:
            return None
        return self.assessment.overall_level


@dataclass(frozen=True)
class HistoryStats:
    """Counts over the current history."""

    total_scans: int
    safe_products: int
    dangerous_products: int


class ScanHistory:
    """In-memory scan history for one session's lifetime."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[str, HistoryEntry] = OrderedDict()

    def record(
        self, product: Product, assessment: SafetyAssessment | None = None
    ) -> None:
        """Put a product at the front, replacing any older entry for it."""
        self._entries.pop(product.id, None)
        self._entries[product.id] = HistoryEntry(
            product=product,
            scanned_at=datetime.now(tz=UTC),
            assessment=assessment,
        )
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def list(self) -> list[Product]:
        """Return products, most recent first."""
        return [entry.product for entry in self.entries()]

    def entries(self) -> list[HistoryEntry]:
        """Return history entries, most recent first."""
        return list(reversed(self._entries.values()))

    def get(self, product_id: str) -> HistoryEntry | None:
        return self._entries.get(product_id)

    def remove(self, product_id: str) -> None:
        self._entries.pop(product_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def search(self, query: str) -> list[HistoryEntry]:
        """Match name or brand case-insensitively, barcode verbatim."""
        needle = query.strip().lower()
        if not needle:
            return self.entries()
        return [
            entry
            for entry in self.entries()
            if needle in entry.product.name.lower()
            or (entry.product.brand and needle in entry.product.brand.lower())
            or query.strip() in entry.product.barcode
        ]

    def recent_safe(self, limit: int = DEFAULT_CAPACITY) -> list[HistoryEntry]:
        """Return the most recent entries whose verdict was safe."""
        safe = [entry for entry in self.entries() if entry.level is RiskLevel.SAFE]
        return safe[:limit]

    def stats(self) -> HistoryStats:
        entries = self.entries()
        return HistoryStats(
            total_scans=len(entries),
            safe_products=sum(1 for entry in entries if entry.level is RiskLevel.SAFE),
            dangerous_products=sum(
                1
                for entry in entries
                if entry.level is not None and entry.level.is_blocking
            ),
        )

    def __len__(self) -> int:
        return len(self._entries)
