"""Product domain models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Product:
    """Catalog snapshot of a packaged product."""

    id: str
    barcode: str
    name: str
    ingredients_text: str
    declared_allergens: frozenset[str] = field(default_factory=frozenset)
    data_quality_score: int = 50
    verification_count: int = 0
    last_verified_at: datetime | None = None
    brand: str | None = None
    data_source: str | None = None
