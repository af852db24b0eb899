"""Product catalog lookup with caching and an Open Food Facts fallback."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from scan_safety.domain.errors import LookupFailed
from scan_safety.domain.products import Product
from scan_safety.services.cache import Cache, InMemoryCache

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

OPEN_FOOD_FACTS_SOURCE = "open_food_facts"


class ProductRepository(Protocol):
    """Persistence interface for the local product catalog."""

    def find_by_barcode(self, barcode: str) -> Product | None:
        """Return the active product for a barcode, if present."""

    def save_product(self, product: Product) -> Product:
        """Insert or update a product by barcode and return the stored row."""


class ExternalProductClient(Protocol):
    """Interface for a public product database."""

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Return the raw product payload for a barcode."""


class ProductLookup(Protocol):
    """What the scan controller needs from the catalog."""

    async def find_by_barcode(self, barcode: str) -> Product | None:
        """Return a product or None when the barcode is unknown."""


@dataclass
class ProductCatalog:
    """Looks products up locally first, then in Open Food Facts."""

    repository: ProductRepository
    external_client: ExternalProductClient | None = None
    cache: Cache = field(default_factory=InMemoryCache)
    ttl_seconds: int = 3600
    store_external: bool = True
    debug: bool = False
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def find_by_barcode(self, barcode: str) -> Product | None:
        """Return the product for a canonical barcode, or None if unknown.

        Raises LookupFailed when no source could answer.
        """
        cache_key = f"product:{barcode}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, Product):
            return cached

        try:
            product = self.repository.find_by_barcode(barcode)
        except Exception as exc:
            raise LookupFailed(barcode, "Product catalog unavailable") from exc

        if product is None and self.external_client is not None:
            product = await self._find_external(barcode)

        if product is not None:
            self.cache.set(cache_key, product, ttl_seconds=self.ttl_seconds)
        if self.debug:
            _logger.info(
                "Catalog lookup: barcode=%s found=%s", barcode, product is not None
            )
        return product

    async def _find_external(self, barcode: str) -> Product | None:
        client = self.external_client
        if client is None:
            return None
        try:
            payload = await self._call_with_retry(
                lambda: client.get_product(barcode),
                action=f"open_food_facts:{barcode}",
            )
        except Exception as exc:
            raise LookupFailed(barcode, "Product lookup failed") from exc

        product = product_from_open_food_facts(barcode, payload)
        if product is None or not self.store_external:
            return product
        try:
            return self.repository.save_product(product)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Failed to store product %s: %s", barcode, exc)
            return product

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[dict[str, object]]]", *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                _logger.warning(
                    "Catalog %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def product_from_open_food_facts(
    barcode: str, payload: dict[str, object]
) -> Product | None:
    """Map an Open Food Facts v0 payload to a Product; None when not found."""
    if payload.get("status") == 0:
        return None
    raw = payload.get("product")
    if not isinstance(raw, dict):
        return None

    ingredients_text = raw.get("ingredients_text")
    if not isinstance(ingredients_text, str):
        ingredients_text = ""
    tags = raw.get("allergens_tags")
    allergens = (
        frozenset(_allergen_from_tag(str(tag)) for tag in tags)
        if isinstance(tags, list)
        else frozenset()
    )
    completeness = raw.get("completeness")
    completeness = float(completeness) if isinstance(completeness, int | float) else 0.0
    quality = completeness * 100
    if ingredients_text:
        quality += 20
    if allergens:
        quality += 10

    brand = raw.get("brands")
    return Product(
        id=f"off:{barcode}",
        barcode=barcode,
        name=str(
            raw.get("product_name") or raw.get("generic_name") or "Unknown Product"
        ),
        ingredients_text=ingredients_text,
        declared_allergens=allergens,
        data_quality_score=min(100, round(quality)),
        verification_count=0,
        last_verified_at=datetime.now(tz=UTC),
        brand=str(brand) if brand else None,
        data_source=OPEN_FOOD_FACTS_SOURCE,
    )


def _allergen_from_tag(tag: str) -> str:
    """Turn ``en:tree-nuts`` into ``tree nuts``."""
    _, _, name = tag.rpartition(":")
    return name.replace("-", " ")


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"
