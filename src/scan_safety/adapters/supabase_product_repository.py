"""Supabase implementation for the product catalog."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from scan_safety.domain.products import Product
from scan_safety.services.catalog import ProductRepository


@dataclass
class SupabaseProductRepository(ProductRepository):
    """Supabase-backed repository for catalog products."""

    client: Client

    def find_by_barcode(self, barcode: str) -> Product | None:
        """Return the active product for a barcode, if present."""
        response = (
            self.client.table("products")
            .select("*")
            .eq("barcode", barcode)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_product(response.data[0])

    def save_product(self, product: Product) -> Product:
        """Insert or update a product by barcode."""
        payload: dict[str, object] = {
            "barcode": product.barcode,
            "name": product.name,
            "brand": product.brand,
            "ingredients_list": product.ingredients_text,
            "allergen_warnings": sorted(product.declared_allergens),
            "data_source": product.data_source,
            "data_quality_score": product.data_quality_score,
            "verification_count": product.verification_count,
            "last_verified_date": (
                product.last_verified_at.isoformat()
                if product.last_verified_at
                else None
            ),
            "is_active": True,
        }
        response = (
            self.client.table("products")
            .upsert(payload, on_conflict="barcode")
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save product")
        return _parse_product(response.data[0])


def _parse_product(row: dict[str, object]) -> Product:
    """Parse a products row into a domain model."""
    verified_raw = row.get("last_verified_date")
    last_verified_at = (
        datetime.fromisoformat(verified_raw)
        if isinstance(verified_raw, str) and verified_raw
        else None
    )
    allergens = row.get("allergen_warnings") or []
    return Product(
        id=str(row["id"]),
        barcode=str(row.get("barcode", "")),
        name=str(row.get("name", "")),
        ingredients_text=str(row.get("ingredients_list") or ""),
        declared_allergens=frozenset(str(item) for item in allergens),
        data_quality_score=int(row.get("data_quality_score") or 0),
        verification_count=int(row.get("verification_count") or 0),
        last_verified_at=last_verified_at,
        brand=row.get("brand"),
        data_source=row.get("data_source"),
    )
