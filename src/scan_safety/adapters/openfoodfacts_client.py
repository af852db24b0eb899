"""Open Food Facts API client."""

from dataclasses import dataclass

import httpx

from scan_safety.services.catalog import ExternalProductClient

DEFAULT_BASE_URL = "https://world.openfoodfacts.org"


@dataclass
class HttpxOpenFoodFactsClient(ExternalProductClient):
    """HTTPX-backed Open Food Facts client."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str = DEFAULT_BASE_URL) -> "HttpxOpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(
                headers={"User-Agent": "scan-safety/0.1 (barcode safety lookup)"}
            ),
        )

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Fetch the v0 product document for a barcode."""
        url = f"{self.base_url}/api/v0/product/{barcode}.json"
        response = await self.http_client.get(url, timeout=15)
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
