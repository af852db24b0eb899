"""Orchestrates restriction resolution, risk data and the engine."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from scan_safety.domain.barcodes import CanonicalBarcode, Symbology
from scan_safety.domain.products import Product
from scan_safety.domain.restrictions import ResolvedRestriction, SubjectRef
from scan_safety.domain.safety import IngredientRiskRecord, SafetyAssessment
from scan_safety.services.barcodes import normalize
from scan_safety.services.cache import Cache, InMemoryCache
from scan_safety.services.catalog import ProductLookup
from scan_safety.services.restrictions import RestrictionResolver
from scan_safety.services.safety import SafetyAssessmentEngine

_logger = logging.getLogger(__name__)


class RiskRecordRepository(Protocol):
    """Read-only access to curated ingredient risk records."""

    def list_for_restrictions(
        self, restriction_ids: Iterable[UUID]
    ) -> list[IngredientRiskRecord]:
        """Return risk records for the given restrictions."""


class AssessmentRepository(Protocol):
    """Persistence interface for computed verdicts."""

    def save_assessment(
        self, subject: SubjectRef, assessment: SafetyAssessment
    ) -> None:
        """Store a verdict for a subject."""


@dataclass(frozen=True)
class ProductVerdict:
    """A looked-up product together with its verdict."""

    barcode: CanonicalBarcode
    product: Product
    assessment: SafetyAssessment


@dataclass
class AssessmentService:
    """Produces one fresh assessment per (product, subject) request."""

    resolver: RestrictionResolver
    risk_repository: RiskRecordRepository
    catalog: ProductLookup
    cache: Cache = field(default_factory=InMemoryCache)
    assessment_repository: AssessmentRepository | None = None
    risk_records_ttl_seconds: int = 3600
    fuzzy_threshold: int = 90

    def assess_product(self, product: Product, subject: SubjectRef) -> SafetyAssessment:
        """Assess a product against the subject's current restrictions."""
        restrictions = self.resolver.active_restrictions(subject)
        engine = SafetyAssessmentEngine(
            risk_records=self._risk_records(restrictions),
            fuzzy_threshold=self.fuzzy_threshold,
        )
        assessment = engine.assess(product, restrictions, subject_id=subject.id)
        if self.assessment_repository is not None:
            try:
                self.assessment_repository.save_assessment(subject, assessment)
            except Exception as exc:  # noqa: BLE001
                _logger.warning(
                    "Failed to store assessment for product %s: %s", product.id, exc
                )
        return assessment

    async def assess_barcode(
        self, symbol: str, symbology: Symbology, subject: SubjectRef
    ) -> ProductVerdict | None:
        """Normalize, look up and assess a barcode; None when not in any catalog.

        Raises InvalidBarcodeFormat or LookupFailed.
        """
        barcode = normalize(symbol, symbology)
        product = await self.catalog.find_by_barcode(barcode.value)
        if product is None:
            return None
        return ProductVerdict(
            barcode=barcode,
            product=product,
            assessment=self.assess_product(product, subject),
        )

    def _risk_records(
        self, restrictions: Sequence[ResolvedRestriction]
    ) -> list[IngredientRiskRecord]:
        restriction_ids = sorted(
            {item.restriction_id for item in restrictions}, key=str
        )
        if not restriction_ids:
            return []
        cache_key = "risk:" + ",".join(str(item) for item in restriction_ids)
        cached = self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached
        records = self.risk_repository.list_for_restrictions(restriction_ids)
        self.cache.set(cache_key, records, ttl_seconds=self.risk_records_ttl_seconds)
        return records
