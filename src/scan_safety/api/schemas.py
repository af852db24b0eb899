"""Pydantic request and response models for the HTTP API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from scan_safety.domain.products import Product
from scan_safety.domain.restrictions import ResolvedRestriction
from scan_safety.domain.safety import RiskFactor
from scan_safety.services.assessments import ProductVerdict


class AssessmentRequest(BaseModel):
    """Scan a barcode on behalf of a user or family member."""

    barcode: str = Field(min_length=1)
    symbology: str = "ean13"
    subject_kind: str = "user"
    subject_id: UUID


class ProductResponse(BaseModel):
    """Catalog product payload."""

    id: str
    barcode: str
    name: str
    brand: str | None = None
    ingredients_text: str
    declared_allergens: list[str]
    data_quality_score: int
    verification_count: int
    data_source: str | None = None

    @classmethod
    def from_domain(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            barcode=product.barcode,
            name=product.name,
            brand=product.brand,
            ingredients_text=product.ingredients_text,
            declared_allergens=sorted(product.declared_allergens),
            data_quality_score=product.data_quality_score,
            verification_count=product.verification_count,
            data_source=product.data_source,
        )


class RiskFactorResponse(BaseModel):
    """One ingredient that matched a restriction."""

    ingredient_name: str
    restriction_id: UUID
    restriction_name: str
    risk_level: str
    severity: str
    cross_contamination_only: bool

    @classmethod
    def from_domain(cls, factor: RiskFactor) -> "RiskFactorResponse":
        return cls(
            ingredient_name=factor.ingredient_name,
            restriction_id=factor.matched_restriction_id,
            restriction_name=factor.restriction_name,
            risk_level=factor.risk_level.value,
            severity=factor.severity.value,
            cross_contamination_only=factor.via_cross_contamination_only,
        )


class AssessmentResponse(BaseModel):
    """A product verdict for one subject."""

    barcode: str
    formatted_barcode: str
    product: ProductResponse
    overall_level: str
    requires_alert: bool
    risk_factors: list[RiskFactorResponse]
    safe_count: int
    caution_count: int
    danger_count: int
    confidence_score: int
    low_confidence: bool
    computed_at: datetime
    skipped_restriction_ids: list[UUID]

    @classmethod
    def from_verdict(cls, verdict: ProductVerdict) -> "AssessmentResponse":
        assessment = verdict.assessment
        return cls(
            barcode=verdict.barcode.value,
            formatted_barcode=verdict.barcode.formatted,
            product=ProductResponse.from_domain(verdict.product),
            overall_level=assessment.overall_level.value,
            requires_alert=assessment.overall_level.is_blocking,
            risk_factors=[
                RiskFactorResponse.from_domain(factor)
                for factor in assessment.risk_factors
            ],
            safe_count=assessment.safe_count,
            caution_count=assessment.caution_count,
            danger_count=assessment.danger_count,
            confidence_score=assessment.confidence_score,
            low_confidence=assessment.is_low_confidence,
            computed_at=assessment.computed_at,
            skipped_restriction_ids=list(assessment.skipped_restriction_ids),
        )


class RestrictionResponse(BaseModel):
    """An active restriction for a subject."""

    restriction_id: UUID
    name: str
    category: str | None = None
    severity: str
    doctor_verified: bool
    cross_contamination_sensitive: bool

    @classmethod
    def from_domain(cls, restriction: ResolvedRestriction) -> "RestrictionResponse":
        definition = restriction.definition
        return cls(
            restriction_id=restriction.restriction_id,
            name=restriction.name,
            category=definition.category.value if definition else None,
            severity=restriction.binding.severity.value,
            doctor_verified=restriction.binding.doctor_verified,
            cross_contamination_sensitive=(
                restriction.binding.cross_contamination_sensitive
            ),
        )
