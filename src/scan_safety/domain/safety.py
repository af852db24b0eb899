"""Safety assessment domain models."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import assert_never
from uuid import UUID

from scan_safety.domain.restrictions import Severity


class RiskLevel(Enum):
    """Verdict levels, safe lowest and danger highest."""

    SAFE = "safe"
    CAUTION = "caution"
    WARNING = "warning"
    DANGER = "danger"

    @property
    def rank(self) -> int:
        return risk_rank(self)

    @property
    def is_blocking(self) -> bool:
        """Return True when the verdict must lock the scanner."""
        return requires_alert(self)


def risk_rank(level: RiskLevel) -> int:
    """Return the ordinal of a risk level."""
    match level:
        case RiskLevel.SAFE:
            return 0
        case RiskLevel.CAUTION:
            return 1
        case RiskLevel.WARNING:
            return 2
        case RiskLevel.DANGER:
            return 3
        case _ as unreachable:
            assert_never(unreachable)


def downgrade(level: RiskLevel) -> RiskLevel:
    """Lower a risk level by exactly one step."""
    match level:
        case RiskLevel.DANGER:
            return RiskLevel.WARNING
        case RiskLevel.WARNING:
            return RiskLevel.CAUTION
        case RiskLevel.CAUTION | RiskLevel.SAFE:
            return RiskLevel.SAFE
        case _ as unreachable:
            assert_never(unreachable)


def requires_alert(level: RiskLevel) -> bool:
    """Return True for levels that need a blocking presentation."""
    match level:
        case RiskLevel.WARNING | RiskLevel.DANGER:
            return True
        case RiskLevel.SAFE | RiskLevel.CAUTION:
            return False
        case _ as unreachable:
            assert_never(unreachable)


def max_level(levels: Iterable[RiskLevel]) -> RiskLevel:
    """Return the most severe level, or SAFE for an empty input."""
    result = RiskLevel.SAFE
    for level in levels:
        if risk_rank(level) > risk_rank(result):
            result = level
    return result


@dataclass(frozen=True)
class IngredientRiskRecord:
    """Curated mapping from ingredient terms to a restriction risk."""

    match_terms: frozenset[str]
    restriction_id: UUID
    risk_level: RiskLevel
    cross_contamination_only: bool = False


@dataclass(frozen=True)
class RiskFactor:
    """One ingredient-to-restriction match contributing to a verdict."""

    ingredient_name: str
    matched_restriction_id: UUID
    risk_level: RiskLevel
    via_cross_contamination_only: bool
    restriction_name: str
    severity: Severity


@dataclass(frozen=True)
class SafetyAssessment:
    """Verdict for one product and one subject."""

    subject_id: UUID | None
    product_id: str
    overall_level: RiskLevel
    risk_factors: tuple[RiskFactor, ...]
    safe_count: int
    caution_count: int
    danger_count: int
    confidence_score: int
    computed_at: datetime
    skipped_restriction_ids: tuple[UUID, ...] = field(default_factory=tuple)

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence_score < 50  # noqa: PLR2004
