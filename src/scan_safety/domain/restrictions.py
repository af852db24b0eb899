"""Dietary restriction domain models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import assert_never
from uuid import UUID


class RestrictionCategory(Enum):
    """Kind of dietary restriction."""

    ALLERGY = "allergy"
    INTOLERANCE = "intolerance"
    MEDICAL = "medical"
    LIFESTYLE = "lifestyle"
    RELIGIOUS = "religious"
    PREFERENCE = "preference"


class Severity(Enum):
    """How badly a subject reacts to a restricted ingredient."""

    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    LIFE_THREATENING = "life_threatening"

    @property
    def rank(self) -> int:
        return severity_rank(self)


def severity_rank(severity: Severity) -> int:
    """Return the ordinal of a severity, mild lowest."""
    match severity:
        case Severity.MILD:
            return 0
        case Severity.MODERATE:
            return 1
        case Severity.SEVERE:
            return 2
        case Severity.LIFE_THREATENING:
            return 3
        case _ as unreachable:
            assert_never(unreachable)


class SubjectKind(Enum):
    """Who a restriction set belongs to."""

    USER = "user"
    FAMILY_MEMBER = "family_member"


@dataclass(frozen=True)
class SubjectRef:
    """Identifies the user or family member being checked."""

    kind: SubjectKind
    id: UUID


@dataclass(frozen=True)
class DietaryRestriction:
    """Canonical restriction definition."""

    id: UUID
    name: str
    category: RestrictionCategory
    common_names: frozenset[str] = field(default_factory=frozenset)
    cross_contamination_risk: bool = False
    default_severity: Severity = Severity.MODERATE


@dataclass(frozen=True)
class SubjectRestriction:
    """A subject's binding to a restriction."""

    restriction_id: UUID
    severity: Severity
    doctor_verified: bool = False
    cross_contamination_sensitive: bool = False
    active: bool = True


@dataclass(frozen=True)
class ResolvedRestriction:
    """Subject restriction enriched with its definition, if known."""

    binding: SubjectRestriction
    definition: DietaryRestriction | None

    @property
    def restriction_id(self) -> UUID:
        return self.binding.restriction_id

    @property
    def name(self) -> str:
        if self.definition is None:
            return str(self.binding.restriction_id)
        return self.definition.name
