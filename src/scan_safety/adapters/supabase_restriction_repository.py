"""Supabase implementation for subject restrictions."""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from scan_safety.domain.restrictions import (
    DietaryRestriction,
    RestrictionCategory,
    Severity,
    SubjectKind,
    SubjectRef,
    SubjectRestriction,
)
from scan_safety.services.restrictions import RestrictionRepository

_BINDING_TABLES = {
    SubjectKind.USER: ("user_restrictions", "user_id"),
    SubjectKind.FAMILY_MEMBER: ("family_member_restrictions", "family_member_id"),
}


@dataclass
class SupabaseRestrictionRepository(RestrictionRepository):
    """Reads restriction bindings and definitions from Supabase."""

    client: Client

    def list_subject_restrictions(
        self, subject: SubjectRef
    ) -> list[SubjectRestriction]:
        """Return every restriction bound to a user or family member."""
        table, owner_column = _BINDING_TABLES[subject.kind]
        response = (
            self.client.table(table)
            .select("*")
            .eq(owner_column, str(subject.id))
            .execute()
        )
        return [_parse_binding(row) for row in response.data or []]

    def get_definitions(
        self, restriction_ids: Iterable[UUID]
    ) -> dict[UUID, DietaryRestriction]:
        """Return restriction definitions keyed by id."""
        ids = sorted({str(item) for item in restriction_ids})
        if not ids:
            return {}
        response = (
            self.client.table("dietary_restrictions")
            .select("*")
            .in_("id", ids)
            .execute()
        )
        definitions = [_parse_definition(row) for row in response.data or []]
        return {definition.id: definition for definition in definitions}


def _parse_binding(row: dict[str, object]) -> SubjectRestriction:
    return SubjectRestriction(
        restriction_id=UUID(str(row["restriction_id"])),
        severity=Severity(row.get("severity") or Severity.MODERATE.value),
        doctor_verified=bool(row.get("doctor_verified", False)),
        cross_contamination_sensitive=bool(
            row.get("cross_contamination_sensitive", False)
        ),
        active=bool(row.get("is_active", True)),
    )


def _parse_definition(row: dict[str, object]) -> DietaryRestriction:
    return DietaryRestriction(
        id=UUID(str(row["id"])),
        name=str(row.get("name", "")),
        category=RestrictionCategory(row.get("category") or "preference"),
        common_names=frozenset(str(item) for item in row.get("common_names") or []),
        cross_contamination_risk=bool(row.get("cross_contamination_risk", False)),
        default_severity=Severity(
            row.get("medical_severity_default") or Severity.MODERATE.value
        ),
    )
