"""Supabase implementation for curated ingredient risk records."""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from scan_safety.domain.safety import IngredientRiskRecord, RiskLevel
from scan_safety.services.assessments import RiskRecordRepository

_RISK_COLUMNS = (
    "restriction_id, risk_level, cross_contamination_risk, "
    "ingredient:ingredients(name, common_names)"
)


@dataclass
class SupabaseRiskRecordRepository(RiskRecordRepository):
    """Loads ingredient risk assessments joined with ingredient names."""

    client: Client

    def list_for_restrictions(
        self, restriction_ids: Iterable[UUID]
    ) -> list[IngredientRiskRecord]:
        """Return risk records for the given restrictions."""
        ids = sorted({str(item) for item in restriction_ids})
        if not ids:
            return []
        response = (
            self.client.table("ingredient_risk_assessments")
            .select(_RISK_COLUMNS)
            .in_("restriction_id", ids)
            .execute()
        )
        records = []
        for row in response.data or []:
            record = _parse_record(row)
            if record is not None:
                records.append(record)
        return records


def _parse_record(row: dict[str, object]) -> IngredientRiskRecord | None:
    """Parse a risk row; rows without any ingredient name are dropped."""
    ingredient = row.get("ingredient")
    if not isinstance(ingredient, dict):
        return None
    names = [ingredient.get("name"), *(ingredient.get("common_names") or [])]
    terms = frozenset(
        str(name).strip().lower() for name in names if name and str(name).strip()
    )
    if not terms:
        return None
    return IngredientRiskRecord(
        match_terms=terms,
        restriction_id=UUID(str(row["restriction_id"])),
        risk_level=RiskLevel(row.get("risk_level") or RiskLevel.CAUTION.value),
        cross_contamination_only=bool(row.get("cross_contamination_risk", False)),
    )
