"""Supabase implementation for stored safety assessments."""

from dataclasses import dataclass

from supabase import Client

from scan_safety.domain.restrictions import SubjectKind, SubjectRef
from scan_safety.domain.safety import SafetyAssessment
from scan_safety.services.assessments import AssessmentRepository


@dataclass
class SupabaseAssessmentRepository(AssessmentRepository):
    """Stores computed verdicts in product_safety_assessments."""

    client: Client

    def save_assessment(
        self, subject: SubjectRef, assessment: SafetyAssessment
    ) -> None:
        """Insert a verdict row for a subject."""
        is_user = subject.kind is SubjectKind.USER
        payload = {
            "product_id": assessment.product_id,
            "user_id": str(subject.id) if is_user else None,
            "family_member_id": None if is_user else str(subject.id),
            "overall_safety_level": assessment.overall_level.value,
            "risk_factors": [
                {
                    "ingredient_name": factor.ingredient_name,
                    "restriction_id": str(factor.matched_restriction_id),
                    "restriction_name": factor.restriction_name,
                    "risk_level": factor.risk_level.value,
                    "severity": factor.severity.value,
                    "cross_contamination_only": factor.via_cross_contamination_only,
                }
                for factor in assessment.risk_factors
            ],
            "safe_ingredients_count": assessment.safe_count,
            "warning_ingredients_count": assessment.caution_count,
            "dangerous_ingredients_count": assessment.danger_count,
            "confidence_score": assessment.confidence_score,
            "assessment_date": assessment.computed_at.isoformat(),
        }
        response = (
            self.client.table("product_safety_assessments").insert(payload).execute()
        )
        if not response.data:
            raise RuntimeError("Failed to store safety assessment")
