"""Tests for the safety assessment engine."""

import random
from datetime import UTC, datetime
from uuid import UUID

from scan_safety.domain.restrictions import ResolvedRestriction, Severity
from scan_safety.domain.safety import (
    RiskLevel,
    downgrade,
    max_level,
)
from scan_safety.services.safety import (
    NO_DATA_CONFIDENCE_CEILING,
    SafetyAssessmentEngine,
    confidence_score,
    tokenize_ingredients,
)
from tests.conftest import (
    COLA_INGREDIENTS,
    DEFINITIONS,
    GLUTEN_ID,
    MILK_ID,
    PEANUT_ID,
    RISK_RECORDS,
    USER,
    binding,
    make_product,
)

FIXED_TIME = datetime(2024, 5, 1, tzinfo=UTC)


def _resolved(
    restriction_id: UUID,
    severity: Severity = Severity.SEVERE,
    *,
    sensitive: bool = False,
) -> ResolvedRestriction:
    return ResolvedRestriction(
        binding=binding(restriction_id, severity, sensitive=sensitive),
        definition=DEFINITIONS.get(restriction_id),
    )


def _engine() -> SafetyAssessmentEngine:
    return SafetyAssessmentEngine(risk_records=RISK_RECORDS)


def test_cola_is_safe_for_peanut_allergy() -> None:
    product = make_product(COLA_INGREDIENTS)

    assessment = _engine().assess(
        product, [_resolved(PEANUT_ID, Severity.SEVERE)], subject_id=USER.id
    )

    assert assessment.overall_level is RiskLevel.SAFE
    assert assessment.risk_factors == ()
    assert assessment.safe_count == 4
    assert assessment.subject_id == USER.id


def test_contains_peanuts_is_danger_for_sensitive_subject() -> None:
    product = make_product(COLA_INGREDIENTS + ", contains peanuts")

    assessment = _engine().assess(
        product, [_resolved(PEANUT_ID, Severity.LIFE_THREATENING, sensitive=True)]
    )

    assert assessment.overall_level is RiskLevel.DANGER
    assert len(assessment.risk_factors) == 1
    factor = assessment.risk_factors[0]
    assert factor.restriction_name == "peanuts"
    assert factor.matched_restriction_id == PEANUT_ID
    assert factor.ingredient_name == "peanuts"
    assert factor.severity is Severity.LIFE_THREATENING
    assert assessment.danger_count == 1


def test_no_active_restrictions_is_safe() -> None:
    product = make_product("peanuts, milk, wheat flour")

    assessment = _engine().assess(product, [])

    assert assessment.overall_level is RiskLevel.SAFE
    assert assessment.risk_factors == ()


def test_inactive_restrictions_are_ignored() -> None:
    inactive = ResolvedRestriction(
        binding=binding(PEANUT_ID, active=False), definition=DEFINITIONS[PEANUT_ID]
    )

    assessment = _engine().assess(make_product("peanuts"), [inactive])

    assert assessment.overall_level is RiskLevel.SAFE


def test_empty_ingredient_data_is_caution_with_low_confidence() -> None:
    product = make_product("", data_quality_score=100, verification_count=10)

    assessment = _engine().assess(product, [_resolved(PEANUT_ID)])

    assert assessment.overall_level is RiskLevel.CAUTION
    assert assessment.confidence_score < 50
    assert assessment.confidence_score <= NO_DATA_CONFIDENCE_CEILING
    assert assessment.is_low_confidence


def test_declared_allergens_are_matched_without_ingredient_text() -> None:
    product = make_product("", declared_allergens={"Milk"})

    assessment = _engine().assess(product, [_resolved(MILK_ID)])

    assert assessment.overall_level is RiskLevel.DANGER
    assert [factor.ingredient_name for factor in assessment.risk_factors] == ["Milk"]


def test_declared_allergens_alone_are_never_safe() -> None:
    product = make_product(
        "", declared_allergens={"soy"}, data_quality_score=100, verification_count=10
    )

    assessment = _engine().assess(
        product, [_resolved(PEANUT_ID, Severity.LIFE_THREATENING)]
    )

    assert assessment.overall_level is RiskLevel.CAUTION
    assert assessment.risk_factors == ()
    assert assessment.confidence_score <= NO_DATA_CONFIDENCE_CEILING
    assert assessment.is_low_confidence


def test_cross_contamination_record_downgrades_one_step() -> None:
    product = make_product("rice, oats, sugar")

    relaxed = _engine().assess(product, [_resolved(GLUTEN_ID, sensitive=False)])
    sensitive = _engine().assess(product, [_resolved(GLUTEN_ID, sensitive=True)])

    assert relaxed.overall_level is RiskLevel.WARNING
    assert relaxed.risk_factors[0].via_cross_contamination_only
    assert sensitive.overall_level is RiskLevel.DANGER


def test_may_contain_phrase_is_cross_contamination_only() -> None:
    product = make_product("sugar, cocoa butter substitute, may contain peanuts")

    relaxed = _engine().assess(product, [_resolved(PEANUT_ID)])
    sensitive = _engine().assess(product, [_resolved(PEANUT_ID, sensitive=True)])

    assert relaxed.overall_level is RiskLevel.WARNING
    assert sensitive.overall_level is RiskLevel.DANGER


def test_severity_never_escalates_ingredient_risk() -> None:
    product = make_product("water, lactic acid, salt")

    assessment = _engine().assess(
        product, [_resolved(MILK_ID, Severity.LIFE_THREATENING)]
    )

    assert assessment.overall_level is RiskLevel.CAUTION
    assert assessment.caution_count == 1


def test_fuzzy_match_catches_misspelled_terms() -> None:
    product = make_product("sugar, arachls oil, salt")

    assessment = _engine().assess(product, [_resolved(PEANUT_ID)])

    assert assessment.overall_level is RiskLevel.DANGER


def test_fuzzy_match_catches_short_misspellings() -> None:
    dropped = make_product("sugar, penut paste, salt")
    substituted = make_product("sugar, roasted peamut, salt")

    assert (
        _engine().assess(dropped, [_resolved(PEANUT_ID)]).overall_level
        is RiskLevel.DANGER
    )
    assert (
        _engine().assess(substituted, [_resolved(PEANUT_ID)]).overall_level
        is RiskLevel.DANGER
    )


def test_fuzzy_matching_can_be_disabled() -> None:
    product = make_product("sugar, penut paste, salt")
    engine = SafetyAssessmentEngine(risk_records=RISK_RECORDS, fuzzy_threshold=100)

    assessment = engine.assess(product, [_resolved(PEANUT_ID)])

    assert assessment.overall_level is RiskLevel.SAFE


def test_fuzzy_match_ignores_unrelated_nuts() -> None:
    product = make_product("sugar, pecan nut, salt")

    assessment = _engine().assess(product, [_resolved(PEANUT_ID)])

    assert assessment.overall_level is RiskLevel.SAFE


def test_unknown_restriction_is_skipped() -> None:
    unknown = ResolvedRestriction(binding=binding(UUID(int=99)), definition=None)
    product = make_product("peanuts, sugar, salt")

    assessment = _engine().assess(product, [unknown, _resolved(MILK_ID)])

    assert assessment.skipped_restriction_ids == (UUID(int=99),)
    assert assessment.overall_level is RiskLevel.SAFE


def test_malformed_product_data_does_not_raise() -> None:
    product = make_product(None, data_quality_score="high")  # type: ignore[arg-type]

    assessment = _engine().assess(product, [_resolved(PEANUT_ID)])

    assert assessment.overall_level is RiskLevel.CAUTION


def test_assessment_is_deterministic() -> None:
    product = make_product(
        "wheat flour, milk, peanuts, oats, lactic acid", declared_allergens={"Peanuts"}
    )
    restrictions = [
        _resolved(PEANUT_ID, Severity.LIFE_THREATENING),
        _resolved(MILK_ID),
        _resolved(GLUTEN_ID),
    ]

    first = _engine().assess(product, restrictions, computed_at=FIXED_TIME)
    second = _engine().assess(product, list(restrictions), computed_at=FIXED_TIME)

    assert first == second
    assert [factor.ingredient_name for factor in first.risk_factors] == [
        "wheat flour",
        "milk",
        "peanuts",
        "oats",
        "lactic acid",
    ]


def test_overall_level_is_max_of_factors_for_random_fixtures() -> None:
    rng = random.Random(20240501)
    vocabulary = [
        "water",
        "sugar",
        "peanuts",
        "milk powder",
        "whey",
        "wheat flour",
        "oats",
        "lactic acid",
        "salt",
        "may contain milk",
        "traces of peanuts",
        "barley malt",
    ]
    restriction_ids = [PEANUT_ID, MILK_ID, GLUTEN_ID]
    for _ in range(200):
        ingredients = ", ".join(rng.sample(vocabulary, rng.randint(3, 8)))
        chosen = rng.sample(restriction_ids, rng.randint(1, 3))
        restrictions = [
            _resolved(
                item,
                rng.choice(list(Severity)),
                sensitive=rng.random() < 0.5,
            )
            for item in chosen
        ]
        product = make_product(ingredients, data_quality_score=90)

        assessment = _engine().assess(product, restrictions)

        expected = max_level(factor.risk_level for factor in assessment.risk_factors)
        assert assessment.overall_level is expected
        for factor in assessment.risk_factors:
            assert factor.risk_level is not RiskLevel.SAFE
            assert factor.matched_restriction_id in chosen


def test_downgrade_steps() -> None:
    assert downgrade(RiskLevel.DANGER) is RiskLevel.WARNING
    assert downgrade(RiskLevel.WARNING) is RiskLevel.CAUTION
    assert downgrade(RiskLevel.CAUTION) is RiskLevel.SAFE
    assert downgrade(RiskLevel.SAFE) is RiskLevel.SAFE


def test_tokenize_ingredients_strips_labels_and_dedupes() -> None:
    mentions = tokenize_ingredients(
        "Ingredients: Sugar, Wheat Flour (wheat, niacin); sugar; Contains: Milk"
    )

    assert [mention.label for mention in mentions] == [
        "Sugar",
        "Wheat Flour",
        "wheat",
        "niacin",
        "Milk",
    ]


def test_confidence_rewards_quality_and_verification() -> None:
    low = confidence_score(
        make_product(data_quality_score=20, verification_count=0), 1, 1
    )
    high = confidence_score(
        make_product(data_quality_score=95, verification_count=8), 5, 5
    )

    assert 0 <= low < high <= 100
    assert confidence_score(make_product(data_quality_score=100), 0, 0) == 40
