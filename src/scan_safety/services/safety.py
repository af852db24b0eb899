"""Safety assessment engine.

Turns a product's ingredient data and a subject's active restrictions into a
deterministic verdict. The engine is pure: it holds only read-only reference
data, never raises for malformed product data and never escalates a computed
ingredient risk because of restriction severity.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import assert_never
from uuid import UUID

from fuzzywuzzy import fuzz

from scan_safety.domain.products import Product
from scan_safety.domain.restrictions import ResolvedRestriction
from scan_safety.domain.safety import (
    IngredientRiskRecord,
    RiskFactor,
    RiskLevel,
    SafetyAssessment,
    downgrade,
    max_level,
    risk_rank,
)

_logger = logging.getLogger(__name__)

_SEGMENT_SPLIT = re.compile(r"[,;()\[\]]")
_LEADING_LABEL = re.compile(r"^(ingredients|contains)\s*:?\s*", re.IGNORECASE)
_PRECAUTIONARY = re.compile(
    r"^(may also contain|may contain|traces? of|"
    r"(produced|processed|made|manufactured|packed) (in|on) "
    r"(a )?(facility|equipment|line)s?( that (also )?(processes|handles))?)"
    r"\s*:?\s*",
    re.IGNORECASE,
)

MIN_TOKEN_COUNT = 3
MIN_SAFE_CONFIDENCE = 40
NO_DATA_CONFIDENCE_CEILING = 40
QUALITY_WEIGHT = 0.7
VERIFICATION_CAP = 20.0
COMPLETENESS_POINTS = 10.0
FUZZY_MIN_TERM_LENGTH = 5


@dataclass(frozen=True)
class IngredientMention:
    """One ingredient segment, normalized for matching."""

    label: str
    text: str
    precautionary: bool = False


@dataclass
class SafetyAssessmentEngine:
    """Computes verdicts against curated ingredient risk records."""

    risk_records: Sequence[IngredientRiskRecord]
    fuzzy_threshold: int = 90

    def assess(
        self,
        product: Product,
        restrictions: Sequence[ResolvedRestriction],
        subject_id: UUID | None = None,
        computed_at: datetime | None = None,
    ) -> SafetyAssessment:
        """Assess a product for a subject's restriction set."""
        computed_at = computed_at or datetime.now(tz=UTC)
        text_mentions = tokenize_ingredients(_ingredients_text(product))
        mentions = _with_declared_allergens(text_mentions, product.declared_allergens)
        confidence = confidence_score(product, len(text_mentions), len(mentions))

        active = [item for item in restrictions if item.binding.active]
        if not active:
            return SafetyAssessment(
                subject_id=subject_id,
                product_id=product.id,
                overall_level=RiskLevel.SAFE,
                risk_factors=(),
                safe_count=len(mentions),
                caution_count=0,
                danger_count=0,
                confidence_score=confidence,
                computed_at=computed_at,
            )

        usable: list[ResolvedRestriction] = []
        skipped: list[UUID] = []
        for item in active:
            if item.definition is None:
                _logger.warning(
                    "Skipping unresolvable restriction %s for product %s",
                    item.restriction_id,
                    product.id,
                )
                skipped.append(item.restriction_id)
            else:
                usable.append(item)

        if not mentions:
            return SafetyAssessment(
                subject_id=subject_id,
                product_id=product.id,
                overall_level=RiskLevel.CAUTION,
                risk_factors=(),
                safe_count=0,
                caution_count=0,
                danger_count=0,
                confidence_score=min(confidence, NO_DATA_CONFIDENCE_CEILING),
                computed_at=computed_at,
                skipped_restriction_ids=tuple(skipped),
            )

        records = self._records_by_restriction(usable)
        factors: list[RiskFactor] = []
        safe_count = caution_count = danger_count = 0
        for mention in mentions:
            mention_levels: list[RiskLevel] = []
            for restriction in usable:
                level, via_cross_contamination = self._resolve(
                    mention, restriction, records.get(restriction.restriction_id, [])
                )
                if level is RiskLevel.SAFE:
                    continue
                mention_levels.append(level)
                factors.append(
                    RiskFactor(
                        ingredient_name=mention.label,
                        matched_restriction_id=restriction.restriction_id,
                        risk_level=level,
                        via_cross_contamination_only=via_cross_contamination,
                        restriction_name=restriction.name,
                        severity=restriction.binding.severity,
                    )
                )
            match max_level(mention_levels):
                case RiskLevel.SAFE:
                    safe_count += 1
                case RiskLevel.CAUTION | RiskLevel.WARNING:
                    caution_count += 1
                case RiskLevel.DANGER:
                    danger_count += 1
                case _ as unreachable:
                    assert_never(unreachable)

        overall = max_level(factor.risk_level for factor in factors)
        # Declared allergens alone never establish that a product is safe.
        if not factors and (not text_mentions or confidence <= MIN_SAFE_CONFIDENCE):
            overall = RiskLevel.CAUTION

        return SafetyAssessment(
            subject_id=subject_id,
            product_id=product.id,
            overall_level=overall,
            risk_factors=tuple(factors),
            safe_count=safe_count,
            caution_count=caution_count,
            danger_count=danger_count,
            confidence_score=confidence,
            computed_at=computed_at,
            skipped_restriction_ids=tuple(skipped),
        )

    def _records_by_restriction(
        self, restrictions: Sequence[ResolvedRestriction]
    ) -> dict[UUID, list[IngredientRiskRecord]]:
        wanted = {item.restriction_id for item in restrictions}
        grouped: dict[UUID, list[IngredientRiskRecord]] = {}
        for record in self.risk_records:
            if record.restriction_id in wanted:
                grouped.setdefault(record.restriction_id, []).append(record)
        return grouped

    def _resolve(
        self,
        mention: IngredientMention,
        restriction: ResolvedRestriction,
        records: Sequence[IngredientRiskRecord],
    ) -> tuple[RiskLevel, bool]:
        """Return the effective level and whether it came from a may-contain match."""
        sensitive = restriction.binding.cross_contamination_sensitive
        best = RiskLevel.SAFE
        best_via_cross_contamination = False
        for record in records:
            if not any(
                _term_matches(term, mention.text, self.fuzzy_threshold)
                for term in record.match_terms
            ):
                continue
            cross_contamination_only = (
                record.cross_contamination_only or mention.precautionary
            )
            level = record.risk_level
            if cross_contamination_only and not sensitive:
                level = downgrade(level)
            if risk_rank(level) > risk_rank(best) or (
                level is best and best_via_cross_contamination
            ):
                best = level
                best_via_cross_contamination = cross_contamination_only
        return best, best_via_cross_contamination


def tokenize_ingredients(text: str) -> list[IngredientMention]:
    """Split an ingredient list into mentions, in label order, without repeats."""
    mentions: list[IngredientMention] = []
    seen: set[str] = set()
    for segment in _SEGMENT_SPLIT.split(text):
        label = " ".join(segment.split()).strip(" .:*")
        precautionary = False
        stripped = _PRECAUTIONARY.sub("", label, count=1)
        if stripped != label:
            precautionary = True
            label = stripped
        label = _LEADING_LABEL.sub("", label, count=1).strip(" .:*")
        normalized = label.lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        mentions.append(
            IngredientMention(label=label, text=normalized, precautionary=precautionary)
        )
    return mentions


def confidence_score(product: Product, token_count: int, mention_count: int) -> int:
    """Score how trustworthy a verdict is from source data quality, 0-100."""
    quality = min(max(_as_int(product.data_quality_score), 0), 100)
    verifications = max(_as_int(product.verification_count), 0)
    score = quality * QUALITY_WEIGHT
    score += VERIFICATION_CAP * (1 - 0.5**verifications)
    if token_count >= MIN_TOKEN_COUNT:
        score += COMPLETENESS_POINTS
    else:
        score += COMPLETENESS_POINTS * token_count / MIN_TOKEN_COUNT
    result = min(max(round(score), 0), 100)
    if token_count == 0 or mention_count == 0:
        result = min(result, NO_DATA_CONFIDENCE_CEILING)
    return result


def _term_matches(term: str, mention_text: str, threshold: int) -> bool:
    """Match a risk term against one normalized mention.

    Containment always matches. Terms of at least ``FUZZY_MIN_TERM_LENGTH``
    characters also match misspellings: word windows of the term's width are
    compared with ``fuzz.ratio`` at a cut-off that admits a single dropped or
    substituted letter, and longer mentions fall back to ``fuzz.partial_ratio``
    at ``threshold``. A threshold of 100 disables fuzzy matching.
    """
    needle = term.strip().lower()
    if not needle:
        return False
    if needle in mention_text:
        return True
    if len(needle) < FUZZY_MIN_TERM_LENGTH or threshold >= 100:  # noqa: PLR2004
        return False
    cutoff = min(threshold, _single_edit_ratio(len(needle)))
    words = mention_text.split()
    width = len(needle.split())
    for start in range(max(len(words) - width + 1, 1)):
        window = " ".join(words[start : start + width])
        if fuzz.ratio(needle, window) >= cutoff:
            return True
    if len(mention_text) < len(needle):
        return False
    return fuzz.partial_ratio(needle, mention_text) >= threshold


def _single_edit_ratio(length: int) -> int:
    # Similarity left after substituting one letter in a term of this length.
    return int(100 * (length - 1) / length)


def _with_declared_allergens(
    mentions: list[IngredientMention], allergens: object
) -> list[IngredientMention]:
    combined = list(mentions)
    seen = {mention.text for mention in mentions}
    if not isinstance(allergens, set | frozenset | list | tuple):
        return combined
    for allergen in sorted(str(item) for item in allergens):
        label = " ".join(allergen.split())
        normalized = label.lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            combined.append(IngredientMention(label=label, text=normalized))
    return combined


def _ingredients_text(product: Product) -> str:
    text = product.ingredients_text
    return text if isinstance(text, str) else ""


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int | float):
        return int(value)
    return 0
