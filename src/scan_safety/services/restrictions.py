"""Resolution of a subject's active restriction set."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from scan_safety.domain.restrictions import (
    DietaryRestriction,
    ResolvedRestriction,
    SubjectRef,
    SubjectRestriction,
)

_logger = logging.getLogger(__name__)


class RestrictionRepository(Protocol):
    """Persistence interface for restriction data."""

    def list_subject_restrictions(
        self, subject: SubjectRef
    ) -> list[SubjectRestriction]:
        """Return every restriction bound to a subject, active or not."""

    def get_definitions(
        self, restriction_ids: Iterable[UUID]
    ) -> dict[UUID, DietaryRestriction]:
        """Return restriction definitions keyed by id."""


@dataclass
class RestrictionResolver:
    """Assembles the active, enriched restriction set for a subject."""

    repository: RestrictionRepository

    def active_restrictions(self, subject: SubjectRef) -> list[ResolvedRestriction]:
        """Return active restrictions, most severe first.

        An empty list is a valid answer and means no restrictions are
        configured for the subject.
        """
        bindings = [
            binding
            for binding in self.repository.list_subject_restrictions(subject)
            if binding.active
        ]
        if not bindings:
            return []

        definitions = self.repository.get_definitions(
            binding.restriction_id for binding in bindings
        )
        resolved = []
        for binding in bindings:
            definition = definitions.get(binding.restriction_id)
            if definition is None:
                _logger.warning(
                    "Unknown restriction %s for %s %s",
                    binding.restriction_id,
                    subject.kind.value,
                    subject.id,
                )
            resolved.append(ResolvedRestriction(binding=binding, definition=definition))
        return sorted(
            resolved,
            key=lambda item: (-item.binding.severity.rank, str(item.restriction_id)),
        )
