"""
Errors raised by entity resolution.

Normalization and scoring never fail; everything here comes from input
validation or the persistence layer and carries enough context for the
caller to retry the occurrence.
"""

from typing import Optional

from processing.models import EntityKind


class ResolutionError(Exception):
    """Base class for resolution failures."""

    def __init__(
        self,
        message: str,
        occurrence_id: Optional[str] = None,
        entity_kind: Optional[EntityKind] = None,
    ):
        super().__init__(message)
        self.occurrence_id = occurrence_id
        self.entity_kind = entity_kind

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.entity_kind is not None:
            context.append(f"kind={self.entity_kind.value}")
        if self.occurrence_id is not None:
            context.append(f"occurrence={self.occurrence_id}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class InvalidInput(ResolutionError):
    """Blank name or otherwise unusable mention."""


class LookupFailure(ResolutionError):
    """Store unreachable during exact or fuzzy lookup."""


class ConflictOnCreate(ResolutionError):
    """A concurrent worker created the same canonical name first."""

    def __init__(self, message: str, canonical_name: str, **kwargs):
        super().__init__(message, **kwargs)
        self.canonical_name = canonical_name


class PersistenceFailure(ResolutionError):
    """Any other store write error; the occurrence is safe to retry in full."""
