"""
Entity Resolution Module

Tiered matching of people and vendors mentioned in field reports:
- Exact match on normalized name (case, punctuation, legal suffixes)
- Nickname match against every known name variant
- Full-name fuzzy match (edit-distance similarity via rapidfuzz)

Creation is insert-if-absent so concurrent mentions of a new name converge
on one profile; every mention appends an occurrence history record.
"""

from processing.entity_resolution.errors import (
    ConflictOnCreate,
    InvalidInput,
    LookupFailure,
    PersistenceFailure,
    ResolutionError,
)
from processing.entity_resolution.history import HistoryRecorder, OccurrencePayload
from processing.entity_resolution.matchers import (
    ExactKeyMatcher,
    FuzzyNameMatcher,
    MatchPolicy,
    MatchResult,
    MatchType,
)
from processing.entity_resolution.normalizer import normalize_name
from processing.entity_resolution.resolver import (
    EntityResolver,
    Occurrence,
    OrganizationResolver,
    PersonResolver,
    ResolutionOutcome,
    ResolverConfig,
    resolver_for,
)
from processing.entity_resolution.similarity import edit_distance, similarity
from processing.entity_resolution.store import EntityStore

__all__ = [
    "ConflictOnCreate",
    "EntityResolver",
    "EntityStore",
    "ExactKeyMatcher",
    "FuzzyNameMatcher",
    "HistoryRecorder",
    "InvalidInput",
    "LookupFailure",
    "MatchPolicy",
    "MatchResult",
    "MatchType",
    "Occurrence",
    "OccurrencePayload",
    "OrganizationResolver",
    "PersistenceFailure",
    "PersonResolver",
    "ResolutionError",
    "ResolutionOutcome",
    "ResolverConfig",
    "edit_distance",
    "normalize_name",
    "resolver_for",
    "similarity",
]
