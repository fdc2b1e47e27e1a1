"""
Candidate location strategies for resolution.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from config.logging import get_logger
from config.settings import settings
from processing.models import EntityKind, EntityProfile
from processing.entity_resolution.normalizer import normalize_name
from processing.entity_resolution.similarity import length_window, similarity
from processing.entity_resolution.store import EntityStore

logger = get_logger("matchers")


class MatchType(Enum):
    """How a candidate was found."""
    EXACT_KEY = "exact_key"              # Normalized name equals canonical name
    NICKNAME_FUZZY = "nickname_fuzzy"    # Alias close to a known variant
    FULL_NAME_FUZZY = "full_name_fuzzy"  # Full name close to canonical name
    NO_MATCH = "no_match"


@dataclass
class MatchResult:
    """
    Outcome of a successful lookup.

    NO_MATCH means the store answered and nothing qualified; store errors
    raise LookupFailure instead of producing a result.
    """
    entity: Optional[EntityProfile] = None
    match_type: MatchType = MatchType.NO_MATCH
    score: float = 0.0
    matched_on: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def is_match(self) -> bool:
        return self.entity is not None

    def __repr__(self) -> str:
        if self.entity:
            return (
                f"<MatchResult({self.entity.canonical_name}, "
                f"{self.match_type.value}, score={self.score:.1f})>"
            )
        return "<MatchResult(no match)>"


@dataclass(frozen=True)
class MatchPolicy:
    """
    Fuzzy thresholds for one entity kind. Scores must exceed a threshold.

    variant_source selects what is compared against known variants: the
    incoming alias (people) or the incoming full name (organizations).
    cross_check_threshold, when set, also requires the full names to agree
    before a variant match is accepted.
    """
    variant_threshold: float
    full_name_threshold: float
    cross_check_threshold: Optional[float] = None
    variant_source: str = "alias"
    restrict_to_category: bool = False

    @classmethod
    def for_kind(cls, kind: EntityKind) -> "MatchPolicy":
        if kind == EntityKind.PERSON:
            return cls(
                variant_threshold=settings.NICKNAME_MATCH_THRESHOLD,
                full_name_threshold=settings.FULL_NAME_MATCH_THRESHOLD,
                cross_check_threshold=settings.NICKNAME_FULL_NAME_THRESHOLD,
                variant_source="alias",
            )
        return cls(
            variant_threshold=settings.FULL_NAME_MATCH_THRESHOLD,
            full_name_threshold=settings.FULL_NAME_MATCH_THRESHOLD,
            variant_source="full_name",
            restrict_to_category=not settings.FUZZY_MATCH_ACROSS_CATEGORIES,
        )


class ExactKeyMatcher:
    """Point lookup on (kind, canonical name)."""

    def __init__(self, store: EntityStore):
        self.store = store

    def match(self, normalized_key: str, kind: EntityKind) -> MatchResult:
        entity = self.store.get_by_key(kind, normalized_key)
        if entity is None:
            return MatchResult()
        return MatchResult(
            entity=entity,
            match_type=MatchType.EXACT_KEY,
            score=100.0,
            matched_on=normalized_key,
        )


class FuzzyNameMatcher:
    """
    Scans active entities of a kind and keeps the single best candidate.

    Two checks per candidate:
    - full-name check: full name vs canonical name, above full_name_threshold
    - variant check: query vs every known variant, above variant_threshold
      (and, for people, full name vs canonical above cross_check_threshold)

    Only a strictly higher score replaces the current best, so ties go to
    the first candidate in store order (canonical name, created_at, id).
    """

    def __init__(self, store: EntityStore, kind: EntityKind, policy: Optional[MatchPolicy] = None):
        self.store = store
        self.kind = kind
        self.policy = policy or MatchPolicy.for_kind(kind)

    def match(
        self,
        full_name: str,
        alias: Optional[str] = None,
        category: Optional[str] = None,
    ) -> MatchResult:
        policy = self.policy
        normalized_full = normalize_name(full_name, self.kind)
        if policy.variant_source == "alias":
            query = normalize_name(alias, self.kind) if alias else ""
        else:
            query = normalized_full

        if not normalized_full:
            return MatchResult()

        candidates = self.store.active_candidates(
            self.kind,
            canonical_length=self._canonical_window(len(normalized_full)),
            variant_length=self._variant_window(len(query)),
            category=category if policy.restrict_to_category else None,
        )

        best: Optional[EntityProfile] = None
        best_score = 0.0
        best_type = MatchType.NO_MATCH
        best_on: Optional[str] = None

        for candidate in candidates:
            full_score = similarity(normalized_full, candidate.canonical_name)

            if full_score > policy.full_name_threshold and full_score > best_score:
                best, best_score = candidate, full_score
                best_type, best_on = MatchType.FULL_NAME_FUZZY, candidate.canonical_name

            if query:
                for variant in candidate.variants:
                    if not variant.normalized:
                        continue
                    score = similarity(query, variant.normalized)
                    if score <= policy.variant_threshold or score <= best_score:
                        continue
                    if (
                        policy.cross_check_threshold is not None
                        and full_score <= policy.cross_check_threshold
                    ):
                        continue
                    best, best_score = candidate, score
                    best_type, best_on = MatchType.NICKNAME_FUZZY, variant.variant

        if best is None:
            logger.debug(f"No fuzzy match among {len(candidates)} candidates for '{full_name}'")
            return MatchResult()

        logger.info(
            f"Found fuzzy match: '{full_name}' -> '{best.canonical_name}' "
            f"({best_score:.1f}% via {best_type.value})"
        )
        return MatchResult(
            entity=best,
            match_type=best_type,
            score=best_score,
            matched_on=best_on,
            details={
                "input_name": full_name,
                "normalized_name": normalized_full,
                "query": query,
                "candidates_scanned": len(candidates),
            },
        )

    def _canonical_window(self, length: int) -> tuple[int, int]:
        thresholds = [self.policy.full_name_threshold]
        if self.policy.cross_check_threshold is not None:
            thresholds.append(self.policy.cross_check_threshold)
        return length_window(length, min(thresholds))

    def _variant_window(self, query_length: int) -> Optional[tuple[int, int]]:
        # With a cross-check every variant match also needs the canonical
        # name inside the canonical window, so variants add nothing.
        if self.policy.cross_check_threshold is not None or query_length == 0:
            return None
        return length_window(query_length, self.policy.variant_threshold)
