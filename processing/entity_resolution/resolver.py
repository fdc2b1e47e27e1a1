"""
Entity Resolver

Collapses repeated, inconsistently spelled mentions of the same person or
organization onto one canonical profile and records every mention.

Per occurrence:
    exact key lookup -> fuzzy lookup (only on miss) -> create or update
    -> append history -> commit

Creation is an insert-if-absent on (kind, canonical name). A worker that
loses a creation race rolls back and resolves again, landing on the
winner's profile as an update.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.logging import get_logger
from config.settings import settings
from processing.models import EntityKind, EntityProfile, generate_entity_id
from processing.entity_resolution.errors import (
    ConflictOnCreate,
    InvalidInput,
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
from processing.entity_resolution.store import EntityStore

logger = get_logger("resolver")

Number = Union[int, float, Decimal, str]


@dataclass
class ResolverConfig:
    """Configuration for entity resolution."""
    # Attempts before a repeatedly lost create race is reported as a failure
    max_create_attempts: int = 3

    # Fuzzy thresholds; None uses the per-kind defaults from settings
    policy: Optional[MatchPolicy] = None


@dataclass
class Occurrence:
    """One candidate mention handed over by report extraction."""
    full_name: str
    occurrence_date: date
    occurrence_id: str
    alias: Optional[str] = None
    type_specific_fields: dict = field(default_factory=dict)
    numeric_contribution: Decimal = Decimal("0")
    source_id: Optional[str] = None
    details: dict = field(default_factory=dict)


@dataclass
class ResolutionOutcome:
    """What happened to one occurrence."""
    entity_id: str
    created: bool = False
    match_type: MatchType = MatchType.NO_MATCH
    score: float = 0.0
    replayed: bool = False
    attempts: int = 1


class EntityResolver:
    """
    Resolves mentions of one entity kind.

    Holds no per-occurrence state: construct one per worker session and call
    resolve() for each mention.

    Usage:
        resolver = PersonResolver(db)
        person_id = resolver.resolve(
            full_name="John Smith",
            alias="Johnny",
            occurrence_date=date(2025, 3, 4),
            occurrence_id="RPT-0412#person#0",
            type_specific_fields={"position": "Foreman"},
            numeric_contribution=8,
        )
    """

    kind: EntityKind = EntityKind.PERSON

    def __init__(
        self,
        db: Session,
        config: Optional[ResolverConfig] = None,
    ):
        self.db = db
        self.config = config or ResolverConfig(
            max_create_attempts=settings.MAX_CREATE_ATTEMPTS
        )
        self.store = EntityStore(db)
        self.history = HistoryRecorder(db)
        self.exact_matcher = ExactKeyMatcher(self.store)
        self.fuzzy_matcher = FuzzyNameMatcher(self.store, self.kind, self.config.policy)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(
        self,
        full_name: str,
        occurrence_date: Union[date, str],
        occurrence_id: str,
        alias: Optional[str] = None,
        type_specific_fields: Optional[dict] = None,
        numeric_contribution: Number = 0,
        source_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> str:
        """
        Resolve a mention to a canonical entity id, creating one if needed.

        Raises:
            InvalidInput: blank name, bad date or negative contribution
            LookupFailure: the store could not answer a lookup
            PersistenceFailure: a write failed; the whole occurrence is
                rolled back and can be retried with the same occurrence_id
        """
        occurrence = self.build_occurrence(
            full_name=full_name,
            occurrence_date=occurrence_date,
            occurrence_id=occurrence_id,
            alias=alias,
            type_specific_fields=type_specific_fields,
            numeric_contribution=numeric_contribution,
            source_id=source_id,
            details=details,
        )
        return self.resolve_occurrence(occurrence).entity_id

    def resolve_occurrence(self, occurrence: Occurrence) -> ResolutionOutcome:
        normalized = normalize_name(occurrence.full_name, self.kind)
        if not normalized:
            raise InvalidInput(
                f"Name '{occurrence.full_name}' has no usable characters",
                occurrence_id=occurrence.occurrence_id,
                entity_kind=self.kind,
            )

        logger.debug(f"Resolving {self.kind.value}: {occurrence.full_name} -> '{normalized}'")

        last_conflict: Optional[ConflictOnCreate] = None
        for attempt in range(1, self.config.max_create_attempts + 1):
            try:
                # Checked on every attempt: a lost create race may have been
                # lost to a redelivery of this same occurrence.
                recorded = self.store.find_recorded_occurrence(
                    self.kind, occurrence.occurrence_id
                )
                if recorded:
                    logger.info(
                        f"Occurrence {occurrence.occurrence_id} already recorded "
                        f"for {recorded}, skipping"
                    )
                    return ResolutionOutcome(
                        entity_id=recorded, replayed=True, attempts=attempt
                    )
                outcome = self._resolve_once(normalized, occurrence)
                self._commit(occurrence)
                outcome.attempts = attempt
                return outcome
            except ConflictOnCreate as e:
                self.db.rollback()
                last_conflict = e
                logger.warning(
                    f"Lost create race for '{normalized}' "
                    f"(attempt {attempt}/{self.config.max_create_attempts}), re-resolving"
                )
            except ResolutionError as e:
                self.db.rollback()
                self._attach_context(e, occurrence)
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                raise PersistenceFailure(
                    f"Store error while resolving '{normalized}': {e}",
                    occurrence_id=occurrence.occurrence_id,
                    entity_kind=self.kind,
                ) from e

        raise PersistenceFailure(
            f"Could not resolve '{normalized}' after "
            f"{self.config.max_create_attempts} create conflicts",
            occurrence_id=occurrence.occurrence_id,
            entity_kind=self.kind,
        ) from last_conflict

    def locate(
        self,
        normalized: str,
        full_name: str,
        alias: Optional[str] = None,
        category: Optional[str] = None,
    ) -> MatchResult:
        """Exact key first, fuzzy scan only when that misses."""
        result = self.exact_matcher.match(normalized, self.kind)
        if result.is_match:
            logger.debug(f"Exact match: {result}")
            return result
        return self.fuzzy_matcher.match(full_name, alias=alias, category=category)

    def build_occurrence(
        self,
        full_name: str,
        occurrence_date: Union[date, str],
        occurrence_id: str,
        alias: Optional[str] = None,
        type_specific_fields: Optional[dict] = None,
        numeric_contribution: Number = 0,
        source_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Occurrence:
        """Validate raw inputs into an Occurrence."""
        if not full_name or not full_name.strip():
            raise InvalidInput(
                "Name is blank", occurrence_id=occurrence_id, entity_kind=self.kind
            )
        if not occurrence_id:
            raise InvalidInput("Occurrence id is required", entity_kind=self.kind)

        return Occurrence(
            full_name=full_name,
            occurrence_date=self._coerce_date(occurrence_date, occurrence_id),
            occurrence_id=occurrence_id,
            alias=alias.strip() if alias and alias.strip() else None,
            type_specific_fields=dict(type_specific_fields or {}),
            numeric_contribution=self._coerce_contribution(numeric_contribution, occurrence_id),
            source_id=source_id,
            details=dict(details or {}),
        )

    # ------------------------------------------------------------------
    # Type-specific hooks
    # ------------------------------------------------------------------

    def profile_attributes(self, occurrence: Occurrence) -> dict:
        """Latest-wins fields stored on the profile."""
        return {k: v for k, v in occurrence.type_specific_fields.items() if v is not None}

    def category_for(self, occurrence: Occurrence) -> Optional[str]:
        return None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _resolve_once(self, normalized: str, occurrence: Occurrence) -> ResolutionOutcome:
        category = self.category_for(occurrence)
        result = self.locate(normalized, occurrence.full_name, occurrence.alias, category)

        if result.is_match:
            entity_id = self._update_existing(result.entity, occurrence, category)
            outcome = ResolutionOutcome(
                entity_id=entity_id,
                match_type=result.match_type,
                score=result.score,
            )
        else:
            entity_id = self._create_new(normalized, occurrence, category)
            outcome = ResolutionOutcome(entity_id=entity_id, created=True)

        self.history.append(
            entity_id,
            occurrence.occurrence_id,
            OccurrencePayload(
                source_id=occurrence.source_id,
                occurrence_date=occurrence.occurrence_date,
                raw_name=occurrence.full_name,
                alias=occurrence.alias,
                numeric_contribution=occurrence.numeric_contribution,
                attributes={**occurrence.type_specific_fields, **occurrence.details},
            ),
        )
        return outcome

    def _create_new(
        self,
        normalized: str,
        occurrence: Occurrence,
        category: Optional[str],
    ) -> str:
        entity_id = generate_entity_id(self.kind)
        inserted = self.store.insert_if_absent(
            entity_id=entity_id,
            kind=self.kind,
            canonical_name=normalized,
            occurrence_date=occurrence.occurrence_date,
            aggregate_total=occurrence.numeric_contribution,
            attributes=self.profile_attributes(occurrence),
            category=category,
        )
        if not inserted:
            raise ConflictOnCreate(
                f"'{normalized}' was created concurrently",
                canonical_name=normalized,
                occurrence_id=occurrence.occurrence_id,
                entity_kind=self.kind,
            )

        self.store.add_variants(
            entity_id,
            self._variants(occurrence.full_name, occurrence.alias, normalized),
        )
        logger.info(f"Created new {self.kind.value}: {occurrence.full_name} ({entity_id})")
        return entity_id

    def _update_existing(
        self,
        entity: EntityProfile,
        occurrence: Occurrence,
        category: Optional[str],
    ) -> str:
        self.store.apply_occurrence(
            entity.id,
            occurrence_date=occurrence.occurrence_date,
            contribution=occurrence.numeric_contribution,
            attributes=self.profile_attributes(occurrence),
            category=category,
        )
        self.store.add_variants(
            entity.id,
            self._variants(occurrence.full_name, occurrence.alias),
        )
        logger.info(f"Updated {self.kind.value}: {entity.canonical_name} ({entity.id})")
        return entity.id

    def _variants(self, *names: Optional[str]) -> list[tuple[str, str]]:
        return [(name, normalize_name(name, self.kind)) for name in names if name]

    def _commit(self, occurrence: Occurrence) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(
                f"Commit failed: {e}",
                occurrence_id=occurrence.occurrence_id,
                entity_kind=self.kind,
            ) from e

    def _attach_context(self, error: ResolutionError, occurrence: Occurrence) -> None:
        if error.occurrence_id is None:
            error.occurrence_id = occurrence.occurrence_id
        if error.entity_kind is None:
            error.entity_kind = self.kind

    def _coerce_date(self, value: Union[date, str], occurrence_id: str) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise InvalidInput(
                f"Invalid occurrence date '{value}'",
                occurrence_id=occurrence_id,
                entity_kind=self.kind,
            ) from None

    def _coerce_contribution(self, value: Number, occurrence_id: str) -> Decimal:
        try:
            amount = Decimal(str(value if value is not None else 0))
        except InvalidOperation:
            raise InvalidInput(
                f"Invalid numeric contribution '{value}'",
                occurrence_id=occurrence_id,
                entity_kind=self.kind,
            ) from None
        if not amount.is_finite() or amount < 0:
            raise InvalidInput(
                f"Numeric contribution must be a non-negative number, got {value}",
                occurrence_id=occurrence_id,
                entity_kind=self.kind,
            )
        return amount


class PersonResolver(EntityResolver):
    """
    Resolves personnel mentions.

    Aggregate is hours worked; profile keeps current position and go-by name.
    """

    kind = EntityKind.PERSON

    def profile_attributes(self, occurrence: Occurrence) -> dict:
        attributes = super().profile_attributes(occurrence)
        if occurrence.alias:
            attributes["go_by_name"] = occurrence.alias
        return attributes


class OrganizationResolver(EntityResolver):
    """
    Resolves vendor/supplier mentions.

    Aggregate is deliveries; the `category` field (supplier, subcontractor,
    rental, other) is kept as the profile's latest category.
    """

    kind = EntityKind.ORGANIZATION

    def profile_attributes(self, occurrence: Occurrence) -> dict:
        attributes = super().profile_attributes(occurrence)
        attributes.pop("category", None)
        return attributes

    def category_for(self, occurrence: Occurrence) -> Optional[str]:
        category = occurrence.type_specific_fields.get("category")
        return str(category).strip().lower() if category else None


RESOLVERS = {
    EntityKind.PERSON: PersonResolver,
    EntityKind.ORGANIZATION: OrganizationResolver,
}


def resolver_for(kind: EntityKind, db: Session, config: Optional[ResolverConfig] = None) -> EntityResolver:
    """Resolver instance for an entity kind."""
    return RESOLVERS[kind](db, config)
