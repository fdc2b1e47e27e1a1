"""
Entity profile store.

SQLAlchemy-backed repository exposing only the operation shapes the resolver
needs: point lookups, a bounded active-population scan, insert-if-absent on
(entity_kind, canonical_name), and in-database increments for counters.
Read errors surface as LookupFailure, write errors as PersistenceFailure.
"""

import json
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import String, case, cast, func, literal, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from processing.models import (
    EntityKind,
    EntityProfile,
    EntityStatus,
    NameVariant,
    OccurrenceRecord,
)
from processing.entity_resolution.errors import LookupFailure, PersistenceFailure

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class EntityStore:
    """
    Persistence operations for entity profiles and their name variants.

    Writes are staged on the session; the caller owns commit/rollback so a
    profile mutation and its history append land in one transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> Optional[EntityProfile]:
        try:
            return self.db.get(EntityProfile, entity_id)
        except SQLAlchemyError as e:
            raise LookupFailure(f"Failed to load entity {entity_id}: {e}") from e

    def get_by_key(self, kind: EntityKind, canonical_name: str) -> Optional[EntityProfile]:
        """Exact lookup on (kind, canonical name). Inactive profiles are included."""
        try:
            return self.db.scalars(
                select(EntityProfile).where(
                    EntityProfile.entity_kind == kind,
                    EntityProfile.canonical_name == canonical_name,
                )
            ).first()
        except SQLAlchemyError as e:
            raise LookupFailure(
                f"Exact lookup failed for '{canonical_name}': {e}", entity_kind=kind
            ) from e

    def active_candidates(
        self,
        kind: EntityKind,
        canonical_length: tuple[int, int],
        variant_length: Optional[tuple[int, int]] = None,
        category: Optional[str] = None,
    ) -> list[EntityProfile]:
        """
        Active profiles of `kind` that could clear a fuzzy threshold.

        A profile qualifies when its canonical name length falls inside
        `canonical_length`, or, if `variant_length` is given, when any of its
        normalized variants does. Ordered by canonical name, then creation
        time, then id, which fixes the tie-break order for equal scores.
        """
        low, high = canonical_length
        length_filter = EntityProfile.name_length.between(low, high)
        if variant_length is not None:
            v_low, v_high = variant_length
            length_filter = or_(
                length_filter,
                EntityProfile.id.in_(
                    select(NameVariant.entity_id).where(
                        NameVariant.normalized_length.between(v_low, v_high)
                    )
                ),
            )

        query = (
            select(EntityProfile)
            .options(selectinload(EntityProfile.variants))
            .where(
                EntityProfile.entity_kind == kind,
                EntityProfile.status == EntityStatus.ACTIVE,
                length_filter,
            )
            .order_by(
                EntityProfile.canonical_name,
                EntityProfile.created_at,
                EntityProfile.id,
            )
        )
        if category:
            query = query.where(EntityProfile.category == category)

        try:
            return list(self.db.scalars(query).all())
        except SQLAlchemyError as e:
            raise LookupFailure(f"Fuzzy candidate scan failed: {e}", entity_kind=kind) from e

    def find_recorded_occurrence(self, kind: EntityKind, occurrence_id: str) -> Optional[str]:
        """Entity id that already recorded `occurrence_id`, if any."""
        try:
            return self.db.scalars(
                select(OccurrenceRecord.entity_id)
                .join(EntityProfile, EntityProfile.id == OccurrenceRecord.entity_id)
                .where(
                    OccurrenceRecord.occurrence_id == occurrence_id,
                    EntityProfile.entity_kind == kind,
                )
                .limit(1)
            ).first()
        except SQLAlchemyError as e:
            raise LookupFailure(
                f"Occurrence lookup failed: {e}",
                occurrence_id=occurrence_id,
                entity_kind=kind,
            ) from e

    def history_for(self, entity_id: str) -> list[OccurrenceRecord]:
        """Occurrence records of an entity, oldest first."""
        try:
            return list(
                self.db.scalars(
                    select(OccurrenceRecord)
                    .where(OccurrenceRecord.entity_id == entity_id)
                    .order_by(OccurrenceRecord.occurrence_date, OccurrenceRecord.recorded_at)
                ).all()
            )
        except SQLAlchemyError as e:
            raise LookupFailure(f"History lookup failed for {entity_id}: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _dialect(self) -> str:
        return self.db.get_bind().dialect.name

    def _insert(self, model):
        dialect = self._dialect()
        try:
            return _UPSERT_DIALECTS[dialect](model.__table__)
        except KeyError:
            raise PersistenceFailure(
                f"Conditional insert is not supported on dialect '{dialect}'"
            ) from None

    def _merged_attributes(self, observed: dict):
        """
        SQL expression merging `observed` into the stored attributes key by key.

        Keys not in `observed` keep whatever the row holds at write time.
        """
        dialect = self._dialect()
        if dialect == "sqlite":
            return func.json_patch(
                func.coalesce(EntityProfile.attributes, literal("{}", String)),
                literal(json.dumps(observed, default=str), String),
            )
        if dialect == "postgresql":
            merged = func.coalesce(
                cast(EntityProfile.attributes, postgresql.JSONB),
                literal({}, postgresql.JSONB),
            ).op("||")(literal(observed, postgresql.JSONB))
            return cast(merged, EntityProfile.attributes.type)
        raise PersistenceFailure(f"Attribute merge is not supported on dialect '{dialect}'")

    def insert_if_absent(
        self,
        entity_id: str,
        kind: EntityKind,
        canonical_name: str,
        occurrence_date: date,
        aggregate_total: Decimal,
        attributes: dict,
        category: Optional[str] = None,
    ) -> bool:
        """
        Create a profile unless (kind, canonical_name) is already taken.

        Returns False when another writer holds the key; nothing is written
        in that case.
        """
        stmt = (
            self._insert(EntityProfile)
            .values(
                id=entity_id,
                entity_kind=kind,
                canonical_name=canonical_name,
                name_length=len(canonical_name),
                category=category,
                attributes=attributes,
                first_seen_date=occurrence_date,
                last_seen_date=occurrence_date,
                occurrence_count=1,
                aggregate_total=aggregate_total,
                status=EntityStatus.ACTIVE,
            )
            .on_conflict_do_nothing(index_elements=["entity_kind", "canonical_name"])
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"Failed to create '{canonical_name}': {e}", entity_kind=kind
            ) from e
        return result.rowcount == 1

    def add_variants(self, entity_id: str, variants: Iterable[tuple[str, str]]) -> int:
        """
        Merge (raw, normalized) name variants into an entity's set.

        Existing variants are left alone, so concurrent merges never drop one
        another's additions. Returns the number of new variants.
        """
        added = 0
        seen = set()
        for raw, normalized in variants:
            if not raw or raw in seen:
                continue
            seen.add(raw)
            stmt = (
                self._insert(NameVariant)
                .values(
                    entity_id=entity_id,
                    variant=raw,
                    normalized=normalized,
                    normalized_length=len(normalized),
                )
                .on_conflict_do_nothing(index_elements=["entity_id", "variant"])
            )
            try:
                added += self.db.execute(stmt).rowcount
            except SQLAlchemyError as e:
                raise PersistenceFailure(f"Failed to add variant to {entity_id}: {e}") from e
        return added

    def apply_occurrence(
        self,
        entity_id: str,
        occurrence_date: date,
        contribution: Decimal,
        attributes: Optional[dict] = None,
        category: Optional[str] = None,
    ) -> None:
        """
        Fold one more occurrence into an existing profile.

        Counter and aggregate are incremented in the UPDATE itself; seen
        dates only ever widen. `attributes` holds only the fields this
        occurrence observed; each is last-writer-wins, the rest are untouched.
        """
        values = {
            "occurrence_count": EntityProfile.occurrence_count + 1,
            "aggregate_total": EntityProfile.aggregate_total + contribution,
            "last_seen_date": case(
                (EntityProfile.last_seen_date < occurrence_date, occurrence_date),
                else_=EntityProfile.last_seen_date,
            ),
            "first_seen_date": case(
                (EntityProfile.first_seen_date > occurrence_date, occurrence_date),
                else_=EntityProfile.first_seen_date,
            ),
            "updated_at": func.now(),
        }
        if attributes:
            values["attributes"] = self._merged_attributes(attributes)
        if category:
            values["category"] = category

        stmt = (
            update(EntityProfile)
            .where(EntityProfile.id == entity_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to update {entity_id}: {e}") from e
        if result.rowcount != 1:
            raise PersistenceFailure(f"Entity {entity_id} disappeared during update")

    def set_status(self, entity_id: str, status: EntityStatus) -> None:
        """Flip a profile between active and inactive."""
        stmt = (
            update(EntityProfile)
            .where(EntityProfile.id == entity_id)
            .values(status=status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                raise PersistenceFailure(f"No entity with id {entity_id}")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"Failed to set status on {entity_id}: {e}") from e
