"""
Field Report Entity Resolution - Database Models

SQLAlchemy ORM models for canonical people/organizations and their
per-report occurrence history.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.types import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# Enums
class EntityKind(PyEnum):
    PERSON = "person"
    ORGANIZATION = "organization"


class EntityStatus(PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


ID_PREFIXES = {
    EntityKind.PERSON: "person",
    EntityKind.ORGANIZATION: "vendor",
}


def generate_entity_id(kind: EntityKind) -> str:
    return f"{ID_PREFIXES[kind]}_{uuid.uuid4()}"


class EntityProfile(Base):
    """
    Canonical person or organization.

    At most one profile exists per (entity_kind, canonical_name); every
    later mention of the same identity mutates this row.
    """

    __tablename__ = "entity_profiles"

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    entity_kind: Mapped[EntityKind] = mapped_column(
        Enum(EntityKind), nullable=False, index=True
    )
    canonical_name: Mapped[str] = mapped_column(Text, nullable=False)
    name_length: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Organization sub-category (supplier, subcontractor, rental, other)
    category: Mapped[Optional[str]] = mapped_column(String(32), index=True)

    # Latest-wins type-specific fields (current position, contact, ...)
    attributes: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    first_seen_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_seen_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    aggregate_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )

    status: Mapped[EntityStatus] = mapped_column(
        Enum(EntityStatus), nullable=False, default=EntityStatus.ACTIVE, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    variants: Mapped[list["NameVariant"]] = relationship(
        back_populates="entity", cascade="all, delete-orphan"
    )
    occurrences: Mapped[list["OccurrenceRecord"]] = relationship(
        back_populates="entity",
        cascade="all, delete-orphan",
        order_by="OccurrenceRecord.occurrence_date",
    )

    __table_args__ = (
        UniqueConstraint(
            "entity_kind", "canonical_name", name="uq_entity_kind_canonical_name"
        ),
        Index("ix_entity_kind_status_length", "entity_kind", "status", "name_length"),
    )

    @property
    def name_variants(self) -> set[str]:
        """Every raw spelling observed for this entity."""
        return {v.variant for v in self.variants}

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<EntityProfile(id={self.id}, name={self.canonical_name}, "
            f"kind={self.entity_kind.value}, count={self.occurrence_count})>"
        )


class NameVariant(Base):
    """
    One raw spelling, nickname or legal-name form observed for an entity.
    """

    __tablename__ = "entity_name_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("entity_profiles.id"), nullable=False, index=True
    )
    variant: Mapped[str] = mapped_column(Text, nullable=False)
    normalized: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_length: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )

    entity: Mapped["EntityProfile"] = relationship(back_populates="variants")

    __table_args__ = (
        UniqueConstraint("entity_id", "variant", name="uq_variant_entity_variant"),
    )

    def __repr__(self) -> str:
        return f"<NameVariant(entity={self.entity_id}, variant={self.variant})>"


class OccurrenceRecord(Base):
    """
    Immutable snapshot of one mention of an entity in one report.
    """

    __tablename__ = "occurrence_history"

    entity_id: Mapped[str] = mapped_column(
        String(48), ForeignKey("entity_profiles.id"), primary_key=True
    )
    occurrence_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    source_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    raw_name: Mapped[str] = mapped_column(Text, nullable=False)
    alias: Mapped[Optional[str]] = mapped_column(Text)
    numeric_contribution: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    attributes: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )

    entity: Mapped["EntityProfile"] = relationship(back_populates="occurrences")

    __table_args__ = (
        Index("ix_occurrence_history_occurrence_id", "occurrence_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<OccurrenceRecord(entity={self.entity_id}, "
            f"occurrence={self.occurrence_id}, date={self.occurrence_date})>"
        )
