"""
Append-only occurrence history.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from processing.models import OccurrenceRecord
from processing.entity_resolution.errors import PersistenceFailure


@dataclass
class OccurrencePayload:
    """Point-in-time snapshot of one mention."""
    source_id: Optional[str]
    occurrence_date: date
    raw_name: str
    alias: Optional[str] = None
    numeric_contribution: Decimal = Decimal("0")
    attributes: dict = field(default_factory=dict)


class HistoryRecorder:
    """
    Writes one immutable record per (entity_id, occurrence_id).

    Records are staged on the caller's session and become visible when the
    caller commits, together with the profile mutation they describe.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, entity_id: str, occurrence_id: str, payload: OccurrencePayload) -> None:
        record = OccurrenceRecord(
            entity_id=entity_id,
            occurrence_id=occurrence_id,
            source_id=payload.source_id,
            occurrence_date=payload.occurrence_date,
            raw_name=payload.raw_name,
            alias=payload.alias,
            numeric_contribution=payload.numeric_contribution,
            attributes=dict(payload.attributes),
        )
        try:
            self.db.add(record)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"Failed to append history for {entity_id}: {e}",
                occurrence_id=occurrence_id,
            ) from e
