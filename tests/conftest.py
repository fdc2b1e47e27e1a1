"""
Pytest configuration and shared fixtures.
"""

import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.database import build_engine, init_db
from processing.models import EntityProfile, OccurrenceRecord


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file database per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def report_date() -> date:
    return date(2025, 3, 4)


def count_profiles(session_factory, **filters) -> int:
    """Count profiles through a separate session so nothing is cached."""
    session = session_factory()
    try:
        query = select(func.count()).select_from(EntityProfile).filter_by(**filters)
        return session.scalar(query)
    finally:
        session.close()


def load_profile(session_factory, entity_id: str) -> EntityProfile:
    session = session_factory(expire_on_commit=False)
    try:
        entity = session.get(EntityProfile, entity_id)
        # Touch lazy collections before the session closes
        entity.variants
        return entity
    finally:
        session.close()


def load_history(session_factory, entity_id: str) -> list[OccurrenceRecord]:
    session = session_factory()
    try:
        return list(
            session.scalars(
                select(OccurrenceRecord).where(OccurrenceRecord.entity_id == entity_id)
            ).all()
        )
    finally:
        session.close()
