"""
Tests for the entity resolution module.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from conftest import count_profiles, load_history, load_profile
from processing.entity_resolution import (
    EntityStore,
    InvalidInput,
    LookupFailure,
    MatchPolicy,
    MatchType,
    OrganizationResolver,
    PersistenceFailure,
    PersonResolver,
    ResolverConfig,
    resolver_for,
)
from processing.models import EntityKind, EntityStatus


def _resolve_person(db, full_name, occurrence_id, alias=None, day=date(2025, 3, 4), **kwargs):
    return PersonResolver(db).resolve(
        full_name=full_name,
        alias=alias,
        occurrence_date=day,
        occurrence_id=occurrence_id,
        **kwargs,
    )


class TestExactMatching:

    def test_same_name_twice_resolves_to_same_entity(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0")
        second = _resolve_person(db, "John Smith", "rpt-2#0")

        assert first == second
        assert load_profile(session_factory, first).occurrence_count == 2

    def test_case_and_punctuation_differences_are_exact(self, db, session_factory):
        resolver = PersonResolver(db)
        first = resolver.resolve("John Smith", date(2025, 3, 4), "rpt-1#0")
        outcome = resolver.resolve_occurrence(
            resolver.build_occurrence("  JOHN  SMITH. ", date(2025, 3, 5), "rpt-2#0")
        )

        assert outcome.entity_id == first
        assert outcome.match_type == MatchType.EXACT_KEY
        assert count_profiles(session_factory) == 1

    def test_organization_suffix_variants_take_exact_path(self, db, session_factory):
        resolver = OrganizationResolver(db)
        created = resolver.resolve_occurrence(
            resolver.build_occurrence("Ferguson Supply Inc.", date(2025, 3, 4), "rpt-1#v0")
        )
        matched = resolver.resolve_occurrence(
            resolver.build_occurrence("Ferguson Supply", date(2025, 3, 5), "rpt-2#v0")
        )

        assert created.created
        assert not matched.created
        assert matched.entity_id == created.entity_id
        assert matched.match_type == MatchType.EXACT_KEY

        entity = load_profile(session_factory, created.entity_id)
        assert entity.canonical_name == "ferguson supply"
        assert entity.id.startswith("vendor_")
        assert {"Ferguson Supply Inc.", "Ferguson Supply"} <= entity.name_variants

    def test_kinds_do_not_share_keys(self, db, session_factory):
        person_id = resolver_for(EntityKind.PERSON, db).resolve(
            "Jordan Lee", date(2025, 3, 4), "rpt-1#p0"
        )
        vendor_id = resolver_for(EntityKind.ORGANIZATION, db).resolve(
            "Jordan Lee", date(2025, 3, 4), "rpt-1#v0"
        )
        assert person_id != vendor_id
        assert count_profiles(session_factory) == 2


class TestFuzzyMatching:

    def test_nickname_match_with_full_name_cross_check(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0", alias="Johnny")

        entity = load_profile(session_factory, first)
        assert entity.occurrence_count == 1
        assert {"john smith", "johnny"} <= {v.lower() for v in entity.name_variants}

        resolver = PersonResolver(db)
        outcome = resolver.resolve_occurrence(
            resolver.build_occurrence("Jon Smith", date(2025, 3, 5), "rpt-2#0", alias="Johnny")
        )

        assert outcome.entity_id == first
        assert outcome.match_type == MatchType.NICKNAME_FUZZY
        assert load_profile(session_factory, first).occurrence_count == 2

    def test_full_name_fuzzy_match_without_alias(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0")

        resolver = PersonResolver(db)
        outcome = resolver.resolve_occurrence(
            resolver.build_occurrence("Jon Smith", date(2025, 3, 5), "rpt-2#0")
        )

        assert outcome.entity_id == first
        assert outcome.match_type == MatchType.FULL_NAME_FUZZY
        assert outcome.score == pytest.approx(90.0)
        assert "Jon Smith" in load_profile(session_factory, first).name_variants

    def test_below_threshold_creates_distinct_entities(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0")
        second = _resolve_person(db, "Jon Smyth", "rpt-2#0")

        assert first != second
        assert count_profiles(session_factory) == 2

    def test_nickname_alone_is_not_enough(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0", alias="Johnny")
        second = _resolve_person(db, "Johnny Walker", "rpt-2#0", alias="Johnny")

        assert first != second
        assert count_profiles(session_factory) == 2

    def test_organization_fuzzy_match(self, db, session_factory):
        resolver = OrganizationResolver(db)
        first = resolver.resolve("Ferguson Enterprises LLC", date(2025, 3, 4), "rpt-1#v0")
        outcome = resolver.resolve_occurrence(
            resolver.build_occurrence("Fergusen Enterprises", date(2025, 3, 5), "rpt-2#v0")
        )

        assert outcome.entity_id == first
        assert outcome.match_type == MatchType.FULL_NAME_FUZZY

    def test_tie_goes_to_smallest_canonical_name(self, db):
        john = _resolve_person(db, "John Smith", "rpt-1#0")
        jean = _resolve_person(db, "Jean Smith", "rpt-1#1")
        assert john != jean

        # "joan smith" is one edit from both
        resolved = _resolve_person(db, "Joan Smith", "rpt-2#0")
        assert resolved == jean

    def test_inactive_entities_skip_fuzzy_but_keep_exact(self, db, session_factory):
        first = _resolve_person(db, "John Smith", "rpt-1#0")
        EntityStore(db).set_status(first, EntityStatus.INACTIVE)

        fuzzy = _resolve_person(db, "Jon Smith", "rpt-2#0")
        exact = _resolve_person(db, "John Smith", "rpt-3#0")

        assert fuzzy != first
        assert exact == first
        assert count_profiles(session_factory) == 2

    def test_cross_category_matching_by_default(self, db):
        resolver = OrganizationResolver(db)
        first = resolver.resolve(
            "Sunbelt Rentals", date(2025, 3, 4), "rpt-1#v0",
            type_specific_fields={"category": "rental"},
        )
        second = resolver.resolve(
            "Sunbelt Rental", date(2025, 3, 5), "rpt-2#v0",
            type_specific_fields={"category": "supplier"},
        )
        assert first == second

    def test_category_restricted_matching(self, db):
        policy = MatchPolicy(
            variant_threshold=85,
            full_name_threshold=85,
            variant_source="full_name",
            restrict_to_category=True,
        )
        resolver = OrganizationResolver(db, ResolverConfig(policy=policy))
        first = resolver.resolve(
            "Sunbelt Rentals", date(2025, 3, 4), "rpt-1#v0",
            type_specific_fields={"category": "rental"},
        )
        other_category = resolver.resolve(
            "Sunbelt Rental", date(2025, 3, 5), "rpt-2#v0",
            type_specific_fields={"category": "supplier"},
        )
        same_category = resolver.resolve(
            "Sunbelt Rentalz", date(2025, 3, 6), "rpt-3#v0",
            type_specific_fields={"category": "rental"},
        )

        assert other_category != first
        assert same_category == first


class TestProfileUpdates:

    def test_create_seeds_profile(self, db, session_factory):
        entity_id = _resolve_person(
            db, "John Smith", "rpt-1#0", alias="Johnny",
            type_specific_fields={"position": "Foreman"},
            numeric_contribution=8,
        )
        entity = load_profile(session_factory, entity_id)

        assert entity.id.startswith("person_")
        assert entity.canonical_name == "john smith"
        assert entity.name_variants == {"John Smith", "Johnny", "john smith"}
        assert entity.first_seen_date == entity.last_seen_date == date(2025, 3, 4)
        assert entity.occurrence_count == 1
        assert entity.aggregate_total == Decimal("8")
        assert entity.status == EntityStatus.ACTIVE
        assert entity.attributes == {"position": "Foreman", "go_by_name": "Johnny"}

    def test_update_accumulates_and_overwrites_latest_fields(self, db, session_factory):
        entity_id = _resolve_person(
            db, "John Smith", "rpt-1#0", alias="Johnny",
            type_specific_fields={"position": "Foreman"},
            numeric_contribution=8,
        )
        _resolve_person(
            db, "John Smith", "rpt-2#0", alias="JS",
            day=date(2025, 3, 5),
            type_specific_fields={"position": "Superintendent"},
            numeric_contribution="7.5",
        )
        entity = load_profile(session_factory, entity_id)

        assert entity.occurrence_count == 2
        assert entity.aggregate_total == Decimal("15.5")
        assert entity.attributes["position"] == "Superintendent"
        assert entity.attributes["go_by_name"] == "JS"
        assert {"Johnny", "JS"} <= entity.name_variants
        assert entity.last_seen_date == date(2025, 3, 5)

    def test_update_keeps_fields_it_did_not_observe(self, db, session_factory):
        entity_id = _resolve_person(
            db, "John Smith", "rpt-1#0", alias="Johnny",
            type_specific_fields={"position": "Foreman"},
        )
        _resolve_person(
            db, "John Smith", "rpt-2#0",
            type_specific_fields={"position": "Superintendent"},
        )
        entity = load_profile(session_factory, entity_id)

        assert entity.attributes == {"position": "Superintendent", "go_by_name": "Johnny"}

    def test_variants_are_not_duplicated(self, db, session_factory):
        entity_id = _resolve_person(db, "John Smith", "rpt-1#0", alias="Johnny")
        _resolve_person(db, "John Smith", "rpt-2#0", alias="Johnny")

        entity = load_profile(session_factory, entity_id)
        assert len(entity.variants) == len(entity.name_variants) == 3

    def test_seen_dates_only_widen(self, db, session_factory):
        entity_id = _resolve_person(db, "John Smith", "rpt-2#0", day=date(2025, 3, 10))
        _resolve_person(db, "John Smith", "rpt-1#0", day=date(2025, 3, 5))
        _resolve_person(db, "John Smith", "rpt-3#0", day=date(2025, 3, 12))

        entity = load_profile(session_factory, entity_id)
        assert entity.first_seen_date == date(2025, 3, 5)
        assert entity.last_seen_date == date(2025, 3, 12)

    def test_iso_date_strings_accepted(self, db, session_factory):
        entity_id = _resolve_person(db, "John Smith", "rpt-1#0", day="2025-03-04")
        assert load_profile(session_factory, entity_id).first_seen_date == date(2025, 3, 4)


class TestHistory:

    def test_every_occurrence_has_one_record(self, db, session_factory):
        day = date(2025, 3, 1)
        calls = [
            ("John Smith", "Johnny"),
            ("John Smith", None),
            ("Jon Smith", "Johnny"),
            ("JOHN SMITH", None),
            ("Jon Smith", None),
        ]
        ids = set()
        for index, (name, alias) in enumerate(calls):
            ids.add(
                _resolve_person(
                    db, name, f"rpt-{index}#0", alias=alias,
                    day=day + timedelta(days=index),
                    numeric_contribution=8,
                    details={"overtime_hours": 0},
                )
            )

        assert len(ids) == 1
        entity_id = ids.pop()
        history = load_history(session_factory, entity_id)

        assert len(history) == len(calls)
        assert len({r.occurrence_id for r in history}) == len(calls)
        assert load_profile(session_factory, entity_id).occurrence_count == len(calls)

    def test_record_is_a_snapshot_of_the_mention(self, db, session_factory):
        entity_id = _resolve_person(
            db, "Jon Smith", "rpt-1#0", alias="Johnny",
            type_specific_fields={"position": "Foreman"},
            numeric_contribution=9,
            source_id="rpt-1",
            details={"health_status": "good"},
        )
        _resolve_person(
            db, "John Smith", "rpt-2#0",
            type_specific_fields={"position": "Superintendent"},
        )

        records = {r.occurrence_id: r for r in load_history(session_factory, entity_id)}
        first = records["rpt-1#0"]
        assert first.raw_name == "Jon Smith"
        assert first.alias == "Johnny"
        assert first.source_id == "rpt-1"
        assert first.numeric_contribution == Decimal("9")
        assert first.attributes == {"position": "Foreman", "health_status": "good"}

    def test_replayed_occurrence_is_not_counted_twice(self, db, session_factory):
        resolver = PersonResolver(db)
        first = resolver.resolve("John Smith", date(2025, 3, 4), "rpt-1#0", numeric_contribution=8)
        outcome = resolver.resolve_occurrence(
            resolver.build_occurrence(
                "John Smith", date(2025, 3, 4), "rpt-1#0", numeric_contribution=8
            )
        )

        assert outcome.replayed
        assert outcome.entity_id == first
        entity = load_profile(session_factory, first)
        assert entity.occurrence_count == 1
        assert entity.aggregate_total == Decimal("8")
        assert len(load_history(session_factory, first)) == 1


class TestErrors:

    @pytest.mark.parametrize("name", ["", "   ", "!!!", "123"])
    def test_blank_names_rejected(self, db, session_factory, name):
        with pytest.raises(InvalidInput):
            _resolve_person(db, name, "rpt-1#0")
        assert count_profiles(session_factory) == 0

    def test_negative_contribution_rejected(self, db):
        with pytest.raises(InvalidInput):
            _resolve_person(db, "John Smith", "rpt-1#0", numeric_contribution=-1)

    def test_bad_date_rejected(self, db):
        with pytest.raises(InvalidInput):
            _resolve_person(db, "John Smith", "rpt-1#0", day="not a date")

    def test_lookup_failure_propagates_instead_of_creating(
        self, db, session_factory, monkeypatch
    ):
        resolver = PersonResolver(db)

        def unreachable(*args, **kwargs):
            raise LookupFailure("store unreachable")

        monkeypatch.setattr(resolver.store, "get_by_key", unreachable)

        with pytest.raises(LookupFailure) as excinfo:
            resolver.resolve("John Smith", date(2025, 3, 4), "rpt-1#0")

        assert excinfo.value.occurrence_id == "rpt-1#0"
        assert excinfo.value.entity_kind == EntityKind.PERSON
        assert count_profiles(session_factory) == 0

    def test_store_errors_become_lookup_failures(self, db, monkeypatch):
        store = EntityStore(db)

        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is down"))

        monkeypatch.setattr(db, "scalars", broken)

        with pytest.raises(LookupFailure):
            store.get_by_key(EntityKind.PERSON, "john smith")

    def test_history_failure_rolls_back_profile(self, db, session_factory, monkeypatch):
        resolver = PersonResolver(db)

        def failing_append(*args, **kwargs):
            raise PersistenceFailure("history table unavailable")

        monkeypatch.setattr(resolver.history, "append", failing_append)

        with pytest.raises(PersistenceFailure) as excinfo:
            resolver.resolve("John Smith", date(2025, 3, 4), "rpt-1#0")

        assert excinfo.value.occurrence_id == "rpt-1#0"
        assert count_profiles(session_factory) == 0

        # Same occurrence id succeeds once the store recovers
        monkeypatch.undo()
        entity_id = PersonResolver(db).resolve("John Smith", date(2025, 3, 4), "rpt-1#0")
        assert load_profile(session_factory, entity_id).occurrence_count == 1
        assert len(load_history(session_factory, entity_id)) == 1
