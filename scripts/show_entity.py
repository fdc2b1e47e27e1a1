#!/usr/bin/env python3
"""
Print an entity profile and its occurrence history.

Usage:
    python scripts/show_entity.py person_1234...
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.database import SessionLocal
from processing.entity_resolution import EntityStore


def main():
    parser = argparse.ArgumentParser(description="Show an entity and its history")
    parser.add_argument("entity_id", help="Entity id (person_... or vendor_...)")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        store = EntityStore(db)
        entity = store.get(args.entity_id)
        if entity is None:
            print(f"No entity with id {args.entity_id}")
            sys.exit(1)

        print("=" * 60)
        print(f"{entity.canonical_name}  [{entity.entity_kind.value}, {entity.status.value}]")
        print("=" * 60)
        print(f"Id:           {entity.id}")
        if entity.category:
            print(f"Category:     {entity.category}")
        print(f"Variants:     {', '.join(sorted(entity.name_variants))}")
        print(f"Attributes:   {entity.attributes or {}}")
        print(f"First seen:   {entity.first_seen_date}")
        print(f"Last seen:    {entity.last_seen_date}")
        print(f"Occurrences:  {entity.occurrence_count}")
        print(f"Aggregate:    {entity.aggregate_total}")

        history = store.history_for(entity.id)
        print(f"\nHistory ({len(history)} records):")
        for record in history:
            alias = f" ({record.alias})" if record.alias else ""
            print(
                f"  {record.occurrence_date}  {record.source_id or '-':<16} "
                f"{record.raw_name}{alias}  +{record.numeric_contribution}"
            )
    finally:
        db.close()


if __name__ == "__main__":
    main()
