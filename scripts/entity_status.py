#!/usr/bin/env python3
"""
Activate or deactivate an entity.

Inactive entities still match on exact name but are skipped by fuzzy matching.

Usage:
    python scripts/entity_status.py person_1234... inactive
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.database import SessionLocal
from processing.entity_resolution import EntityStore, ResolutionError
from processing.models import EntityStatus


def main():
    parser = argparse.ArgumentParser(description="Flip an entity's status")
    parser.add_argument("entity_id", help="Entity id (person_... or vendor_...)")
    parser.add_argument(
        "status",
        choices=[s.value for s in EntityStatus],
        help="New status",
    )

    args = parser.parse_args()

    db = SessionLocal()
    try:
        EntityStore(db).set_status(args.entity_id, EntityStatus(args.status))
        print(f"{args.entity_id} is now {args.status}")
    except ResolutionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
