#!/usr/bin/env python3
"""
Resolve the people and vendors mentioned in an extracted field report.

Usage:
    python scripts/resolve_report.py extraction.json
    python scripts/resolve_report.py extraction.json --init-db
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.database import SessionLocal, init_db
from processing.entity_resolution import ResolutionError
from processing.mentions import process_report_mentions


def main():
    parser = argparse.ArgumentParser(
        description="Deduplicate personnel and vendor mentions from one report"
    )
    parser.add_argument("extraction", type=Path, help="Extraction output JSON file")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create tables before processing",
    )

    args = parser.parse_args()

    if args.init_db:
        init_db()

    report = json.loads(args.extraction.read_text())

    db = SessionLocal()
    try:
        resolution = process_report_mentions(db, report)
    except ResolutionError as e:
        print(f"Failed to resolve report {report.get('reportId')}: {e}")
        sys.exit(1)
    finally:
        db.close()

    print("=" * 60)
    print(f"REPORT {resolution.report_id}")
    print("=" * 60)
    for person, person_id in zip(report.get("personnel") or [], resolution.person_ids):
        print(f"  person  {person.get('fullName'):<30} -> {person_id}")
    for vendor, vendor_id in zip(report.get("vendors") or [], resolution.vendor_ids):
        print(f"  vendor  {vendor.get('companyName'):<30} -> {vendor_id}")


if __name__ == "__main__":
    main()
