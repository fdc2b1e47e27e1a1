"""
Report mention ingestion.

Takes the structured extraction output of one field report and resolves every
personnel and vendor mention to a canonical entity. Occurrence ids are derived
from the report id and the mention's position, so re-processing the same
report does not double count.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from config.logging import get_logger
from processing.entity_resolution import (
    InvalidInput,
    OrganizationResolver,
    PersonResolver,
    ResolverConfig,
)
from processing.models import EntityKind

logger = get_logger("mentions")


@dataclass
class ReportResolution:
    """Entity ids resolved from one report, in mention order."""
    report_id: str
    person_ids: list[str] = field(default_factory=list)
    vendor_ids: list[str] = field(default_factory=list)


def occurrence_id_for(report_id: str, kind: str, index: int) -> str:
    return f"{report_id}#{kind}#{index}"


def _hours(value, occurrence_id: str) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        hours = Decimal(str(value))
        if hours.is_finite():
            return hours
    except InvalidOperation:
        pass
    raise InvalidInput(
        f"Invalid hours value '{value}'",
        occurrence_id=occurrence_id,
        entity_kind=EntityKind.PERSON,
    )


def process_report_mentions(
    db: Session,
    report: dict,
    config: Optional[ResolverConfig] = None,
) -> ReportResolution:
    """
    Resolve all personnel and vendors mentioned in an extracted report.

    Expected shape:
        {
            "reportId": "...", "reportDate": "2025-03-04",
            "projectId": "...", "projectName": "...",
            "personnel": [{"fullName", "goByName", "position", "teamAssignment",
                           "hoursWorked", "overtimeHours", "healthStatus",
                           "activitiesPerformed"}],
            "vendors": [{"companyName", "vendorType", "materialsDelivered",
                         "deliveryTime", "receivedBy", "deliveryNotes",
                         "extractedFromText"}],
        }

    Resolution errors propagate; mentions already resolved before the failure
    stay committed and are skipped when the report is retried.
    """
    report_id = report["reportId"]
    report_date = report["reportDate"]
    project = {
        "project_id": report.get("projectId"),
        "project_name": report.get("projectName"),
    }
    resolution = ReportResolution(report_id=report_id)

    personnel = report.get("personnel") or []
    vendors = report.get("vendors") or []
    logger.info(
        f"Processing report {report_id}: {len(personnel)} personnel, {len(vendors)} vendors"
    )

    person_resolver = PersonResolver(db, config)
    for index, person in enumerate(personnel):
        occurrence_id = occurrence_id_for(report_id, "person", index)
        hours = _hours(person.get("hoursWorked"), occurrence_id)
        overtime = _hours(person.get("overtimeHours"), occurrence_id)
        person_id = person_resolver.resolve(
            full_name=person.get("fullName", ""),
            alias=person.get("goByName"),
            occurrence_date=report_date,
            occurrence_id=occurrence_id,
            type_specific_fields={"position": person.get("position")},
            numeric_contribution=hours,
            source_id=report_id,
            details={
                **project,
                "team_assignment": person.get("teamAssignment"),
                "hours_worked": float(hours),
                "overtime_hours": float(overtime),
                "health_status": person.get("healthStatus"),
                "activities_performed": person.get("activitiesPerformed"),
            },
        )
        resolution.person_ids.append(person_id)

    vendor_resolver = OrganizationResolver(db, config)
    for index, vendor in enumerate(vendors):
        vendor_id = vendor_resolver.resolve(
            full_name=vendor.get("companyName", ""),
            occurrence_date=report_date,
            occurrence_id=occurrence_id_for(report_id, "vendor", index),
            type_specific_fields={"category": vendor.get("vendorType") or "other"},
            numeric_contribution=1,
            source_id=report_id,
            details={
                **project,
                "materials_delivered": vendor.get("materialsDelivered"),
                "delivery_time": vendor.get("deliveryTime"),
                "received_by": vendor.get("receivedBy"),
                "delivery_notes": vendor.get("deliveryNotes"),
                "extracted_from_text": vendor.get("extractedFromText"),
            },
        )
        resolution.vendor_ids.append(vendor_id)

    logger.info(
        f"Report {report_id}: {len(set(resolution.person_ids))} people, "
        f"{len(set(resolution.vendor_ids))} vendors"
    )
    return resolution
