"""Repository functions for requests, inspections, appointments and users."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.config import settings
from claimflow.database import new_id, utcnow
from claimflow.engine.stages import Stage
from claimflow.models import (
    Appointment,
    Assessment,
    Engineer,
    Inspection,
    Request,
    UserProfile,
)
from claimflow.storage.history import record_safely


async def _next_number(db: AsyncSession, column, prefix: str) -> str:
    """Next human-readable number for the current year, e.g. ASM-2025-017.

    Uniqueness is enforced by the column's unique constraint; a concurrent
    caller taking the same number fails its insert.
    """
    year = utcnow().year
    stem = f"{prefix}-{year}-"
    result = await db.execute(select(func.count()).where(column.like(f"{stem}%")))
    return f"{stem}{result.scalar_one() + 1:03d}"


async def create_request(
    db: AsyncSession, data: dict, created_by: str | None = None
) -> tuple[Request, Assessment]:
    """Create a request together with its assessment (stage request_submitted)."""
    now = utcnow()
    request = Request(
        id=new_id(),
        request_number=await _next_number(
            db, Request.request_number, settings.request_number_prefix
        ),
        type=data.get("type") or "insurance",
        claim_number=data.get("claim_number"),
        owner_name=data.get("owner_name"),
        vehicle_make=data.get("vehicle_make"),
        vehicle_model=data.get("vehicle_model"),
        vehicle_registration=data.get("vehicle_registration"),
        description=data.get("description"),
        status="submitted",
        assigned_engineer_id=data.get("assigned_engineer_id"),
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    await db.flush()

    assessment = Assessment(
        id=new_id(),
        assessment_number=await _next_number(
            db, Assessment.assessment_number, settings.assessment_number_prefix
        ),
        request_id=request.id,
        stage=Stage.REQUEST_SUBMITTED,
        status="active",
        created_at=now,
        updated_at=now,
    )
    db.add(assessment)
    await db.flush()

    await record_safely(
        db,
        entity_type="requests",
        entity_id=request.id,
        assessment_id=assessment.id,
        action="created",
        changed_by=created_by,
        metadata={"request_number": request.request_number},
    )
    await record_safely(
        db,
        entity_type="assessments",
        entity_id=assessment.id,
        assessment_id=assessment.id,
        action="created",
        field_name="stage",
        new_value=assessment.stage,
        changed_by=created_by,
        metadata={"assessment_number": assessment.assessment_number},
    )
    return request, assessment


async def get_request(db: AsyncSession, request_id: str) -> Request | None:
    result = await db.execute(select(Request).where(Request.id == request_id))
    return result.scalar_one_or_none()


async def get_assessment_by_request(db: AsyncSession, request_id: str) -> Assessment | None:
    result = await db.execute(select(Assessment).where(Assessment.request_id == request_id))
    return result.scalar_one_or_none()


async def get_engineer(db: AsyncSession, engineer_id: str) -> Engineer | None:
    result = await db.execute(select(Engineer).where(Engineer.id == engineer_id))
    return result.scalar_one_or_none()


async def assign_engineer(
    db: AsyncSession, request: Request, engineer_id: str, changed_by: str | None = None
) -> Request:
    """Set the request's pending engineer assignment."""
    assessment = await get_assessment_by_request(db, request.id)
    previous = request.assigned_engineer_id
    request.assigned_engineer_id = engineer_id
    request.updated_at = utcnow()
    await db.flush()
    await record_safely(
        db,
        entity_type="requests",
        entity_id=request.id,
        assessment_id=assessment.id if assessment else None,
        action="engineer_assigned",
        field_name="assigned_engineer_id",
        old_value=previous,
        new_value=engineer_id,
        changed_by=changed_by,
    )
    return request


async def create_inspection(
    db: AsyncSession,
    request: Request,
    scheduled_date: datetime | None = None,
    changed_by: str | None = None,
) -> Inspection:
    """Raise an inspection for a request."""
    inspection = Inspection(
        id=new_id(),
        inspection_number=await _next_number(
            db, Inspection.inspection_number, settings.inspection_number_prefix
        ),
        request_id=request.id,
        assigned_engineer_id=request.assigned_engineer_id,
        status="pending",
        scheduled_date=scheduled_date,
    )
    db.add(inspection)
    await db.flush()
    assessment = await get_assessment_by_request(db, request.id)
    await record_safely(
        db,
        entity_type="inspections",
        entity_id=inspection.id,
        assessment_id=assessment.id if assessment else None,
        action="created",
        changed_by=changed_by,
        metadata={"inspection_number": inspection.inspection_number},
    )
    return inspection


async def get_inspection(db: AsyncSession, inspection_id: str) -> Inspection | None:
    result = await db.execute(select(Inspection).where(Inspection.id == inspection_id))
    return result.scalar_one_or_none()


async def create_appointment(
    db: AsyncSession,
    inspection: Inspection,
    engineer_id: str,
    appointment_date: datetime,
    appointment_type: str = "in_person",
    location_address: str | None = None,
    changed_by: str | None = None,
) -> Appointment:
    """Book an engineer visit against an inspection."""
    appointment = Appointment(
        id=new_id(),
        appointment_number=await _next_number(
            db, Appointment.appointment_number, settings.appointment_number_prefix
        ),
        request_id=inspection.request_id,
        inspection_id=inspection.id,
        engineer_id=engineer_id,
        appointment_type=appointment_type,
        appointment_date=appointment_date,
        location_address=location_address,
        status="scheduled",
    )
    db.add(appointment)
    await db.flush()
    assessment = await get_assessment_by_request(db, inspection.request_id)
    await record_safely(
        db,
        entity_type="appointments",
        entity_id=appointment.id,
        assessment_id=assessment.id if assessment else None,
        action="created",
        changed_by=changed_by,
        metadata={
            "appointment_number": appointment.appointment_number,
            "engineer_id": engineer_id,
        },
    )
    return appointment


async def get_user_by_api_key_hash(
    db: AsyncSession, api_key_hash: str
) -> tuple[UserProfile, str | None] | None:
    """User for an API key hash, with the engineer id linked to that login."""
    result = await db.execute(
        select(UserProfile, Engineer.id)
        .outerjoin(Engineer, Engineer.auth_user_id == UserProfile.id)
        .where(UserProfile.api_key_hash == api_key_hash)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return row[0], row[1]
