"""Request intake endpoints - requests, engineer assignment, inspections, appointments."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.auth.middleware import AdminDep
from claimflow.database import get_db
from claimflow.schemas.assessment import AssessmentResponse
from claimflow.schemas.request import (
    AssignEngineerRequest,
    CreateAppointmentRequest,
    CreateInspectionRequest,
    CreateRequestRequest,
    RequestResponse,
)
from claimflow.storage.repositories import (
    assign_engineer,
    create_appointment,
    create_inspection,
    create_request,
    get_assessment_by_request,
    get_engineer,
    get_inspection,
    get_request,
)

router = APIRouter()


async def _require_engineer(db: AsyncSession, engineer_id: str) -> None:
    engineer = await get_engineer(db, engineer_id)
    if not engineer or not engineer.is_active:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Engineer not found or inactive",
        )


@router.post("/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    body: CreateRequestRequest,
    actor: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a request and its assessment in one unit of work."""
    if body.assigned_engineer_id:
        await _require_engineer(db, body.assigned_engineer_id)
    try:
        request, assessment = await create_request(db, body.model_dump(), actor.user_id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Request number already taken, retry",
        )
    return RequestResponse(
        id=request.id,
        request_number=request.request_number,
        status=request.status,
        assigned_engineer_id=request.assigned_engineer_id,
        assessment=AssessmentResponse.model_validate(assessment),
    )


@router.post("/requests/{request_id}/assign-engineer", response_model=RequestResponse)
async def assign_request_engineer(
    request_id: str,
    body: AssignEngineerRequest,
    actor: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Set the pending engineer assignment on a request."""
    request = await get_request(db, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Request not found")
    await _require_engineer(db, body.engineer_id)
    await assign_engineer(db, request, body.engineer_id, actor.user_id)
    await db.commit()
    assessment = await get_assessment_by_request(db, request.id)
    return RequestResponse(
        id=request.id,
        request_number=request.request_number,
        status=request.status,
        assigned_engineer_id=request.assigned_engineer_id,
        assessment=AssessmentResponse.model_validate(assessment),
    )


@router.post("/requests/{request_id}/inspections", status_code=status.HTTP_201_CREATED)
async def raise_inspection(
    request_id: str,
    body: CreateInspectionRequest,
    actor: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Raise an inspection for a request."""
    request = await get_request(db, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Request not found")
    inspection = await create_inspection(db, request, body.scheduled_date, actor.user_id)
    await db.commit()
    return {
        "id": inspection.id,
        "inspection_number": inspection.inspection_number,
        "request_id": inspection.request_id,
        "status": inspection.status,
        "scheduled_date": inspection.scheduled_date.isoformat() if inspection.scheduled_date else None,
    }


@router.post("/inspections/{inspection_id}/appointments", status_code=status.HTTP_201_CREATED)
async def book_appointment(
    inspection_id: str,
    body: CreateAppointmentRequest,
    actor: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Book an engineer appointment for an inspection."""
    inspection = await get_inspection(db, inspection_id)
    if not inspection:
        raise HTTPException(status_code=404, detail="Inspection not found")
    await _require_engineer(db, body.engineer_id)
    appointment = await create_appointment(
        db,
        inspection,
        engineer_id=body.engineer_id,
        appointment_date=body.appointment_date,
        appointment_type=body.appointment_type,
        location_address=body.location_address,
        changed_by=actor.user_id,
    )
    await db.commit()
    return {
        "id": appointment.id,
        "appointment_number": appointment.appointment_number,
        "request_id": appointment.request_id,
        "inspection_id": appointment.inspection_id,
        "engineer_id": appointment.engineer_id,
        "appointment_date": appointment.appointment_date.isoformat(),
        "status": appointment.status,
    }
