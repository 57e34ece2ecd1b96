"""Request, inspection and appointment schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from claimflow.schemas.assessment import AssessmentResponse


class CreateRequestRequest(BaseModel):
    """POST /v1/requests request."""

    type: Literal["insurance", "private"] = "insurance"
    claim_number: str | None = None
    owner_name: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_registration: str | None = None
    description: str | None = None
    assigned_engineer_id: str | None = None


class RequestResponse(BaseModel):
    """Request with the assessment created alongside it."""

    id: str
    request_number: str
    status: str
    assigned_engineer_id: str | None = None
    assessment: AssessmentResponse


class AssignEngineerRequest(BaseModel):
    """POST /v1/requests/{id}/assign-engineer request."""

    engineer_id: str


class CreateInspectionRequest(BaseModel):
    """POST /v1/requests/{id}/inspections request."""

    scheduled_date: datetime | None = None


class CreateAppointmentRequest(BaseModel):
    """POST /v1/inspections/{id}/appointments request."""

    engineer_id: str
    appointment_date: datetime
    appointment_type: Literal["in_person", "digital"] = "in_person"
    location_address: str | None = None
