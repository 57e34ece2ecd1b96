"""Assessment request/response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from claimflow.engine.stages import Stage


class AssessmentResponse(BaseModel):
    """Assessment as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    assessment_number: str
    request_id: str
    stage: Stage
    status: str
    appointment_id: str | None = None
    inspection_id: str | None = None
    estimate_id: str | None = None
    started_at: datetime | None = None
    estimate_finalized_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AssessmentSummary(BaseModel):
    """Row in a stage list - assessment plus the request/appointment data shown with it."""

    id: str
    assessment_number: str
    request_id: str
    request_number: str
    stage: Stage
    status: str
    claim_number: str | None = None
    owner_name: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_registration: str | None = None
    engineer_id: str | None = None
    engineer_name: str | None = None
    appointment_date: datetime | None = None
    updated_at: datetime


class TransitionRequest(BaseModel):
    """POST /v1/assessments/{id}/transition request."""

    target_stage: str


class LinkRelationRequest(BaseModel):
    """POST /v1/assessments/{id}/relations request."""

    relation: str
    relation_id: str | None = None


class EnsureArtifactsRequest(BaseModel):
    """POST /v1/assessments/{id}/artifacts request; empty means the full set."""

    artifacts: list[str] = Field(default_factory=list)


class ArtifactSetResponse(BaseModel):
    """Artifact ids per name; tyres map position -> id."""

    assessment_id: str
    artifacts: dict[str, Any]
    created: list[str] = Field(default_factory=list)


class HistoryEntryResponse(BaseModel):
    """One history ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: str
    assessment_id: str | None = None
    action: str
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    changed_by: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class HistoryPage(BaseModel):
    """A page of history; pass next_cursor as after_id to continue."""

    entries: list[HistoryEntryResponse] = Field(default_factory=list)
    next_cursor: int | None = None
