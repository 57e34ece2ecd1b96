"""Assessment read-side projections.

Lists and counts are single statements joining requests, appointments and
engineers. Counts are aggregated on demand; nothing is cached.
"""

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.config import settings
from claimflow.engine.authorization import (
    AccessContext,
    Action,
    Actor,
    can_access,
    load_access_context,
    visibility_clause,
)
from claimflow.engine.errors import Unauthorized
from claimflow.engine.stages import Stage, parse_stage
from claimflow.models import Appointment, Assessment, Engineer, Request
from claimflow.schemas.assessment import AssessmentSummary


def _list_query():
    return (
        select(
            Assessment,
            Request.request_number,
            Request.claim_number,
            Request.owner_name,
            Request.vehicle_make,
            Request.vehicle_model,
            Request.vehicle_registration,
            Request.assigned_engineer_id,
            Appointment.engineer_id,
            Appointment.appointment_date,
            Engineer.name,
        )
        .join(Request, Request.id == Assessment.request_id)
        .outerjoin(Appointment, Appointment.id == Assessment.appointment_id)
        .outerjoin(Engineer, Engineer.id == Appointment.engineer_id)
    )


async def list_by_stage(
    db: AsyncSession,
    stages: Iterable["str | Stage"],
    actor: Actor,
    limit: int | None = None,
    offset: int = 0,
) -> list[AssessmentSummary]:
    """Assessments in any of stages that actor may read, newest first."""
    wanted = {s for s in (parse_stage(v) for v in stages) if s is not None}
    if not wanted:
        return []

    stmt = (
        _list_query()
        .where(Assessment.stage.in_(sorted(wanted, key=lambda s: s.order)))
        .where(visibility_clause(actor))
        .order_by(Assessment.updated_at.desc(), Assessment.id)
        .limit(limit or settings.list_page_size)
        .offset(offset)
    )
    result = await db.execute(stmt)

    summaries = []
    for (
        assessment,
        request_number,
        claim_number,
        owner_name,
        vehicle_make,
        vehicle_model,
        vehicle_registration,
        assigned_engineer_id,
        appointment_engineer_id,
        appointment_date,
        engineer_name,
    ) in result.all():
        context = AccessContext(
            assessment_id=assessment.id,
            stage=assessment.stage,
            appointment_id=assessment.appointment_id,
            appointment_engineer_id=appointment_engineer_id,
            request_assigned_engineer_id=assigned_engineer_id,
        )
        if not can_access(actor, Action.READ, context):
            continue
        summaries.append(
            AssessmentSummary(
                id=assessment.id,
                assessment_number=assessment.assessment_number,
                request_id=assessment.request_id,
                request_number=request_number,
                stage=assessment.stage,
                status=assessment.status,
                claim_number=claim_number,
                owner_name=owner_name,
                vehicle_make=vehicle_make,
                vehicle_model=vehicle_model,
                vehicle_registration=vehicle_registration,
                engineer_id=appointment_engineer_id or assigned_engineer_id,
                engineer_name=engineer_name,
                appointment_date=appointment_date,
                updated_at=assessment.updated_at,
            )
        )
    return summaries


async def count_by_stage(db: AsyncSession, actor: Actor) -> dict[str, int]:
    """Visible assessments per stage; every stage is present in the result."""
    stmt = (
        select(Assessment.stage, func.count(Assessment.id))
        .join(Request, Request.id == Assessment.request_id)
        .outerjoin(Appointment, Appointment.id == Assessment.appointment_id)
        .where(visibility_clause(actor))
        .group_by(Assessment.stage)
    )
    result = await db.execute(stmt)
    counts = {stage.value: 0 for stage in Stage}
    for stage, count in result.all():
        counts[Stage(stage).value] = count
    return counts


async def get_assessment_for(db: AsyncSession, assessment_id: str, actor: Actor) -> Assessment:
    """Read one assessment on behalf of actor."""
    context = await load_access_context(db, assessment_id)
    if not can_access(actor, Action.READ, context):
        raise Unauthorized(Action.READ.value, assessment_id)
    result = await db.execute(select(Assessment).where(Assessment.id == assessment_id))
    return result.scalar_one()
