"""Row-level authorization for assessments.

Engineers see an assessment through its appointment once one is linked, and
through the owning request's pending assignment before that ("dual check").
The appointment_id column is legitimately null during early stages, so a
plain "deny when null" rule would lock engineers out of their own cases.

Everything here fails closed: unknown roles, unknown actions and lookup
errors deny.
"""

import logging
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.engine.errors import AssessmentNotFound
from claimflow.engine.stages import Stage
from claimflow.models import Appointment, Assessment, Request

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    ENGINEER = "engineer"
    READ_ONLY_FINANCE = "read_only_finance"


class Action(str, Enum):
    READ = "read"
    WRITE = "write"


class Actor(BaseModel):
    """Authenticated caller, as supplied by the session provider."""

    user_id: str
    role: str
    engineer_id: str | None = None


class AccessContext(BaseModel):
    """The relationship data access decisions are made on."""

    assessment_id: str
    stage: Stage
    appointment_id: str | None = None
    appointment_engineer_id: str | None = None
    request_assigned_engineer_id: str | None = None


def _engineer_can_access(actor: Actor, context: AccessContext) -> bool:
    if not actor.engineer_id:
        return False
    if context.appointment_id is not None:
        return context.appointment_engineer_id == actor.engineer_id
    return context.request_assigned_engineer_id == actor.engineer_id


def can_access(actor: Actor, action: str, context: AccessContext) -> bool:
    """Decide whether actor may perform action on the assessment in context."""
    try:
        action = Action(action)
    except ValueError:
        return False

    if actor.role == Role.ADMIN.value:
        return True
    if actor.role == Role.READ_ONLY_FINANCE.value:
        return action is Action.READ
    if actor.role == Role.ENGINEER.value:
        return _engineer_can_access(actor, context)
    return False


def _context_query():
    return (
        select(
            Assessment.id,
            Assessment.stage,
            Assessment.appointment_id,
            Appointment.engineer_id,
            Request.assigned_engineer_id,
        )
        .join(Request, Request.id == Assessment.request_id)
        .outerjoin(Appointment, Appointment.id == Assessment.appointment_id)
    )


async def load_access_context(db: AsyncSession, assessment_id: str) -> AccessContext:
    """Fetch the access context for one assessment with a single join."""
    result = await db.execute(_context_query().where(Assessment.id == assessment_id))
    row = result.one_or_none()
    if row is None:
        raise AssessmentNotFound(assessment_id)
    return AccessContext(
        assessment_id=row[0],
        stage=row[1],
        appointment_id=row[2],
        appointment_engineer_id=row[3],
        request_assigned_engineer_id=row[4],
    )


async def check_access(
    db: AsyncSession, actor: Actor, action: str, assessment_id: str
) -> bool:
    """Load the context and evaluate; any lookup failure denies."""
    try:
        context = await load_access_context(db, assessment_id)
    except AssessmentNotFound:
        logger.warning("Access check for missing assessment %s; denying", assessment_id)
        return False
    except SQLAlchemyError:
        logger.exception(
            "Access lookup failed for user %s on assessment %s; denying",
            actor.user_id,
            assessment_id,
        )
        return False
    return can_access(actor, action, context)


def visibility_clause(actor: Actor):
    """SQL form of the read rule, for queries joining requests and appointments."""
    if actor.role in (Role.ADMIN.value, Role.READ_ONLY_FINANCE.value):
        return true()
    if actor.role == Role.ENGINEER.value and actor.engineer_id:
        return or_(
            and_(
                Assessment.appointment_id.is_not(None),
                Appointment.engineer_id == actor.engineer_id,
            ),
            and_(
                Assessment.appointment_id.is_(None),
                Request.assigned_engineer_id == actor.engineer_id,
            ),
        )
    return false()
