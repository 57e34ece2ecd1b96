"""Stage transition engine.

transition() validates and performs a stage change for one assessment:

1. authorization (write)
2. row read under SELECT ... FOR UPDATE
3. already at target -> no-op success
4. terminal stage -> TerminalState
5. relations required by the target stage -> MissingPrerequisite
6. allow-list -> InvalidTransition
7. child artifacts for the target stage (PartialProvisioning on failure)
8. conditional UPDATE on the expected current stage, then re-read and verify
9. one history entry (best effort), commit, publish stage_changed

A WorkflowError from any step rolls the session back so no row lock is held
after the call returns.

link_relation() sets appointment/inspection/estimate ids with the same
write-then-verify discipline. The engine never links a relation on its own.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.database import utcnow
from claimflow.engine.artifacts import STAGE_ARTIFACTS, ensure_artifacts
from claimflow.engine.authorization import Action, Actor, can_access, load_access_context
from claimflow.engine.errors import (
    AssessmentNotFound,
    InvalidRelation,
    InvalidTransition,
    MissingPrerequisite,
    TerminalState,
    Unauthorized,
    VerificationFailed,
    WorkflowError,
)
from claimflow.engine.events import StageChanged, stage_events
from claimflow.engine.stages import (
    RELATION_COLUMNS,
    Stage,
    can_transition,
    missing_relations,
    parse_stage,
    transition_tag,
)
from claimflow.models import Appointment, Assessment, AssessmentEstimate, Inspection
from claimflow.storage.history import record_safely

logger = logging.getLogger(__name__)

# status is written together with stage on entry to these stages
STAGE_STATUS: dict[Stage, str] = {
    Stage.CANCELLED: "cancelled",
    Stage.ARCHIVED: "archived",
}

RELATION_MODELS: dict[str, type] = {
    "appointment": Appointment,
    "inspection": Inspection,
    "estimate": AssessmentEstimate,
}


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Stage) else v) for k, v in values.items()}


async def _authorize(db: AsyncSession, actor: Actor, action: Action, assessment_id: str) -> None:
    context = await load_access_context(db, assessment_id)
    if not can_access(actor, action, context):
        logger.warning(
            "Denied %s on assessment %s for user %s (%s)",
            action.value,
            assessment_id,
            actor.user_id,
            actor.role,
        )
        raise Unauthorized(action.value, assessment_id)


async def _lock_assessment(db: AsyncSession, assessment_id: str) -> Assessment:
    result = await db.execute(
        select(Assessment)
        .where(Assessment.id == assessment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    assessment = result.scalar_one_or_none()
    if assessment is None:
        raise AssessmentNotFound(assessment_id)
    return assessment


async def _reload(db: AsyncSession, assessment_id: str) -> Assessment:
    result = await db.execute(
        select(Assessment)
        .where(Assessment.id == assessment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def read_stage_status(db: AsyncSession, assessment_id: str) -> dict[str, Any]:
    """Fresh read of the verified columns, bypassing the identity map."""
    result = await db.execute(
        select(Assessment.stage, Assessment.status).where(Assessment.id == assessment_id)
    )
    row = result.one_or_none()
    if row is None:
        return {}
    return {"stage": Stage(row.stage), "status": row.status}


def _stage_write_values(assessment: Assessment, target: Stage) -> dict[str, Any]:
    now = utcnow()
    values: dict[str, Any] = {
        "stage": target,
        "status": STAGE_STATUS.get(target, assessment.status),
        "updated_at": now,
    }
    if target is Stage.ASSESSMENT_IN_PROGRESS and assessment.started_at is None:
        values["started_at"] = now
    elif target is Stage.ESTIMATE_FINALIZED:
        values["estimate_finalized_at"] = now
    elif target is Stage.ARCHIVED:
        values["completed_at"] = now
    elif target is Stage.CANCELLED:
        values["cancelled_at"] = now
    return values


async def _write_stage(
    db: AsyncSession, assessment_id: str, expected_current: Stage, values: dict[str, Any]
) -> bool:
    """Conditional update; False when another writer moved the stage first."""
    result = await db.execute(
        update(Assessment)
        .where(Assessment.id == assessment_id, Assessment.stage == expected_current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _release(db: AsyncSession) -> None:
    if db.in_transaction():
        await db.rollback()


async def _verify_stage_write(
    db: AsyncSession, assessment_id: str, before: dict[str, Any], expected: dict[str, Any]
) -> None:
    observed = await read_stage_status(db, assessment_id)
    if any(observed.get(key) != value for key, value in expected.items()):
        logger.critical(
            "Stage write verification failed for assessment %s: before=%s expected=%s observed=%s",
            assessment_id,
            _plain(before),
            _plain(expected),
            _plain(observed),
        )
        await db.rollback()
        raise VerificationFailed(assessment_id, _plain(expected), _plain(observed))


async def transition(
    db: AsyncSession, assessment_id: str, target_stage: "str | Stage", actor: Actor
) -> Assessment:
    """Move an assessment to target_stage. Retry-safe.

    A rejected move rolls back, releasing the row lock taken for it.
    """
    target = parse_stage(target_stage)
    if target is None:
        raise InvalidTransition(None, str(target_stage), f"Unknown stage {target_stage!r}")

    try:
        return await _apply_transition(db, assessment_id, target, actor)
    except WorkflowError:
        await _release(db)
        raise


async def _apply_transition(
    db: AsyncSession, assessment_id: str, target: Stage, actor: Actor
) -> Assessment:
    await _authorize(db, actor, Action.WRITE, assessment_id)
    assessment = await _lock_assessment(db, assessment_id)
    current = Stage(assessment.stage)

    if current is target:
        logger.info("Assessment %s already at %s; nothing to do", assessment_id, target.value)
        await db.commit()
        return assessment
    if current.is_terminal:
        raise TerminalState(assessment_id, current.value)

    missing = missing_relations(assessment, target)
    if missing:
        raise MissingPrerequisite(target.value, missing)
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)

    if target in STAGE_ARTIFACTS:
        await ensure_artifacts(db, assessment_id, STAGE_ARTIFACTS[target], actor.user_id)

    before = {"stage": current, "status": assessment.status}
    values = _stage_write_values(assessment, target)
    if not await _write_stage(db, assessment_id, current, values):
        observed = await read_stage_status(db, assessment_id)
        if observed.get("stage") is target:
            logger.info(
                "Assessment %s reached %s through a concurrent request", assessment_id, target.value
            )
            await db.commit()
            return await _reload(db, assessment_id)
        observed_stage = observed.get("stage")
        raise InvalidTransition(
            observed_stage.value if observed_stage else None,
            target.value,
            f"Assessment {assessment_id} moved from {current.value} to "
            f"{observed_stage.value if observed_stage else 'unknown'} concurrently",
        )

    expected = {"stage": values["stage"], "status": values["status"]}
    await _verify_stage_write(db, assessment_id, before, expected)

    await record_safely(
        db,
        entity_type="assessments",
        entity_id=assessment_id,
        assessment_id=assessment_id,
        action=transition_tag(current, target),
        field_name="stage",
        old_value=current,
        new_value=target,
        changed_by=actor.user_id,
        metadata={"status": values["status"], "previous_status": assessment.status},
    )
    await db.commit()

    logger.info(
        "Assessment %s moved %s -> %s by %s",
        assessment_id,
        current.value,
        target.value,
        actor.user_id,
    )
    stage_events.publish(
        StageChanged(
            assessment_id=assessment_id,
            from_stage=current,
            to_stage=target,
            actor_id=actor.user_id,
        )
    )
    return await _reload(db, assessment_id)


async def cancel(db: AsyncSession, assessment_id: str, actor: Actor) -> Assessment:
    """Cancel an open assessment; stage and status are written together."""
    return await transition(db, assessment_id, Stage.CANCELLED, actor)


async def _load_relation_target(
    db: AsyncSession, assessment: Assessment, relation: str, relation_id: str
):
    model = RELATION_MODELS[relation]
    result = await db.execute(select(model).where(model.id == relation_id))
    target = result.scalar_one_or_none()
    if target is None:
        raise InvalidRelation(f"{relation} {relation_id} does not exist")

    if relation == "estimate":
        if target.assessment_id != assessment.id:
            raise InvalidRelation(
                f"estimate {relation_id} belongs to another assessment"
            )
    elif target.request_id != assessment.request_id:
        raise InvalidRelation(f"{relation} {relation_id} belongs to another request")

    if (
        relation == "appointment"
        and assessment.inspection_id is not None
        and target.inspection_id != assessment.inspection_id
    ):
        raise InvalidRelation(
            f"appointment {relation_id} is for a different inspection than the assessment"
        )
    if relation == "inspection" and assessment.appointment_id is not None:
        linked = await db.execute(
            select(Appointment.inspection_id).where(Appointment.id == assessment.appointment_id)
        )
        if linked.scalar_one_or_none() != relation_id:
            raise InvalidRelation(
                f"inspection {relation_id} is not the inspection of the linked appointment"
            )
    return target


async def link_relation(
    db: AsyncSession,
    assessment_id: str,
    relation: str,
    relation_id: str | None,
    actor: Actor,
) -> Assessment:
    """Link an appointment, inspection or estimate to an assessment."""
    column = RELATION_COLUMNS.get(relation)
    if column is None:
        raise InvalidRelation(
            f"Unknown relation {relation!r}; expected one of {sorted(RELATION_COLUMNS)}"
        )
    if not relation_id:
        raise InvalidRelation(f"{relation} cannot be unlinked once set")

    try:
        return await _apply_link(db, assessment_id, relation, relation_id, actor)
    except WorkflowError:
        await _release(db)
        raise


async def _apply_link(
    db: AsyncSession, assessment_id: str, relation: str, relation_id: str, actor: Actor
) -> Assessment:
    column = RELATION_COLUMNS[relation]
    await _authorize(db, actor, Action.WRITE, assessment_id)
    assessment = await _lock_assessment(db, assessment_id)
    if Stage(assessment.stage).is_terminal:
        raise TerminalState(assessment_id, Stage(assessment.stage).value)

    previous = getattr(assessment, column)
    if previous == relation_id:
        await db.commit()
        return assessment

    await _load_relation_target(db, assessment, relation, relation_id)

    await db.execute(
        update(Assessment)
        .where(Assessment.id == assessment_id)
        .values({column: relation_id, "updated_at": utcnow()})
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        select(getattr(Assessment, column)).where(Assessment.id == assessment_id)
    )
    observed = result.scalar_one_or_none()
    if observed != relation_id:
        logger.critical(
            "Relation write verification failed for assessment %s: %s before=%s expected=%s observed=%s",
            assessment_id,
            column,
            previous,
            relation_id,
            observed,
        )
        await db.rollback()
        raise VerificationFailed(assessment_id, {column: relation_id}, {column: observed})

    await record_safely(
        db,
        entity_type="assessments",
        entity_id=assessment_id,
        assessment_id=assessment_id,
        action="relation_linked",
        field_name=column,
        old_value=previous,
        new_value=relation_id,
        changed_by=actor.user_id,
        metadata={"relation": relation},
    )
    await db.commit()
    logger.info("Linked %s %s to assessment %s", relation, relation_id, assessment_id)
    return await _reload(db, assessment_id)
