"""Assessment endpoints - stage lists, transitions, relations, artifacts, history."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.auth.middleware import ActorDep
from claimflow.database import get_db
from claimflow.engine.artifacts import ArtifactSet, ensure_artifacts
from claimflow.engine.authorization import Action, Role, check_access
from claimflow.engine.errors import Unauthorized
from claimflow.engine.transitions import link_relation, transition
from claimflow.schemas.assessment import (
    ArtifactSetResponse,
    AssessmentResponse,
    AssessmentSummary,
    EnsureArtifactsRequest,
    HistoryEntryResponse,
    HistoryPage,
    LinkRelationRequest,
    TransitionRequest,
)
from claimflow.storage.history import query_by_assessment, query_history
from claimflow.storage.queries import count_by_stage, get_assessment_for, list_by_stage

router = APIRouter()


def _artifact_ids(artifact_set: ArtifactSet) -> dict:
    ids = {}
    for name, value in artifact_set.artifacts.items():
        if isinstance(value, list):
            ids[name] = {row.position: row.id for row in value}
        else:
            ids[name] = value.id
    return ids


def _page(entries, limit: int) -> HistoryPage:
    return HistoryPage(
        entries=[HistoryEntryResponse.model_validate(e) for e in entries],
        next_cursor=entries[-1].id if len(entries) == limit else None,
    )


@router.get("/assessments", response_model=list[AssessmentSummary])
async def list_assessments(
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    stage: Annotated[list[str], Query()],
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """Assessments in the given stages that the caller may see."""
    return await list_by_stage(db, stage, actor, limit=limit, offset=offset)


@router.get("/assessments/counts")
async def stage_counts(
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Visible assessments per stage (sidebar badges)."""
    return await count_by_stage(db, actor)


@router.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(
    assessment_id: str,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get one assessment."""
    return await get_assessment_for(db, assessment_id, actor)


@router.post("/assessments/{assessment_id}/transition", response_model=AssessmentResponse)
async def transition_assessment(
    assessment_id: str,
    body: TransitionRequest,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Move the assessment to target_stage.
    Repeating a call that already succeeded returns the assessment unchanged.
    """
    return await transition(db, assessment_id, body.target_stage, actor)


@router.post("/assessments/{assessment_id}/relations", response_model=AssessmentResponse)
async def link_assessment_relation(
    assessment_id: str,
    body: LinkRelationRequest,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Link an appointment, inspection or estimate."""
    return await link_relation(db, assessment_id, body.relation, body.relation_id, actor)


@router.post("/assessments/{assessment_id}/artifacts", response_model=ArtifactSetResponse)
async def provision_artifacts(
    assessment_id: str,
    body: EnsureArtifactsRequest,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create any missing child artifacts. Safe to repeat."""
    if not await check_access(db, actor, Action.WRITE, assessment_id):
        raise Unauthorized(Action.WRITE.value, assessment_id)
    try:
        artifact_set = await ensure_artifacts(
            db, assessment_id, body.artifacts or None, actor.user_id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    await db.commit()
    return ArtifactSetResponse(
        assessment_id=assessment_id,
        artifacts=_artifact_ids(artifact_set),
        created=artifact_set.created,
    )


@router.get("/assessments/{assessment_id}/history", response_model=HistoryPage)
async def assessment_history(
    assessment_id: str,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    after_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
):
    """History across every entity belonging to the assessment."""
    await get_assessment_for(db, assessment_id, actor)
    entries = await query_by_assessment(db, assessment_id, after_id=after_id, limit=limit)
    return _page(entries, limit)


@router.get("/history/{entity_type}/{entity_id}", response_model=HistoryPage)
async def entity_history(
    entity_type: str,
    entity_id: str,
    actor: ActorDep,
    db: Annotated[AsyncSession, Depends(get_db)],
    after_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
):
    """History of a single entity. Entries tied to an assessment need read access to it."""
    entries = await query_history(db, entity_type, entity_id, after_id=after_id, limit=limit)
    for assessment_id in {e.assessment_id for e in entries if e.assessment_id}:
        if not await check_access(db, actor, Action.READ, assessment_id):
            raise Unauthorized(Action.READ.value, assessment_id)
    unowned = entries and not any(e.assessment_id for e in entries)
    if unowned and actor.role != Role.ADMIN.value:
        raise Unauthorized(Action.READ.value, entity_id)
    return _page(entries, limit)
