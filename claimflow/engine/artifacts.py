"""Child-artifact factory.

Creates the satellite records an assessment needs once it reaches the stage
that uses them. Every creator is idempotent:

* 1:1 artifacts are check-then-create; losing an insert race to a concurrent
  creator (unique violation) re-fetches and returns the winner's row.
* Tyres are a fixed position set written with one upsert keyed by
  (assessment_id, position).
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from claimflow.config import settings
from claimflow.database import new_id, utcnow
from claimflow.engine.errors import AssessmentNotFound, PartialProvisioning, TerminalState
from claimflow.engine.stages import Stage
from claimflow.models import (
    Assessment,
    AssessmentDamage,
    AssessmentEstimate,
    AssessmentFrc,
    AssessmentInteriorMechanical,
    AssessmentTyre,
    AssessmentVehicleIdentification,
    AssessmentVehicleValues,
    PreIncidentEstimate,
)
from claimflow.storage.history import record_safely

logger = logging.getLogger(__name__)

TYRE_POSITIONS: tuple[tuple[str, str], ...] = (
    ("front_left", "Front Left"),
    ("front_right", "Front Right"),
    ("rear_left", "Rear Left"),
    ("rear_right", "Rear Right"),
    ("spare", "Spare"),
)

# Created on entry to the stage
STAGE_ARTIFACTS: dict[Stage, tuple[str, ...]] = {
    Stage.ASSESSMENT_IN_PROGRESS: (
        "vehicle_identification",
        "interior_mechanical",
        "damage",
        "vehicle_values",
        "estimate",
        "pre_incident_estimate",
        "tyres",
    ),
    Stage.FRC_IN_PROGRESS: ("frc",),
}

ONE_TO_ONE_MODELS: dict[str, type] = {
    "vehicle_identification": AssessmentVehicleIdentification,
    "interior_mechanical": AssessmentInteriorMechanical,
    "damage": AssessmentDamage,
    "vehicle_values": AssessmentVehicleValues,
    "estimate": AssessmentEstimate,
    "pre_incident_estimate": PreIncidentEstimate,
    "frc": AssessmentFrc,
}


def _estimate_defaults() -> dict[str, Any]:
    return {
        "currency": settings.default_currency,
        "vat_percentage": settings.default_vat_percentage,
        "oem_markup_percentage": settings.default_oem_markup_percentage,
        "alt_markup_percentage": settings.default_alt_markup_percentage,
        "second_hand_markup_percentage": settings.default_second_hand_markup_percentage,
        "outwork_markup_percentage": settings.default_outwork_markup_percentage,
        "line_items": [],
    }


def _defaults_for(name: str) -> dict[str, Any]:
    if name == "estimate":
        return {**_estimate_defaults(), "sundries_percentage": settings.default_sundries_percentage}
    if name == "pre_incident_estimate":
        return _estimate_defaults()
    if name == "damage":
        return {"damage_area": "non_structural", "damage_type": "collision", "affected_panels": []}
    if name == "vehicle_values":
        return {"extras": []}
    if name == "frc":
        return {"status": "not_started", "line_items": [], "line_items_version": 1}
    return {}


@dataclass
class ArtifactSet:
    """Artifacts for one assessment; tyres map to a list ordered by position."""

    assessment_id: str
    artifacts: dict[str, Any] = field(default_factory=dict)
    created: list[str] = field(default_factory=list)

    def __getitem__(self, name: str) -> Any:
        return self.artifacts[name]

    def __contains__(self, name: str) -> bool:
        return name in self.artifacts


# (row or rows, newly created rows)
CreatorResult = tuple[Any, list[Any]]
ArtifactCreator = Callable[[AsyncSession, str], Awaitable[CreatorResult]]


async def _fetch_one(db: AsyncSession, model: type, assessment_id: str):
    result = await db.execute(select(model).where(model.assessment_id == assessment_id))
    return result.scalar_one_or_none()


def one_to_one_creator(name: str) -> ArtifactCreator:
    """Check-then-create for a 1:1 artifact."""
    model = ONE_TO_ONE_MODELS[name]

    async def create(db: AsyncSession, assessment_id: str) -> CreatorResult:
        existing = await _fetch_one(db, model, assessment_id)
        if existing is not None:
            return existing, []
        row = model(id=new_id(), assessment_id=assessment_id, **_defaults_for(name))
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
        except IntegrityError:
            # Another writer created it between our check and insert
            existing = await _fetch_one(db, model, assessment_id)
            if existing is None:
                raise
            logger.info("%s for assessment %s already created concurrently", name, assessment_id)
            return existing, []
        return row, [row]

    return create


def _dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Upsert not supported for dialect {dialect}")


async def _fetch_tyres(db: AsyncSession, assessment_id: str) -> list[AssessmentTyre]:
    order = {position: i for i, (position, _) in enumerate(TYRE_POSITIONS)}
    result = await db.execute(
        select(AssessmentTyre).where(AssessmentTyre.assessment_id == assessment_id)
    )
    return sorted(result.scalars().all(), key=lambda t: order.get(t.position, len(order)))


async def upsert_tyres(db: AsyncSession, assessment_id: str) -> CreatorResult:
    """Insert-or-update all tyre positions in one statement."""
    before = {t.position for t in await _fetch_tyres(db, assessment_id)}
    now = utcnow()
    rows = [
        {
            "id": new_id(),
            "assessment_id": assessment_id,
            "position": position,
            "position_label": label,
            "created_at": now,
            "updated_at": now,
        }
        for position, label in TYRE_POSITIONS
    ]
    insert = _dialect_insert(db)
    stmt = insert(AssessmentTyre).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["assessment_id", "position"],
        set_={"position_label": stmt.excluded.position_label},
    )
    await db.execute(stmt)

    tyres = await _fetch_tyres(db, assessment_id)
    positions = {t.position for t in tyres}
    expected = {position for position, _ in TYRE_POSITIONS}
    if positions != expected or len(tyres) != len(expected):
        raise RuntimeError(
            f"Tyre set for assessment {assessment_id} is {sorted(positions)}, "
            f"expected {sorted(expected)}"
        )
    return tyres, [t for t in tyres if t.position not in before]


ARTIFACT_CREATORS: dict[str, ArtifactCreator] = {
    **{name: one_to_one_creator(name) for name in ONE_TO_ONE_MODELS},
    "tyres": upsert_tyres,
}

async def ensure_artifacts(
    db: AsyncSession,
    assessment_id: str,
    names: list[str] | tuple[str, ...] | None = None,
    actor_id: str | None = None,
) -> ArtifactSet:
    """Make sure each named artifact exists for the assessment.

    Defaults to the full set provisioned on entry to assessment_in_progress.
    Each artifact is created in its own savepoint. If any fail, the ones that
    succeeded are committed and PartialProvisioning is raised; calling again
    only creates what is still missing.
    """
    names = tuple(names) if names else STAGE_ARTIFACTS[Stage.ASSESSMENT_IN_PROGRESS]
    unknown = [n for n in names if n not in ARTIFACT_CREATORS]
    if unknown:
        raise ValueError(f"Unknown artifacts: {unknown}")

    found = await db.execute(select(Assessment.stage).where(Assessment.id == assessment_id))
    stage = found.scalar_one_or_none()
    if stage is None:
        raise AssessmentNotFound(assessment_id)
    if Stage(stage).is_terminal:
        raise TerminalState(assessment_id, Stage(stage).value)

    artifact_set = ArtifactSet(assessment_id=assessment_id)
    failed: dict[str, str] = {}
    for name in names:
        creator = ARTIFACT_CREATORS[name]
        try:
            async with db.begin_nested():
                value, new_rows = await creator(db, assessment_id)
        except Exception as exc:
            logger.error(
                "Provisioning %s failed for assessment %s: %s", name, assessment_id, exc
            )
            failed[name] = str(exc) or exc.__class__.__name__
            continue

        artifact_set.artifacts[name] = value
        if new_rows:
            artifact_set.created.append(name)
        for row in new_rows:
            await record_safely(
                db,
                entity_type=row.__tablename__,
                entity_id=row.id,
                assessment_id=assessment_id,
                action="artifact_created",
                changed_by=actor_id,
                metadata={"artifact": name, "position": getattr(row, "position", None)},
            )

    if failed:
        await db.commit()
        raise PartialProvisioning(
            assessment_id, succeeded=list(artifact_set.artifacts), failed=failed
        )

    if artifact_set.created:
        logger.info(
            "Provisioned %s for assessment %s", ", ".join(artifact_set.created), assessment_id
        )
    return artifact_set


async def count_artifacts(db: AsyncSession, assessment_id: str) -> dict[str, int]:
    """Rows per artifact for one assessment."""
    counts: dict[str, int] = {}
    models = {**ONE_TO_ONE_MODELS, "tyres": AssessmentTyre}
    for name, model in models.items():
        result = await db.execute(
            select(func.count()).select_from(model).where(model.assessment_id == assessment_id)
        )
        counts[name] = result.scalar_one()
    return counts
