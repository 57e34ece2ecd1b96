"""Tests for the child-artifact factory."""

import pytest
from sqlalchemy import select

from claimflow.engine import artifacts
from claimflow.engine.artifacts import (
    ARTIFACT_CREATORS,
    TYRE_POSITIONS,
    count_artifacts,
    ensure_artifacts,
)
from claimflow.engine.errors import AssessmentNotFound, PartialProvisioning, TerminalState
from claimflow.engine.stages import Stage
from claimflow.engine.transitions import cancel, link_relation, transition
from claimflow.models import (
    Assessment,
    AssessmentEstimate,
    AssessmentVehicleIdentification,
    HistoryEntry,
)


@pytest.mark.asyncio
async def test_repeated_calls_create_one_row_each(db, new_case):
    _, assessment = await new_case()

    first = await ensure_artifacts(db, assessment.id)
    await db.commit()
    for _ in range(3):
        again = await ensure_artifacts(db, assessment.id)
        await db.commit()
        assert again.created == []

    counts = await count_artifacts(db, assessment.id)
    assert counts["tyres"] == len(TYRE_POSITIONS)
    assert counts["frc"] == 0
    assert all(counts[name] == 1 for name in first.created if name != "tyres")
    assert [t.position for t in again["tyres"]] == [p for p, _ in TYRE_POSITIONS]


@pytest.mark.asyncio
async def test_new_estimate_gets_default_rates(db, new_case):
    _, assessment = await new_case()
    artifact_set = await ensure_artifacts(db, assessment.id, ["estimate"])
    estimate = artifact_set["estimate"]

    assert estimate.currency == "ZAR"
    assert estimate.vat_percentage == 15.0
    assert estimate.oem_markup_percentage == 25.0
    assert estimate.sundries_percentage == 1.0
    assert estimate.line_items == []


@pytest.mark.asyncio
async def test_each_created_artifact_is_logged(db, new_case):
    _, assessment = await new_case()
    await ensure_artifacts(db, assessment.id)
    await ensure_artifacts(db, assessment.id)

    result = await db.execute(
        select(HistoryEntry).where(
            HistoryEntry.assessment_id == assessment.id,
            HistoryEntry.action == "artifact_created",
        )
    )
    entries = result.scalars().all()
    # six 1:1 artifacts plus five tyres
    assert len(entries) == 11
    assert {e.entity_type for e in entries} >= {"assessment_tyres", "assessment_estimates"}


@pytest.mark.asyncio
async def test_unknown_artifact_and_assessment(db, new_case):
    _, assessment = await new_case()
    with pytest.raises(ValueError):
        await ensure_artifacts(db, assessment.id, ["photos"])
    with pytest.raises(AssessmentNotFound):
        await ensure_artifacts(db, "no-such-assessment")


@pytest.mark.asyncio
async def test_closed_assessment_gets_no_artifacts(db, actors, new_case):
    _, assessment = await new_case()
    await cancel(db, assessment.id, actors["admin"])

    with pytest.raises(TerminalState):
        await ensure_artifacts(db, assessment.id)
    counts = await count_artifacts(db, assessment.id)
    assert sum(counts.values()) == 0


@pytest.mark.asyncio
async def test_partial_failure_is_retryable(db, actors, new_case, book_visit, monkeypatch):
    request, assessment = await new_case()
    inspection, appointment = await book_visit(request)
    actor = actors["admin"]
    await transition(db, assessment.id, "request_reviewed", actor)
    await link_relation(db, assessment.id, "appointment", appointment.id, actor)
    await link_relation(db, assessment.id, "inspection", inspection.id, actor)
    await transition(db, assessment.id, "appointment_scheduled", actor)
    await transition(db, assessment.id, "inspection_scheduled", actor)

    async def damage_unavailable(session, assessment_id):
        raise RuntimeError("damage table locked")

    monkeypatch.setitem(ARTIFACT_CREATORS, "damage", damage_unavailable)
    with pytest.raises(PartialProvisioning) as exc_info:
        await transition(db, assessment.id, "assessment_in_progress", actor)

    assert set(exc_info.value.failed) == {"damage"}
    assert "tyres" in exc_info.value.succeeded
    counts = await count_artifacts(db, assessment.id)
    assert counts["damage"] == 0
    assert counts["tyres"] == 5
    result = await db.execute(select(Assessment.stage).where(Assessment.id == assessment.id))
    assert Stage(result.scalar_one()) is Stage.INSPECTION_SCHEDULED

    monkeypatch.undo()
    updated = await transition(db, assessment.id, "assessment_in_progress", actor)
    assert updated.stage is Stage.ASSESSMENT_IN_PROGRESS
    counts = await count_artifacts(db, assessment.id)
    assert counts["damage"] == 1
    assert counts["vehicle_identification"] == 1
    assert counts["tyres"] == 5


@pytest.mark.asyncio
async def test_lost_insert_race_returns_existing_row(db, new_case, monkeypatch):
    _, assessment = await new_case()
    existing = (await ensure_artifacts(db, assessment.id, ["vehicle_identification"]))[
        "vehicle_identification"
    ]
    await db.commit()

    real_fetch = artifacts._fetch_one
    calls = []

    async def miss_first_lookup(session, model, assessment_id):
        calls.append(model)
        if len(calls) == 1:
            return None
        return await real_fetch(session, model, assessment_id)

    monkeypatch.setattr(artifacts, "_fetch_one", miss_first_lookup)
    artifact_set = await ensure_artifacts(db, assessment.id, ["vehicle_identification"])

    assert artifact_set["vehicle_identification"].id == existing.id
    assert artifact_set.created == []
    result = await db.execute(
        select(AssessmentVehicleIdentification).where(
            AssessmentVehicleIdentification.assessment_id == assessment.id
        )
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_estimate_row_is_unique_per_assessment(db, new_case):
    _, assessment = await new_case()
    await ensure_artifacts(db, assessment.id, ["estimate", "estimate"])
    result = await db.execute(
        select(AssessmentEstimate).where(AssessmentEstimate.assessment_id == assessment.id)
    )
    assert len(result.scalars().all()) == 1
