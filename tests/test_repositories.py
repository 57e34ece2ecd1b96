"""Tests for request, inspection and appointment repositories."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from claimflow.database import new_id, utcnow
from claimflow.engine.stages import Stage
from claimflow.models import Assessment, HistoryEntry
from claimflow.storage.repositories import assign_engineer, get_assessment_by_request, get_request


@pytest.mark.asyncio
async def test_request_has_exactly_one_assessment(db, new_case):
    request, assessment = await new_case()

    db.add(
        Assessment(
            id=new_id(),
            assessment_number="ASM-DUPLICATE",
            request_id=request.id,
            stage=Stage.REQUEST_SUBMITTED,
            status="active",
        )
    )
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()

    found = await get_assessment_by_request(db, request.id)
    assert found.id == assessment.id


@pytest.mark.asyncio
async def test_numbers_count_up_within_the_year(db, new_case, book_visit):
    year = utcnow().year
    first_request, first = await new_case()
    second_request, second = await new_case()
    inspection, appointment = await book_visit(first_request)

    assert first_request.request_number == f"REQ-{year}-001"
    assert second_request.request_number == f"REQ-{year}-002"
    assert first.assessment_number == f"ASM-{year}-001"
    assert second.assessment_number == f"ASM-{year}-002"
    assert inspection.inspection_number == f"INS-{year}-001"
    assert appointment.appointment_number == f"APT-{year}-001"


@pytest.mark.asyncio
async def test_new_request_is_recorded_in_history(db, actors, new_case):
    request, assessment = await new_case()

    result = await db.execute(
        select(HistoryEntry)
        .where(HistoryEntry.assessment_id == assessment.id)
        .order_by(HistoryEntry.id)
    )
    entries = result.scalars().all()
    assert [(e.entity_type, e.action) for e in entries] == [
        ("requests", "created"),
        ("assessments", "created"),
    ]
    assert entries[0].entity_id == request.id
    assert all(e.changed_by == actors["admin"].user_id for e in entries)


@pytest.mark.asyncio
async def test_assign_engineer_records_previous_assignment(db, actors, new_case):
    request, assessment = await new_case(assigned_to="engineer_a")
    stored = await get_request(db, request.id)

    await assign_engineer(
        db, stored, actors["engineer_b"].engineer_id, changed_by=actors["admin"].user_id
    )
    await db.commit()

    result = await db.execute(
        select(HistoryEntry).where(
            HistoryEntry.assessment_id == assessment.id,
            HistoryEntry.action == "engineer_assigned",
        )
    )
    entry = result.scalar_one()
    assert entry.old_value == actors["engineer_a"].engineer_id
    assert entry.new_value == actors["engineer_b"].engineer_id
