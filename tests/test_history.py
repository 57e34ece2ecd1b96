"""Tests for the history ledger."""

import pytest

from claimflow.engine.stages import Stage
from claimflow.storage.history import (
    iter_history,
    query_by_assessment,
    query_history,
    record,
    record_safely,
)


@pytest.mark.asyncio
async def test_entries_come_back_in_insertion_order(db):
    for i in range(5):
        await record(
            db,
            entity_type="assessment_estimates",
            entity_id="est-1",
            action="updated",
            field_name="total",
            old_value=i * 100.0,
            new_value=(i + 1) * 100.0,
        )
    await db.commit()

    entries = await query_history(db, "assessment_estimates", "est-1")
    assert [e.new_value for e in entries] == ["100.0", "200.0", "300.0", "400.0", "500.0"]
    assert [e.id for e in entries] == sorted(e.id for e in entries)


@pytest.mark.asyncio
async def test_paging_with_cursor(db):
    for i in range(5):
        await record(db, entity_type="requests", entity_id="req-1", action=f"step_{i}")
    await db.commit()

    first = await query_history(db, "requests", "req-1", limit=2)
    second = await query_history(db, "requests", "req-1", after_id=first[-1].id, limit=2)
    assert [e.action for e in first] == ["step_0", "step_1"]
    assert [e.action for e in second] == ["step_2", "step_3"]

    walked = [e.action async for e in iter_history(db, "requests", "req-1", page_size=2)]
    assert walked == [f"step_{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_values_and_metadata_are_stored_as_text_and_json(db):
    entry = await record(
        db,
        entity_type="assessments",
        entity_id="asm-1",
        assessment_id="asm-1",
        action="request_reviewed→appointment_scheduled",
        field_name="stage",
        old_value=Stage.REQUEST_REVIEWED,
        new_value=Stage.APPOINTMENT_SCHEDULED,
        metadata={"status": "active", "tags": ("b", "a")},
    )
    assert entry.old_value == "request_reviewed"
    assert entry.new_value == "appointment_scheduled"
    assert entry.metadata_json == {"status": "active", "tags": ["b", "a"]}


@pytest.mark.asyncio
async def test_query_by_assessment_spans_entity_types(db):
    await record(db, entity_type="requests", entity_id="req-1", assessment_id="asm-1", action="created")
    await record(db, entity_type="assessments", entity_id="asm-1", assessment_id="asm-1", action="created")
    await record(db, entity_type="assessment_tyres", entity_id="tyre-1", assessment_id="asm-1", action="artifact_created")
    await record(db, entity_type="assessments", entity_id="asm-2", assessment_id="asm-2", action="created")
    await db.commit()

    entries = await query_by_assessment(db, "asm-1")
    assert [e.entity_type for e in entries] == ["requests", "assessments", "assessment_tyres"]


@pytest.mark.asyncio
async def test_record_safely_swallows_storage_errors(db):
    # action is NOT NULL; the failed insert is rolled back to its savepoint
    result = await record_safely(db, entity_type="requests", entity_id="req-1", action=None)
    assert result is None

    ok = await record_safely(db, entity_type="requests", entity_id="req-1", action="created")
    await db.commit()
    assert ok is not None
    assert [e.action for e in await query_history(db, "requests", "req-1")] == ["created"]
