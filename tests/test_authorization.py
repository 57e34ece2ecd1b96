"""Unit tests for the authorization evaluator."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from claimflow.engine.authorization import (
    AccessContext,
    Action,
    Actor,
    can_access,
    check_access,
    load_access_context,
)
from claimflow.engine.errors import AssessmentNotFound
from claimflow.engine.stages import Stage

ENGINEER = Actor(user_id="u-eng", role="engineer", engineer_id="eng-1")
OTHER_ENGINEER = Actor(user_id="u-eng-2", role="engineer", engineer_id="eng-2")


def _context(**overrides) -> AccessContext:
    values = {"assessment_id": "asm-1", "stage": Stage.REQUEST_SUBMITTED}
    values.update(overrides)
    return AccessContext(**values)


def test_admin_can_do_anything():
    admin = Actor(user_id="u-admin", role="admin")
    assert can_access(admin, Action.READ, _context())
    assert can_access(admin, Action.WRITE, _context())


def test_finance_reads_but_never_writes():
    finance = Actor(user_id="u-fin", role="read_only_finance")
    assert can_access(finance, Action.READ, _context())
    assert not can_access(finance, Action.WRITE, _context())


def test_engineer_sees_pending_assignment_before_appointment():
    context = _context(request_assigned_engineer_id="eng-1")
    assert can_access(ENGINEER, Action.READ, context)
    assert can_access(ENGINEER, Action.WRITE, context)
    assert not can_access(OTHER_ENGINEER, Action.READ, context)


def test_appointment_engineer_wins_once_linked():
    context = _context(
        stage=Stage.APPOINTMENT_SCHEDULED,
        appointment_id="apt-1",
        appointment_engineer_id="eng-2",
        request_assigned_engineer_id="eng-1",
    )
    assert can_access(OTHER_ENGINEER, Action.WRITE, context)
    assert not can_access(ENGINEER, Action.READ, context)


@pytest.mark.parametrize("appointment_id", [None, "apt-9"])
def test_unassigned_engineer_is_denied(appointment_id):
    context = _context(
        appointment_id=appointment_id,
        appointment_engineer_id="eng-2" if appointment_id else None,
    )
    assert not can_access(ENGINEER, Action.READ, context)


def test_engineer_without_engineer_record_is_denied():
    orphan = Actor(user_id="u-x", role="engineer")
    assert not can_access(orphan, Action.READ, _context(request_assigned_engineer_id=None))


def test_unknown_role_and_action_fail_closed():
    assert not can_access(Actor(user_id="u", role="auditor"), Action.READ, _context())
    admin = Actor(user_id="u-admin", role="admin")
    assert not can_access(admin, "delete", _context())


@pytest.mark.asyncio
async def test_check_access_denies_when_lookup_fails():
    db = AsyncMock()
    db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
    admin = Actor(user_id="u-admin", role="admin")
    assert await check_access(db, admin, Action.READ, "asm-1") is False


@pytest.mark.asyncio
async def test_check_access_denies_unknown_assessment(db, actors):
    assert await check_access(db, actors["admin"], Action.READ, "missing") is False
    with pytest.raises(AssessmentNotFound):
        await load_access_context(db, "missing")


@pytest.mark.asyncio
async def test_dual_check_against_database(db, actors, new_case, book_visit):
    """Scenario: pending assignment grants access; another case's appointment does not."""
    request, assessment = await new_case(assigned_to="engineer_a")
    other_request, other_assessment = await new_case(assigned_to="engineer_b")
    await book_visit(other_request, engineer="engineer_b")

    assert assessment.appointment_id is None
    assert await check_access(db, actors["engineer_a"], Action.READ, assessment.id)
    assert not await check_access(db, actors["engineer_a"], Action.READ, other_assessment.id)
    assert not await check_access(db, actors["engineer_b"], Action.WRITE, assessment.id)
