"""Unit tests for the stage tables."""

from types import SimpleNamespace

import pytest

from claimflow.engine.stages import (
    ALLOWED_TRANSITIONS,
    REWORK_TRANSITIONS,
    Stage,
    can_transition,
    is_progression,
    is_rework,
    missing_relations,
    parse_stage,
    required_relations,
    transition_tag,
)


def test_every_stage_has_an_allow_list_entry():
    assert set(ALLOWED_TRANSITIONS) == set(Stage)


def test_terminal_stages_have_no_exits():
    for stage in (Stage.ARCHIVED, Stage.CANCELLED):
        assert stage.is_terminal
        assert ALLOWED_TRANSITIONS[stage] == frozenset()
    assert not Stage.FRC_IN_PROGRESS.is_terminal


def test_cancel_only_before_estimate_finalized():
    cancellable = {s for s, targets in ALLOWED_TRANSITIONS.items() if Stage.CANCELLED in targets}
    assert cancellable == {
        Stage.REQUEST_SUBMITTED,
        Stage.REQUEST_REVIEWED,
        Stage.APPOINTMENT_SCHEDULED,
        Stage.INSPECTION_SCHEDULED,
        Stage.ASSESSMENT_IN_PROGRESS,
        Stage.ESTIMATE_REVIEW,
        Stage.ESTIMATE_SENT,
    }


def test_rework_edges_are_allowed():
    for current, target in REWORK_TRANSITIONS:
        assert can_transition(current, target)
        assert is_rework(current, target)
    assert not is_rework(Stage.ESTIMATE_FINALIZED, Stage.ESTIMATE_SENT)


@pytest.mark.parametrize(
    "current,target",
    [
        (Stage.REQUEST_SUBMITTED, Stage.APPOINTMENT_SCHEDULED),
        (Stage.APPOINTMENT_SCHEDULED, Stage.ASSESSMENT_IN_PROGRESS),
        (Stage.ESTIMATE_FINALIZED, Stage.CANCELLED),
        (Stage.FRC_IN_PROGRESS, Stage.ESTIMATE_FINALIZED),
        (Stage.ARCHIVED, Stage.REQUEST_SUBMITTED),
    ],
)
def test_illegal_moves(current, target):
    assert not can_transition(current, target)


def test_every_edge_is_forward_rework_or_cancel():
    for current, targets in ALLOWED_TRANSITIONS.items():
        for target in targets:
            assert is_progression(current, target)


def test_requirements_are_cumulative():
    assert required_relations(Stage.REQUEST_REVIEWED) == ()
    assert required_relations(Stage.APPOINTMENT_SCHEDULED) == ("appointment",)
    assert set(required_relations(Stage.INSPECTION_SCHEDULED)) == {"appointment", "inspection"}
    for stage in (Stage.ESTIMATE_REVIEW, Stage.ESTIMATE_FINALIZED, Stage.ARCHIVED):
        assert set(required_relations(stage)) == {"appointment", "inspection", "estimate"}
    assert required_relations(Stage.CANCELLED) == ()


def test_missing_relations_reads_assessment_columns():
    assessment = SimpleNamespace(appointment_id="apt-1", inspection_id=None, estimate_id=None)
    assert missing_relations(assessment, Stage.APPOINTMENT_SCHEDULED) == []
    assert missing_relations(assessment, Stage.ESTIMATE_REVIEW) == ["inspection", "estimate"]


def test_parse_stage():
    assert parse_stage("estimate_sent") is Stage.ESTIMATE_SENT
    assert parse_stage(Stage.ARCHIVED) is Stage.ARCHIVED
    assert parse_stage("closed") is None


def test_transition_tag():
    tag = transition_tag(Stage.REQUEST_REVIEWED, Stage.APPOINTMENT_SCHEDULED)
    assert tag == "request_reviewed→appointment_scheduled"
