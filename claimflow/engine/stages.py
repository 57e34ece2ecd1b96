"""Assessment stages, the transition allow-list and per-stage prerequisites.

Everything the transition engine needs to decide whether a move is legal lives
here as static tables. Stages are not user-definable.
"""

from enum import Enum


class Stage(str, Enum):
    """Lifecycle stage of an assessment, in pipeline order."""

    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_REVIEWED = "request_reviewed"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    ASSESSMENT_IN_PROGRESS = "assessment_in_progress"
    ESTIMATE_REVIEW = "estimate_review"
    ESTIMATE_SENT = "estimate_sent"
    ESTIMATE_FINALIZED = "estimate_finalized"
    FRC_IN_PROGRESS = "frc_in_progress"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES

    @property
    def order(self) -> int:
        """Position in the pipeline; cancelled sorts after archived."""
        return STAGE_ORDER.index(self)


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)

TERMINAL_STAGES = frozenset({Stage.ARCHIVED, Stage.CANCELLED})

ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.REQUEST_SUBMITTED: frozenset({Stage.REQUEST_REVIEWED, Stage.CANCELLED}),
    Stage.REQUEST_REVIEWED: frozenset({Stage.APPOINTMENT_SCHEDULED, Stage.CANCELLED}),
    Stage.APPOINTMENT_SCHEDULED: frozenset({Stage.INSPECTION_SCHEDULED, Stage.CANCELLED}),
    Stage.INSPECTION_SCHEDULED: frozenset({Stage.ASSESSMENT_IN_PROGRESS, Stage.CANCELLED}),
    Stage.ASSESSMENT_IN_PROGRESS: frozenset({Stage.ESTIMATE_REVIEW, Stage.CANCELLED}),
    Stage.ESTIMATE_REVIEW: frozenset(
        {Stage.ESTIMATE_SENT, Stage.ASSESSMENT_IN_PROGRESS, Stage.CANCELLED}
    ),
    Stage.ESTIMATE_SENT: frozenset(
        {Stage.ESTIMATE_FINALIZED, Stage.ESTIMATE_REVIEW, Stage.CANCELLED}
    ),
    Stage.ESTIMATE_FINALIZED: frozenset({Stage.FRC_IN_PROGRESS, Stage.ARCHIVED}),
    Stage.FRC_IN_PROGRESS: frozenset({Stage.ARCHIVED}),
    Stage.ARCHIVED: frozenset(),
    Stage.CANCELLED: frozenset(),
}

# Backward edges that are part of the contract.
REWORK_TRANSITIONS = frozenset(
    {
        (Stage.ESTIMATE_REVIEW, Stage.ASSESSMENT_IN_PROGRESS),
        (Stage.ESTIMATE_SENT, Stage.ESTIMATE_REVIEW),
    }
)

# Relation name -> assessment column.
RELATION_COLUMNS: dict[str, str] = {
    "appointment": "appointment_id",
    "inspection": "inspection_id",
    "estimate": "estimate_id",
}

_SCHEDULED = ("appointment",)
_INSPECTED = ("appointment", "inspection")
_ESTIMATED = ("appointment", "inspection", "estimate")

STAGE_REQUIREMENTS: dict[Stage, tuple[str, ...]] = {
    Stage.REQUEST_SUBMITTED: (),
    Stage.REQUEST_REVIEWED: (),
    Stage.APPOINTMENT_SCHEDULED: _SCHEDULED,
    Stage.INSPECTION_SCHEDULED: _INSPECTED,
    Stage.ASSESSMENT_IN_PROGRESS: _INSPECTED,
    Stage.ESTIMATE_REVIEW: _ESTIMATED,
    Stage.ESTIMATE_SENT: _ESTIMATED,
    Stage.ESTIMATE_FINALIZED: _ESTIMATED,
    Stage.FRC_IN_PROGRESS: _ESTIMATED,
    Stage.ARCHIVED: _ESTIMATED,
    Stage.CANCELLED: (),
}


def parse_stage(value: "str | Stage") -> Stage | None:
    """Return the Stage for value, or None if it is not a known stage."""
    if isinstance(value, Stage):
        return value
    try:
        return Stage(value)
    except ValueError:
        return None


def can_transition(current: Stage, target: Stage) -> bool:
    """Definitive legality check against the allow-list."""
    return target in ALLOWED_TRANSITIONS[current]


def is_rework(current: Stage, target: Stage) -> bool:
    return (current, target) in REWORK_TRANSITIONS


def required_relations(stage: Stage) -> tuple[str, ...]:
    return STAGE_REQUIREMENTS[stage]


def missing_relations(assessment, stage: Stage) -> list[str]:
    """Relations required by stage that are still unset on assessment."""
    return [
        name
        for name in STAGE_REQUIREMENTS[stage]
        if getattr(assessment, RELATION_COLUMNS[name]) is None
    ]


def transition_tag(from_stage: Stage, to_stage: Stage) -> str:
    """History action tag for a stage change."""
    return f"{Stage(from_stage).value}→{Stage(to_stage).value}"


def is_progression(from_stage: Stage, to_stage: Stage) -> bool:
    """True for forward moves, declared rework edges and cancellation."""
    if to_stage is Stage.CANCELLED:
        return True
    if is_rework(from_stage, to_stage):
        return True
    return to_stage.order >= from_stage.order
