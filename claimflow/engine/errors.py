"""Workflow error taxonomy."""


class WorkflowError(Exception):
    """Base class for errors raised by the workflow engine."""


class AssessmentNotFound(WorkflowError):
    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"Assessment {assessment_id} not found")


class InvalidTransition(WorkflowError):
    """Requested stage is not reachable from the current stage."""

    def __init__(self, current: str | None, target: str, reason: str | None = None):
        self.current = current
        self.target = target
        message = reason or f"Cannot transition from {current} to {target}"
        super().__init__(message)


class MissingPrerequisite(WorkflowError):
    """A relation required by the target stage is not linked yet."""

    def __init__(self, target: str, missing: list[str]):
        self.target = target
        self.missing = list(missing)
        super().__init__(
            f"Stage {target} requires {', '.join(self.missing)} to be linked first"
        )


class PartialProvisioning(WorkflowError):
    """One or more child artifacts could not be created. Safe to retry."""

    def __init__(self, assessment_id: str, succeeded: list[str], failed: dict[str, str]):
        self.assessment_id = assessment_id
        self.succeeded = list(succeeded)
        self.failed = dict(failed)
        super().__init__(
            f"Provisioning incomplete for assessment {assessment_id}: "
            f"failed={sorted(self.failed)} succeeded={self.succeeded}"
        )


class VerificationFailed(WorkflowError):
    """Re-read after a write did not return the written values."""

    def __init__(self, assessment_id: str, expected: dict, observed: dict):
        self.assessment_id = assessment_id
        self.expected = dict(expected)
        self.observed = dict(observed)
        super().__init__(
            f"Write verification failed for assessment {assessment_id}: "
            f"expected {self.expected}, observed {self.observed}"
        )


class TerminalState(WorkflowError):
    def __init__(self, assessment_id: str, stage: str):
        self.assessment_id = assessment_id
        self.stage = stage
        super().__init__(f"Assessment {assessment_id} is {stage} and cannot be changed")


class Unauthorized(WorkflowError):
    def __init__(self, action: str, assessment_id: str):
        self.action = action
        self.assessment_id = assessment_id
        super().__init__(f"Not allowed to {action} assessment {assessment_id}")


class InvalidRelation(WorkflowError):
    """Relation cannot be linked (unknown name, missing row, wrong owner)."""
