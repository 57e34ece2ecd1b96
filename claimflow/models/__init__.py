"""Database models."""

from claimflow.models.user import Engineer, UserProfile
from claimflow.models.request import Appointment, Inspection, Request
from claimflow.models.assessment import Assessment
from claimflow.models.artifacts import (
    AssessmentDamage,
    AssessmentEstimate,
    AssessmentFrc,
    AssessmentInteriorMechanical,
    AssessmentTyre,
    AssessmentVehicleIdentification,
    AssessmentVehicleValues,
    PreIncidentEstimate,
)
from claimflow.models.history import HistoryEntry

__all__ = [
    "UserProfile",
    "Engineer",
    "Request",
    "Inspection",
    "Appointment",
    "Assessment",
    "AssessmentVehicleIdentification",
    "AssessmentInteriorMechanical",
    "AssessmentDamage",
    "AssessmentVehicleValues",
    "AssessmentEstimate",
    "PreIncidentEstimate",
    "AssessmentTyre",
    "AssessmentFrc",
    "HistoryEntry",
]
