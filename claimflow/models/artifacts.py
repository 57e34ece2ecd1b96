"""Per-assessment child artifacts.

1:1 artifacts are unique on assessment_id; tyres are unique on
(assessment_id, position).
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.database import GUID, JSONType, Base, new_id, utcnow


class _ArtifactColumns:
    """Columns shared by every artifact table."""

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class AssessmentVehicleIdentification(_ArtifactColumns, Base):
    __tablename__ = "assessment_vehicle_identification"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    registration_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    vin_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    engine_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    license_disc_expiry: Mapped[str | None] = mapped_column(String(10), nullable=True)


class AssessmentInteriorMechanical(_ArtifactColumns, Base):
    __tablename__ = "assessment_interior_mechanical"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    mileage_reading: Mapped[int | None] = mapped_column(Integer, nullable=True)
    engine_condition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transmission_condition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    interior_condition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class AssessmentDamage(_ArtifactColumns, Base):
    __tablename__ = "assessment_damage"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    damage_area: Mapped[str] = mapped_column(String(20), nullable=False, default="non_structural")
    damage_type: Mapped[str] = mapped_column(String(20), nullable=False, default="collision")
    severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    damage_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_panels: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    matches_description: Mapped[bool | None] = mapped_column(nullable=True)


class AssessmentVehicleValues(_ArtifactColumns, Base):
    __tablename__ = "assessment_vehicle_values"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    sourced_from: Mapped[str | None] = mapped_column(Text, nullable=True)
    trade_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    market_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    retail_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_list_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    extras: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)


class _EstimateColumns:
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    labour_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    paint_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    vat_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    oem_markup_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    alt_markup_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    second_hand_markup_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    outwork_markup_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    line_items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    vat_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class AssessmentEstimate(_ArtifactColumns, _EstimateColumns, Base):
    __tablename__ = "assessment_estimates"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    sundries_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    assessment_result: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # repair|code_2|code_3|total_loss


class PreIncidentEstimate(_ArtifactColumns, _EstimateColumns, Base):
    __tablename__ = "pre_incident_estimates"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )


class AssessmentTyre(_ArtifactColumns, Base):
    __tablename__ = "assessment_tyres"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), nullable=False, index=True
    )
    position: Mapped[str] = mapped_column(String(20), nullable=False)
    position_label: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tyre_make: Mapped[str | None] = mapped_column(Text, nullable=True)
    tyre_size: Mapped[str | None] = mapped_column(Text, nullable=True)
    tread_depth_mm: Mapped[float | None] = mapped_column(Float, nullable=True)
    condition: Mapped[str | None] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        UniqueConstraint("assessment_id", "position", name="uq_assessment_tyres_position"),
    )


class AssessmentFrc(_ArtifactColumns, Base):
    """Final repair costing, opened once the estimate is finalized."""

    __tablename__ = "assessment_frc"

    assessment_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("assessments.id"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_started")
    line_items: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    line_items_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
