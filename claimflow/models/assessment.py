"""Assessment model - the canonical case record."""

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.database import GUID, Base, new_id, utcnow
from claimflow.engine.stages import Stage


class Assessment(Base):
    """One per request; moved through its stages by the transition engine."""

    __tablename__ = "assessments"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    assessment_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    request_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("requests.id"), unique=True, nullable=False
    )
    stage: Mapped[Stage] = mapped_column(
        Enum(
            Stage,
            name="assessment_stage",
            values_callable=lambda stages: [s.value for s in stages],
            validate_strings=True,
        ),
        nullable=False,
        default=Stage.REQUEST_SUBMITTED,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active"
    )  # active|archived|cancelled

    # Nullable until the stage that needs them is reached; never reset to null
    appointment_id: Mapped[str | None] = mapped_column(
        GUID, ForeignKey("appointments.id"), nullable=True, index=True
    )
    inspection_id: Mapped[str | None] = mapped_column(
        GUID, ForeignKey("inspections.id"), nullable=True
    )
    estimate_id: Mapped[str | None] = mapped_column(
        GUID,
        ForeignKey("assessment_estimates.id", use_alter=True, name="fk_assessments_estimate_id"),
        nullable=True,
    )

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimate_finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<Assessment {self.assessment_number} stage={self.stage}>"
