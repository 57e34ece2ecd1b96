"""Request, inspection and appointment models."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.database import GUID, Base, new_id, utcnow


class Request(Base):
    """Incoming claim request. Owns exactly one assessment."""

    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    request_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="insurance")
    claim_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_make: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_registration: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="submitted")
    # Pending assignment: who should see the case before an appointment exists
    assigned_engineer_id: Mapped[str | None] = mapped_column(
        GUID, ForeignKey("engineers.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Inspection(Base):
    """Inspection raised from a reviewed request."""

    __tablename__ = "inspections"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    inspection_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    request_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("requests.id"), nullable=False, index=True
    )
    assigned_engineer_id: Mapped[str | None] = mapped_column(
        GUID, ForeignKey("engineers.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    scheduled_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Appointment(Base):
    """Engineer visit booked against an inspection."""

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    appointment_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    request_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("requests.id"), nullable=False, index=True
    )
    inspection_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("inspections.id"), nullable=False
    )
    engineer_id: Mapped[str] = mapped_column(
        GUID, ForeignKey("engineers.id"), nullable=False, index=True
    )
    appointment_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="in_person"
    )  # in_person|digital
    appointment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
