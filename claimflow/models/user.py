"""User profile and engineer models."""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.database import GUID, Base, new_id, utcnow

ROLES = ("admin", "engineer", "read_only_finance")


class UserProfile(Base):
    """Authenticated user - one per API key."""

    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="engineer")
    api_key_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'engineer', 'read_only_finance')",
            name="ck_user_profiles_role",
        ),
    )


class Engineer(Base):
    """Field engineer; linked to a login through auth_user_id."""

    __tablename__ = "engineers"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    auth_user_id: Mapped[str | None] = mapped_column(
        GUID, ForeignKey("user_profiles.id"), unique=True, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
