"""Initial schema - users, engineers, requests, assessments, artifacts, audit_logs.

Revision ID: 001
Revises:
Create Date: 2025-11-03

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ASSESSMENT_STAGES = (
    "request_submitted",
    "request_reviewed",
    "appointment_scheduled",
    "inspection_scheduled",
    "assessment_in_progress",
    "estimate_review",
    "estimate_sent",
    "estimate_finalized",
    "frc_in_progress",
    "archived",
    "cancelled",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _artifact_table(name: str, *columns: sa.Column, unique_assessment: bool = True) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column(
            "assessment_id",
            sa.UUID(),
            sa.ForeignKey("assessments.id"),
            nullable=False,
            unique=unique_assessment,
        ),
        *columns,
        *_timestamps(),
    )


def _estimate_columns() -> list[sa.Column]:
    return [
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("labour_rate", sa.Float(), nullable=True),
        sa.Column("paint_rate", sa.Float(), nullable=True),
        sa.Column("vat_percentage", sa.Float(), nullable=False),
        sa.Column("oem_markup_percentage", sa.Float(), nullable=False),
        sa.Column("alt_markup_percentage", sa.Float(), nullable=False),
        sa.Column("second_hand_markup_percentage", sa.Float(), nullable=False),
        sa.Column("outwork_markup_percentage", sa.Float(), nullable=False),
        sa.Column("line_items", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("subtotal", sa.Float(), nullable=False, server_default="0"),
        sa.Column("vat_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    stage_enum = sa.Enum(*ASSESSMENT_STAGES, name="assessment_stage")

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="engineer"),
        sa.Column("api_key_hash", sa.String(255), unique=True, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('admin', 'engineer', 'read_only_finance')",
            name="ck_user_profiles_role",
        ),
    )

    op.create_table(
        "engineers",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("auth_user_id", sa.UUID(), sa.ForeignKey("user_profiles.id"), unique=True, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "requests",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("request_number", sa.String(32), unique=True, nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="insurance"),
        sa.Column("claim_number", sa.Text(), nullable=True),
        sa.Column("owner_name", sa.Text(), nullable=True),
        sa.Column("vehicle_make", sa.Text(), nullable=True),
        sa.Column("vehicle_model", sa.Text(), nullable=True),
        sa.Column("vehicle_registration", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("assigned_engineer_id", sa.UUID(), sa.ForeignKey("engineers.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_requests_assigned_engineer_id", "requests", ["assigned_engineer_id"])

    op.create_table(
        "inspections",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("inspection_number", sa.String(32), unique=True, nullable=False),
        sa.Column("request_id", sa.UUID(), sa.ForeignKey("requests.id"), nullable=False),
        sa.Column("assigned_engineer_id", sa.UUID(), sa.ForeignKey("engineers.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("scheduled_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_inspections_request_id", "inspections", ["request_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("appointment_number", sa.String(32), unique=True, nullable=False),
        sa.Column("request_id", sa.UUID(), sa.ForeignKey("requests.id"), nullable=False),
        sa.Column("inspection_id", sa.UUID(), sa.ForeignKey("inspections.id"), nullable=False),
        sa.Column("engineer_id", sa.UUID(), sa.ForeignKey("engineers.id"), nullable=False),
        sa.Column("appointment_type", sa.String(20), nullable=False, server_default="in_person"),
        sa.Column("appointment_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("location_address", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_appointments_request_id", "appointments", ["request_id"])
    op.create_index("ix_appointments_engineer_id", "appointments", ["engineer_id"])

    op.create_table(
        "assessments",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("assessment_number", sa.String(32), unique=True, nullable=False),
        # One assessment per request
        sa.Column("request_id", sa.UUID(), sa.ForeignKey("requests.id"), unique=True, nullable=False),
        sa.Column("stage", stage_enum, nullable=False, server_default="request_submitted"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("appointment_id", sa.UUID(), sa.ForeignKey("appointments.id"), nullable=True),
        sa.Column("inspection_id", sa.UUID(), sa.ForeignKey("inspections.id"), nullable=True),
        sa.Column("estimate_id", sa.UUID(), nullable=True),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("estimate_finalized_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_assessments_stage", "assessments", ["stage"])
    op.create_index("ix_assessments_appointment_id", "assessments", ["appointment_id"])

    _artifact_table(
        "assessment_vehicle_identification",
        sa.Column("registration_number", sa.Text(), nullable=True),
        sa.Column("vin_number", sa.Text(), nullable=True),
        sa.Column("engine_number", sa.Text(), nullable=True),
        sa.Column("license_disc_expiry", sa.String(10), nullable=True),
    )
    _artifact_table(
        "assessment_interior_mechanical",
        sa.Column("mileage_reading", sa.Integer(), nullable=True),
        sa.Column("engine_condition", sa.String(20), nullable=True),
        sa.Column("transmission_condition", sa.String(20), nullable=True),
        sa.Column("interior_condition", sa.String(20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    _artifact_table(
        "assessment_damage",
        sa.Column("damage_area", sa.String(20), nullable=False, server_default="non_structural"),
        sa.Column("damage_type", sa.String(20), nullable=False, server_default="collision"),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("damage_description", sa.Text(), nullable=True),
        sa.Column("affected_panels", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("matches_description", sa.Boolean(), nullable=True),
    )
    _artifact_table(
        "assessment_vehicle_values",
        sa.Column("sourced_from", sa.Text(), nullable=True),
        sa.Column("trade_value", sa.Float(), nullable=True),
        sa.Column("market_value", sa.Float(), nullable=True),
        sa.Column("retail_value", sa.Float(), nullable=True),
        sa.Column("new_list_price", sa.Float(), nullable=True),
        sa.Column("extras", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("remarks", sa.Text(), nullable=True),
    )
    _artifact_table(
        "assessment_estimates",
        *_estimate_columns(),
        sa.Column("sundries_percentage", sa.Float(), nullable=False),
        sa.Column("assessment_result", sa.String(20), nullable=True),
    )
    _artifact_table("pre_incident_estimates", *_estimate_columns())
    _artifact_table(
        "assessment_tyres",
        sa.Column("position", sa.String(20), nullable=False),
        sa.Column("position_label", sa.String(50), nullable=True),
        sa.Column("tyre_make", sa.Text(), nullable=True),
        sa.Column("tyre_size", sa.Text(), nullable=True),
        sa.Column("tread_depth_mm", sa.Float(), nullable=True),
        sa.Column("condition", sa.String(20), nullable=True),
        unique_assessment=False,
    )
    op.create_unique_constraint(
        "uq_assessment_tyres_position", "assessment_tyres", ["assessment_id", "position"]
    )
    op.create_index("ix_assessment_tyres_assessment_id", "assessment_tyres", ["assessment_id"])
    _artifact_table(
        "assessment_frc",
        sa.Column("status", sa.String(20), nullable=False, server_default="not_started"),
        sa.Column("line_items", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("line_items_version", sa.Integer(), nullable=False, server_default="1"),
    )

    # assessments <-> assessment_estimates reference each other
    op.create_foreign_key(
        "fk_assessments_estimate_id",
        "assessments",
        "assessment_estimates",
        ["estimate_id"],
        ["id"],
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("assessment_id", sa.UUID(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("field_name", sa.String(64), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id", "id"])
    op.create_index("ix_audit_logs_assessment_id", "audit_logs", ["assessment_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_assessment_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_constraint("fk_assessments_estimate_id", "assessments", type_="foreignkey")
    op.drop_table("assessment_frc")
    op.drop_table("assessment_tyres")
    op.drop_table("pre_incident_estimates")
    op.drop_table("assessment_estimates")
    op.drop_table("assessment_vehicle_values")
    op.drop_table("assessment_damage")
    op.drop_table("assessment_interior_mechanical")
    op.drop_table("assessment_vehicle_identification")
    op.drop_table("assessments")
    op.drop_table("appointments")
    op.drop_table("inspections")
    op.drop_table("requests")
    op.drop_table("engineers")
    op.drop_table("user_profiles")
    sa.Enum(name="assessment_stage").drop(op.get_bind(), checkfirst=True)
