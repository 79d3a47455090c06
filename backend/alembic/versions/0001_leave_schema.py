"""leave schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "leave_type",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("max_days_per_request", sa.Integer(), nullable=True),
        sa.Column("requires_documentation", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "name", name="uq_leave_type_org_name"),
    )

    op.create_table(
        "role_default",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("default_days", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "organization_id", "role", "leave_type_id", "year", name="uq_role_default_org_role_type_year"
        ),
    )

    op.create_table(
        "leave_balance",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("staff_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("accrued", sa.Integer(), server_default="0", nullable=False),
        sa.Column("used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("balance", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("staff_id", "leave_type_id", "year", name="uq_balance_staff_type_year"),
        sa.CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
        sa.CheckConstraint("balance = accrued - used", name="ck_balance_consistent"),
    )

    op.create_table(
        "leave_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("staff_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("department_id", sa.Uuid(), nullable=False),
        sa.Column("facility_id", sa.Uuid(), nullable=True),
        sa.Column("workspace_id", sa.Uuid(), nullable=True),
        sa.Column(
            "leave_type_id",
            sa.Uuid(),
            sa.ForeignKey("leave_type.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("status", sa.String(length=50), server_default="draft", nullable=False),
        sa.Column("routing_scope", sa.String(length=50), nullable=True),
        sa.Column("total_days", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.Uuid(), nullable=True),
        sa.Column("decision_note", sa.String(), nullable=True),
        sa.Column("is_direct", sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_request_org_status", "leave_request", ["organization_id", "status"])
    op.create_index("ix_request_department_status", "leave_request", ["department_id", "status"])

    op.create_table(
        "leave_segment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("leave_request.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=50), server_default="pending", nullable=False),
        sa.CheckConstraint("end_date >= start_date", name="ck_segment_date_order"),
    )
    op.create_index("ix_segment_dates", "leave_segment", ["start_date", "end_date"])

    op.create_table(
        "approval_record",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "request_id",
            sa.Uuid(),
            sa.ForeignKey("leave_request.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("comments", sa.String(), nullable=True),
        sa.Column("has_conflict", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("conflict_reason", sa.String(), nullable=True),
        sa.Column("conflicting_parties", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("request_id", "level", name="uq_approval_request_level"),
        sa.CheckConstraint("level IN (1, 2, 3)", name="ck_approval_level"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("approval_record")
    op.drop_table("leave_segment")
    op.drop_table("leave_request")
    op.drop_table("leave_balance")
    op.drop_table("role_default")
    op.drop_table("leave_type")
