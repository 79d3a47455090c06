# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase
from leavedesk.models.enums import RequestStatus, SegmentStatus


class LeaveRequest(UUIDBase, TimestampMixin, table=True):
    """A staff member's leave request with its approval workflow state."""

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_request_org_status", "organization_id", "status"),
        sa.Index("ix_request_department_status", "department_id", "status"),
    )

    organization_id: uuid.UUID = Field(index=True)
    staff_id: uuid.UUID = Field(index=True)
    department_id: uuid.UUID
    facility_id: uuid.UUID | None = None
    workspace_id: uuid.UUID | None = None
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="RESTRICT"), nullable=False, index=True),
    )
    status: str = Field(default=RequestStatus.DRAFT, max_length=50, sa_column_kwargs={"server_default": "draft"})
    routing_scope: str | None = Field(default=None, max_length=50)
    total_days: int = 0
    notes: str | None = None
    created_by: uuid.UUID
    submitted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: uuid.UUID | None = None
    decision_note: str | None = None
    is_direct: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})


class LeaveSegment(UUIDBase, table=True):
    """One contiguous, inclusive date range within a leave request."""

    __tablename__ = "leave_segment"
    __table_args__ = (
        sa.Index("ix_segment_dates", "start_date", "end_date"),
        sa.CheckConstraint("end_date >= start_date", name="ck_segment_date_order"),
    )

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    position: int = 0
    start_date: date
    end_date: date
    days: int
    status: str = Field(default=SegmentStatus.PENDING, max_length=50, sa_column_kwargs={"server_default": "pending"})
