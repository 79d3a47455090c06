# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase


class ApprovalRecord(UUIDBase, TimestampMixin, table=True):
    """Durable audit of a decision at one approval level. One row per (request, level)."""

    __tablename__ = "approval_record"
    __table_args__ = (
        sa.UniqueConstraint("request_id", "level", name="uq_approval_request_level"),
        sa.CheckConstraint("level IN (1, 2, 3)", name="ck_approval_level"),
    )

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    level: int
    approver_id: uuid.UUID
    status: str = Field(max_length=50)
    comments: str | None = None
    has_conflict: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    conflict_reason: str | None = None
    conflicting_parties: list[dict[str, Any]] | None = Field(default=None, sa_type=sa.JSON)
