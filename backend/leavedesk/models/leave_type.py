# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase


class LeaveType(UUIDBase, TimestampMixin, table=True):
    """Reference data for a kind of leave (e.g. Annual, Sick)."""

    __tablename__ = "leave_type"
    __table_args__ = (sa.UniqueConstraint("organization_id", "name", name="uq_leave_type_org_name"),)

    organization_id: uuid.UUID = Field(index=True)
    name: str = Field(max_length=255)
    description: str | None = None
    max_days_per_request: int | None = None
    requires_documentation: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
