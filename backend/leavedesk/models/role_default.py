# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase


class RoleDefault(UUIDBase, TimestampMixin, table=True):
    """Entitlement a role receives for a leave type in a year, absent an individual override."""

    __tablename__ = "role_default"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id",
            "role",
            "leave_type_id",
            "year",
            name="uq_role_default_org_role_type_year",
        ),
    )

    organization_id: uuid.UUID = Field(index=True)
    role: str = Field(max_length=50)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
    )
    year: int
    default_days: int = Field(ge=0)
