# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase


class LeaveBalance(UUIDBase, TimestampMixin, table=True):
    """Individual balance override for one staff member, leave type and year.

    Rows only exist once an administrator edits the entitlement or a debit
    lands; otherwise the role default is synthesized on read.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.UniqueConstraint("staff_id", "leave_type_id", "year", name="uq_balance_staff_type_year"),
        sa.CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
        sa.CheckConstraint("balance = accrued - used", name="ck_balance_consistent"),
    )

    organization_id: uuid.UUID = Field(index=True)
    staff_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
    )
    year: int
    accrued: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    balance: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
