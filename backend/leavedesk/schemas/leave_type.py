# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class CreateLeaveTypePayload(BaseModel):
    """Request body for creating a leave type."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    max_days_per_request: int | None = Field(default=None, gt=0)
    requires_documentation: bool = False
    active: bool = True


class UpdateLeaveTypePayload(BaseModel):
    """Partial update of a leave type. Omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    max_days_per_request: int | None = Field(default=None, gt=0)
    requires_documentation: bool | None = None
    active: bool | None = None


class LeaveTypeResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: str | None
    max_days_per_request: int | None
    requires_documentation: bool
    active: bool
    created_at: datetime


class LeaveTypeListResponse(BaseModel):
    items: list[LeaveTypeResponse]
    total: int
