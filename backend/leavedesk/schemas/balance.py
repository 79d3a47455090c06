# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from leavedesk.models.enums import StaffRole

# ---------------------------------------------------------------------------
# Entitlement response schemas
# ---------------------------------------------------------------------------


class EntitlementResponse(BaseModel):
    """Effective entitlement for one staff member, leave type and year."""

    staff_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    accrued: int
    used: int
    balance: int
    is_override: bool  # False when synthesized from the role default


class EntitlementListResponse(BaseModel):
    items: list[EntitlementResponse]
    total: int


# ---------------------------------------------------------------------------
# Administrative payloads
# ---------------------------------------------------------------------------


class SetOverridePayload(BaseModel):
    """Request body for setting an individual balance override.

    Range checks against ``used`` happen in the ledger so the caller gets an
    explicit InvalidInput rather than a schema error.
    """

    accrued: int


class SetRoleDefaultPayload(BaseModel):
    """Request body for upserting a role default entitlement."""

    role: StaffRole
    leave_type_id: uuid.UUID
    year: int = Field(ge=2000, le=2100)
    default_days: int = Field(ge=0)


class RoleDefaultResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    role: StaffRole
    leave_type_id: uuid.UUID
    year: int
    default_days: int


class RoleDefaultListResponse(BaseModel):
    items: list[RoleDefaultResponse]
    total: int


class AvailabilityResponse(BaseModel):
    """Whether a staff member is free of pending/approved leave in a window."""

    staff_id: uuid.UUID
    is_available: bool
    conflict_reason: str | None = None
