# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Path, Query

from leavedesk.api.deps import AdminDep, AuthDep, validate_organization_scope
from leavedesk.db import SessionDep
from leavedesk.schemas.balance import (
    AvailabilityResponse,
    EntitlementListResponse,
    EntitlementResponse,
    RoleDefaultListResponse,
    RoleDefaultResponse,
    SetOverridePayload,
    SetRoleDefaultPayload,
)
from leavedesk.services import conflict as conflict_service
from leavedesk.services import ledger as ledger_service

entitlement_router = APIRouter(
    prefix="/organizations/{organization_id}/staff/{staff_id}/entitlements",
    tags=["balances"],
    dependencies=[Depends(validate_organization_scope)],
)

override_router = APIRouter(
    prefix="/organizations/{organization_id}/staff/{staff_id}/balances",
    tags=["balances"],
    dependencies=[Depends(validate_organization_scope)],
)

availability_router = APIRouter(
    prefix="/organizations/{organization_id}/staff/{staff_id}/availability",
    tags=["balances"],
    dependencies=[Depends(validate_organization_scope)],
)

role_default_router = APIRouter(
    prefix="/organizations/{organization_id}/role-defaults",
    tags=["balances"],
    dependencies=[Depends(validate_organization_scope)],
)


@entitlement_router.get("", response_model=EntitlementListResponse)
async def list_staff_entitlements(
    staff_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> EntitlementListResponse:
    """Effective entitlements for every active leave type."""
    return await ledger_service.get_staff_entitlements(session, auth.organization_id, staff_id, year)


@entitlement_router.get("/{leave_type_id}", response_model=EntitlementResponse)
async def get_staff_entitlement(
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> EntitlementResponse:
    return await ledger_service.get_staff_entitlement(session, auth.organization_id, staff_id, leave_type_id, year)


@override_router.put("/{leave_type_id}/{year}", response_model=EntitlementResponse)
async def set_balance_override(
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    payload: SetOverridePayload,
    session: SessionDep,
    auth: AdminDep,
    year: int = Path(ge=2000, le=2100),
) -> EntitlementResponse:
    """Set an individual accrued total, replacing the role default (admin only)."""
    return await ledger_service.set_override(
        session,
        auth,
        staff_id=staff_id,
        leave_type_id=leave_type_id,
        year=year,
        new_accrued=payload.accrued,
    )


@availability_router.get("", response_model=AvailabilityResponse)
async def check_availability(
    staff_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    start: date = Query(),
    end: date = Query(),
) -> AvailabilityResponse:
    """Whether the staff member is free of pending or approved leave in [start, end]."""
    is_available, reason = await conflict_service.check_staff_availability(
        session, organization_id=auth.organization_id, staff_id=staff_id, start=start, end=end
    )
    return AvailabilityResponse(staff_id=staff_id, is_available=is_available, conflict_reason=reason)


@role_default_router.put("", response_model=RoleDefaultResponse)
async def set_role_default(
    payload: SetRoleDefaultPayload,
    session: SessionDep,
    auth: AdminDep,
) -> RoleDefaultResponse:
    """Create or update a role default entitlement (admin only)."""
    return await ledger_service.set_role_default(session, auth, payload)


@role_default_router.get("", response_model=RoleDefaultListResponse)
async def list_role_defaults(
    session: SessionDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> RoleDefaultListResponse:
    return await ledger_service.list_role_defaults(session, auth.organization_id, year)
