# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leavedesk.api.deps import AdminDep, AuthDep, validate_organization_scope
from leavedesk.db import SessionDep
from leavedesk.schemas.leave_type import (
    CreateLeaveTypePayload,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    UpdateLeaveTypePayload,
)
from leavedesk.services import leave_type as leave_type_service

leave_types_router = APIRouter(
    prefix="/organizations/{organization_id}/leave-types",
    tags=["leave-types"],
    dependencies=[Depends(validate_organization_scope)],
)


@leave_types_router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypePayload,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Create a leave type (admin only)."""
    return await leave_type_service.create_leave_type(session, auth, payload)


@leave_types_router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    auth: AuthDep,
    active_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveTypeListResponse:
    return await leave_type_service.list_leave_types(session, auth.organization_id, active_only, offset, limit)


@leave_types_router.get("/{leave_type_id}", response_model=LeaveTypeResponse)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveTypeResponse:
    return await leave_type_service.get_leave_type(session, auth.organization_id, leave_type_id)


@leave_types_router.patch("/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypePayload,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Partially update a leave type (admin only)."""
    return await leave_type_service.update_leave_type(session, auth, leave_type_id, payload)
