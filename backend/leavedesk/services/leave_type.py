# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leavedesk.exceptions import AppError, NotFound
from leavedesk.models.base import now_utc
from leavedesk.models.enums import AuditAction, AuditEntityType
from leavedesk.models.leave_type import LeaveType
from leavedesk.schemas.leave_type import LeaveTypeListResponse, LeaveTypeResponse
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.repository import commit_or_fail, flush_or_fail

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.leave_type import CreateLeaveTypePayload, UpdateLeaveTypePayload


def _build_leave_type_response(leave_type: LeaveType) -> LeaveTypeResponse:
    return LeaveTypeResponse(
        id=leave_type.id,
        organization_id=leave_type.organization_id,
        name=leave_type.name,
        description=leave_type.description,
        max_days_per_request=leave_type.max_days_per_request,
        requires_documentation=leave_type.requires_documentation,
        active=leave_type.active,
        created_at=leave_type.created_at,
    )


async def _get_leave_type_or_404(
    session: AsyncSession,
    organization_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveType:
    result = await session.execute(
        select(LeaveType).where(
            col(LeaveType.id) == leave_type_id,
            col(LeaveType.organization_id) == organization_id,
        )
    )
    leave_type = result.scalar_one_or_none()
    if leave_type is None:
        raise NotFound("Leave type not found")
    return leave_type


async def _ensure_name_available(
    session: AsyncSession,
    organization_id: uuid.UUID,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    query = select(LeaveType).where(
        col(LeaveType.organization_id) == organization_id,
        col(LeaveType.name) == name,
    )
    if exclude_id is not None:
        query = query.where(col(LeaveType.id) != exclude_id)
    existing = await session.execute(query)
    if existing.scalar_one_or_none() is not None:
        raise AppError("Leave type with this name already exists for this organization", status_code=409)


async def create_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeaveTypePayload,
) -> LeaveTypeResponse:
    """Create a leave type for the caller's organization."""
    await _ensure_name_available(session, auth.organization_id, payload.name)

    leave_type = LeaveType(organization_id=auth.organization_id, **payload.model_dump())
    session.add(leave_type)
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(leave_type),
    )
    await commit_or_fail(session)
    return _build_leave_type_response(leave_type)


async def get_leave_type(
    session: AsyncSession,
    organization_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveTypeResponse:
    leave_type = await _get_leave_type_or_404(session, organization_id, leave_type_id)
    return _build_leave_type_response(leave_type)


async def list_leave_types(
    session: AsyncSession,
    organization_id: uuid.UUID,
    active_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> LeaveTypeListResponse:
    """List leave types of an organization ordered by name."""
    filters = [col(LeaveType.organization_id) == organization_id]
    if active_only:
        filters.append(col(LeaveType.active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(LeaveType).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveType).where(*filters).order_by(col(LeaveType.name)).offset(offset).limit(limit)
    )
    items = [_build_leave_type_response(lt) for lt in result.scalars().all()]
    return LeaveTypeListResponse(items=items, total=total)


async def update_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypePayload,
) -> LeaveTypeResponse:
    """Apply a partial update. Deactivating a type does not touch existing requests."""
    leave_type = await _get_leave_type_or_404(session, auth.organization_id, leave_type_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is not None and changes["name"] != leave_type.name:
        await _ensure_name_available(session, auth.organization_id, changes["name"], exclude_id=leave_type.id)

    before = model_to_audit_dict(leave_type)
    for field, value in changes.items():
        if value is None and field in ("name", "requires_documentation", "active"):
            continue
        setattr(leave_type, field, value)
    leave_type.updated_at = now_utc()
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(leave_type),
    )
    await commit_or_fail(session)
    return _build_leave_type_response(leave_type)
