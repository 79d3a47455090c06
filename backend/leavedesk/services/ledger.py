"""Balance ledger: effective entitlements, administrator overrides and debits.

A ``LeaveBalance`` row is an individual override. Without one, the
entitlement is synthesized from the matching ``RoleDefault`` on every read
and never written back until an administrator edits it or a debit lands.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import col

from leavedesk.exceptions import InsufficientBalance, InvalidInput, NotFound, StorageFailure
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.base import now_utc
from leavedesk.models.enums import AuditAction, AuditEntityType, StaffRole
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.role_default import RoleDefault
from leavedesk.schemas.balance import (
    EntitlementListResponse,
    EntitlementResponse,
    RoleDefaultListResponse,
    RoleDefaultResponse,
)
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.directory import get_directory_service
from leavedesk.services.repository import commit_or_fail, flush_or_fail

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.balance import SetRoleDefaultPayload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_entitlement(
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    accrued: int,
    used: int,
    *,
    is_override: bool,
) -> EntitlementResponse:
    return EntitlementResponse(
        staff_id=staff_id,
        leave_type_id=leave_type_id,
        year=year,
        accrued=accrued,
        used=used,
        balance=accrued - used,
        is_override=is_override,
    )


def _build_role_default_response(row: RoleDefault) -> RoleDefaultResponse:
    return RoleDefaultResponse(
        id=row.id,
        organization_id=row.organization_id,
        role=StaffRole(row.role),
        leave_type_id=row.leave_type_id,
        year=row.year,
        default_days=row.default_days,
    )


async def _get_override(
    session: AsyncSession,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    *,
    for_update: bool = False,
) -> LeaveBalance | None:
    query = select(LeaveBalance).where(
        col(LeaveBalance.staff_id) == staff_id,
        col(LeaveBalance.leave_type_id) == leave_type_id,
        col(LeaveBalance.year) == year,
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _get_role_default_days(
    session: AsyncSession,
    organization_id: uuid.UUID,
    role: StaffRole,
    leave_type_id: uuid.UUID,
    year: int,
) -> int:
    result = await session.execute(
        select(col(RoleDefault.default_days)).where(
            col(RoleDefault.organization_id) == organization_id,
            col(RoleDefault.role) == role.value,
            col(RoleDefault.leave_type_id) == leave_type_id,
            col(RoleDefault.year) == year,
        )
    )
    days = result.scalar_one_or_none()
    return days if days is not None else 0


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


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def effective_entitlement(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    role: StaffRole,
) -> EntitlementResponse:
    """Return the override row if present, otherwise the role default (or zeros)."""
    override = await _get_override(session, staff_id, leave_type_id, year)
    if override is not None:
        return _build_entitlement(
            staff_id, leave_type_id, year, override.accrued, override.used, is_override=True
        )

    default_days = await _get_role_default_days(session, organization_id, role, leave_type_id, year)
    return _build_entitlement(staff_id, leave_type_id, year, default_days, 0, is_override=False)


async def list_entitlements(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    year: int,
    role: StaffRole,
) -> EntitlementListResponse:
    """Effective entitlements for every active leave type of the organization."""
    result = await session.execute(
        select(LeaveType)
        .where(col(LeaveType.organization_id) == organization_id, col(LeaveType.active).is_(True))
        .order_by(col(LeaveType.name))
    )
    items = [
        await effective_entitlement(
            session,
            organization_id=organization_id,
            staff_id=staff_id,
            leave_type_id=leave_type.id,
            year=year,
            role=role,
        )
        for leave_type in result.scalars().all()
    ]
    return EntitlementListResponse(items=items, total=len(items))


async def list_role_defaults(
    session: AsyncSession,
    organization_id: uuid.UUID,
    year: int | None = None,
) -> RoleDefaultListResponse:
    filters = [col(RoleDefault.organization_id) == organization_id]
    if year is not None:
        filters.append(col(RoleDefault.year) == year)
    result = await session.execute(
        select(RoleDefault).where(*filters).order_by(col(RoleDefault.year), col(RoleDefault.role))
    )
    items = [_build_role_default_response(r) for r in result.scalars().all()]
    return RoleDefaultListResponse(items=items, total=len(items))


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def set_override(
    session: AsyncSession,
    auth: AuthContext,
    *,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    new_accrued: int,
) -> EntitlementResponse:
    """Create or update a staff member's override row with a new accrued total.

    The caller is told explicitly when the edit would drive the balance
    negative; nothing is clamped.
    """
    await _get_leave_type_or_404(session, auth.organization_id, leave_type_id)
    await _get_staff_role(auth.organization_id, staff_id)
    if new_accrued < 0:
        raise InvalidInput("Accrued days cannot be negative")

    row = await _get_override(session, staff_id, leave_type_id, year, for_update=True)
    before = model_to_audit_dict(row) if row is not None else None
    used = row.used if row is not None else 0
    if new_accrued < used:
        raise InvalidInput(f"Accrued days ({new_accrued}) cannot be less than days already used ({used})")

    if row is None:
        row = LeaveBalance(
            organization_id=auth.organization_id,
            staff_id=staff_id,
            leave_type_id=leave_type_id,
            year=year,
        )
        session.add(row)
    row.accrued = new_accrued
    row.balance = new_accrued - row.used
    row.updated_at = now_utc()
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.BALANCE,
        entity_id=row.id,
        action=AuditAction.UPDATE if before is not None else AuditAction.CREATE,
        before_json=before,
        after_json=model_to_audit_dict(row),
    )
    await commit_or_fail(session)
    logger.info("Balance override set staff=%s type=%s year=%d accrued=%d", staff_id, leave_type_id, year, new_accrued)
    return _build_entitlement(staff_id, leave_type_id, year, row.accrued, row.used, is_override=True)


async def set_role_default(
    session: AsyncSession,
    auth: AuthContext,
    payload: SetRoleDefaultPayload,
) -> RoleDefaultResponse:
    """Create or update the default entitlement for a role, leave type and year."""
    await _get_leave_type_or_404(session, auth.organization_id, payload.leave_type_id)

    result = await session.execute(
        select(RoleDefault).where(
            col(RoleDefault.organization_id) == auth.organization_id,
            col(RoleDefault.role) == payload.role.value,
            col(RoleDefault.leave_type_id) == payload.leave_type_id,
            col(RoleDefault.year) == payload.year,
        )
    )
    row = result.scalar_one_or_none()
    before = model_to_audit_dict(row) if row is not None else None
    if row is None:
        row = RoleDefault(
            organization_id=auth.organization_id,
            role=payload.role.value,
            leave_type_id=payload.leave_type_id,
            year=payload.year,
            default_days=payload.default_days,
        )
        session.add(row)
    else:
        row.default_days = payload.default_days
        row.updated_at = now_utc()
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.ROLE_DEFAULT,
        entity_id=row.id,
        action=AuditAction.UPDATE if before is not None else AuditAction.CREATE,
        before_json=before,
        after_json=model_to_audit_dict(row),
    )
    await commit_or_fail(session)
    return _build_role_default_response(row)


async def _materialize_override(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    role: StaffRole,
) -> LeaveBalance:
    """Create the override row from the role default, or pick up the one a concurrent debit just created.

    The insert skips on the (staff, type, year) unique key instead of
    raising, so two first-time debits both end up updating the same row.
    """
    default_days = await _get_role_default_days(session, organization_id, role, leave_type_id, year)
    insert = sqlite_insert if session.get_bind().dialect.name == "sqlite" else pg_insert
    now = now_utc()
    await session.execute(
        insert(LeaveBalance)
        .values(
            id=uuid.uuid4(),
            organization_id=organization_id,
            staff_id=staff_id,
            leave_type_id=leave_type_id,
            year=year,
            accrued=default_days,
            used=0,
            balance=default_days,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["staff_id", "leave_type_id", "year"])
    )
    row = await _get_override(session, staff_id, leave_type_id, year, for_update=True)
    if row is None:
        logger.error("Balance row missing after insert staff=%s type=%s year=%d", staff_id, leave_type_id, year)
        raise StorageFailure("The balance could not be updated")
    return row


async def debit(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    days: int,
    role: StaffRole,
) -> LeaveBalance:
    """Consume ``days`` from the balance inside the caller's transaction.

    The override row is materialized from the role default on first debit;
    a concurrent first debit for the same key reuses the row it created.
    The debit itself is one conditional UPDATE guarded by ``balance >= days``
    so two concurrent approvals cannot both pass against a stale read. Does
    not commit.
    """
    if days <= 0:
        raise InvalidInput("Debit must be a positive number of days")

    row = await _get_override(session, staff_id, leave_type_id, year)
    if row is None:
        row = await _materialize_override(
            session,
            organization_id=organization_id,
            staff_id=staff_id,
            leave_type_id=leave_type_id,
            year=year,
            role=role,
        )

    result = await session.execute(
        update(LeaveBalance)
        .where(
            col(LeaveBalance.id) == row.id,
            col(LeaveBalance.balance) >= days,
        )
        .values(
            used=col(LeaveBalance.used) + days,
            balance=col(LeaveBalance.balance) - days,
            updated_at=now_utc(),
        )
        .execution_options(synchronize_session=False)
    )
    await session.refresh(row)
    if result.rowcount == 0:
        logger.warning(
            "Insufficient balance staff=%s type=%s year=%d requested=%d available=%d",
            staff_id,
            leave_type_id,
            year,
            days,
            row.balance,
        )
        raise InsufficientBalance(
            f"Insufficient leave balance: requested {days} days, {row.balance} remaining for {year}"
        )
    return row


# ---------------------------------------------------------------------------
# Staff-facing reads
# ---------------------------------------------------------------------------


async def _get_staff_role(organization_id: uuid.UUID, staff_id: uuid.UUID) -> StaffRole:
    staff = await get_directory_service().get_staff(organization_id, staff_id)
    if staff is None:
        raise NotFound("Staff member not found")
    return staff.role


async def get_staff_entitlements(
    session: AsyncSession,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    year: int | None = None,
) -> EntitlementListResponse:
    """Entitlements of one staff member; ``year`` defaults to the current year."""
    role = await _get_staff_role(organization_id, staff_id)
    return await list_entitlements(
        session,
        organization_id=organization_id,
        staff_id=staff_id,
        year=year or now_utc().year,
        role=role,
    )


async def get_staff_entitlement(
    session: AsyncSession,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int | None = None,
) -> EntitlementResponse:
    role = await _get_staff_role(organization_id, staff_id)
    await _get_leave_type_or_404(session, organization_id, leave_type_id)
    return await effective_entitlement(
        session,
        organization_id=organization_id,
        staff_id=staff_id,
        leave_type_id=leave_type_id,
        year=year or now_utc().year,
        role=role,
    )
