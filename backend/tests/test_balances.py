"""Tests for the balance ledger: entitlement merge, overrides, role defaults and debits."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col

from leavedesk.exceptions import InsufficientBalance, InvalidInput, StorageFailure
from leavedesk.models.audit import AuditLog
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.enums import StaffRole
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.role_default import RoleDefault
from leavedesk.schemas.auth import AuthContext
from leavedesk.schemas.balance import SetRoleDefaultPayload
from leavedesk.services import ledger

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from conftest import World

YEAR = 2025


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _leave_type(
    db_session: AsyncSession, organization_id: uuid.UUID, name: str = "Annual", **kwargs: object
) -> LeaveType:
    leave_type = LeaveType(organization_id=organization_id, name=name, **kwargs)
    db_session.add(leave_type)
    await db_session.commit()
    return leave_type


async def _role_default(
    db_session: AsyncSession, organization_id: uuid.UUID, leave_type_id: uuid.UUID, days: int, role: str = "staff"
) -> None:
    db_session.add(
        RoleDefault(
            organization_id=organization_id, role=role, leave_type_id=leave_type_id, year=YEAR, default_days=days
        )
    )
    await db_session.commit()


def _disk_error() -> OperationalError:
    return OperationalError("UPDATE leave_balance", {}, Exception("disk I/O error"))


async def _balance_row(db_session: AsyncSession, staff_id: uuid.UUID, leave_type_id: uuid.UUID) -> LeaveBalance | None:
    result = await db_session.execute(
        select(LeaveBalance)
        .where(col(LeaveBalance.staff_id) == staff_id, col(LeaveBalance.leave_type_id) == leave_type_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Effective entitlement
# ---------------------------------------------------------------------------


async def test_entitlement_synthesized_from_role_default(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 20)

    ent = await ledger.effective_entitlement(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("alice"),
        leave_type_id=lt.id,
        year=YEAR,
        role=StaffRole.STAFF,
    )
    assert (ent.accrued, ent.used, ent.balance, ent.is_override) == (20, 0, 20, False)
    assert await _balance_row(db_session, world.id("alice"), lt.id) is None


async def test_entitlement_zero_without_default(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    ent = await ledger.effective_entitlement(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("alice"),
        leave_type_id=lt.id,
        year=YEAR,
        role=StaffRole.STAFF,
    )
    assert (ent.accrued, ent.used, ent.balance) == (0, 0, 0)


async def test_override_wins_over_role_default(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 20)
    db_session.add(
        LeaveBalance(
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            accrued=12,
            used=4,
            balance=8,
        )
    )
    await db_session.commit()

    ent = await ledger.effective_entitlement(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("alice"),
        leave_type_id=lt.id,
        year=YEAR,
        role=StaffRole.STAFF,
    )
    assert (ent.accrued, ent.used, ent.balance, ent.is_override) == (12, 4, 8, True)


async def test_role_default_is_per_role(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 20)
    await _role_default(db_session, world.organization_id, lt.id, 10, role="intern")

    ent = await ledger.effective_entitlement(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("ivy"),
        leave_type_id=lt.id,
        year=YEAR,
        role=StaffRole.INTERN,
    )
    assert ent.accrued == 10


# ---------------------------------------------------------------------------
# Debit
# ---------------------------------------------------------------------------


async def test_debit_materializes_row_from_default(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 20)

    row = await ledger.debit(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("alice"),
        leave_type_id=lt.id,
        year=YEAR,
        days=5,
        role=StaffRole.STAFF,
    )
    await db_session.commit()
    assert (row.accrued, row.used, row.balance) == (20, 5, 15)
    assert row.balance == row.accrued - row.used


async def test_concurrent_first_debits_share_materialized_row(
    engine: AsyncEngine, db_session: AsyncSession, world: World
) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 20)
    other_sessions = async_sessionmaker(engine, expire_on_commit=False)
    real_get_override = ledger._get_override
    calls = 0

    async def _read_then_lose_race(*args: Any, **kwargs: Any) -> LeaveBalance | None:
        # The first lookup sees no row; another approval then materializes and debits it.
        nonlocal calls
        calls += 1
        if calls > 1:
            return await real_get_override(*args, **kwargs)
        async with other_sessions() as other:
            await ledger.debit(
                other,
                organization_id=world.organization_id,
                staff_id=world.id("alice"),
                leave_type_id=lt.id,
                year=YEAR,
                days=3,
                role=StaffRole.STAFF,
            )
            await other.commit()
        return None

    with patch.object(ledger, "_get_override", _read_then_lose_race):
        row = await ledger.debit(
            db_session,
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            days=5,
            role=StaffRole.STAFF,
        )
    await db_session.commit()

    assert (row.accrued, row.used, row.balance) == (20, 8, 12)
    count = await db_session.execute(
        select(func.count()).select_from(LeaveBalance).where(col(LeaveBalance.staff_id) == world.id("alice"))
    )
    assert count.scalar_one() == 1


async def test_debit_to_exactly_zero(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 3)

    row = await ledger.debit(
        db_session,
        organization_id=world.organization_id,
        staff_id=world.id("alice"),
        leave_type_id=lt.id,
        year=YEAR,
        days=3,
        role=StaffRole.STAFF,
    )
    assert row.balance == 0


async def test_debit_insufficient_leaves_row_unchanged(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    db_session.add(
        LeaveBalance(
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            accrued=10,
            used=7,
            balance=3,
        )
    )
    await db_session.commit()

    with pytest.raises(InsufficientBalance):
        await ledger.debit(
            db_session,
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            days=5,
            role=StaffRole.STAFF,
        )
    await db_session.rollback()

    row = await _balance_row(db_session, world.id("alice"), lt.id)
    assert row is not None
    assert (row.accrued, row.used, row.balance) == (10, 7, 3)


async def test_debit_rejects_non_positive(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    with pytest.raises(InvalidInput):
        await ledger.debit(
            db_session,
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            days=0,
            role=StaffRole.STAFF,
        )


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


async def test_set_override_keeps_used(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    auth = AuthContext(organization_id=world.organization_id, user_id=world.id("admin"))
    db_session.add(
        LeaveBalance(
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            accrued=10,
            used=4,
            balance=6,
        )
    )
    await db_session.commit()

    ent = await ledger.set_override(
        db_session, auth, staff_id=world.id("alice"), leave_type_id=lt.id, year=YEAR, new_accrued=15
    )
    assert (ent.accrued, ent.used, ent.balance) == (15, 4, 11)


async def test_set_override_below_used_rejected(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    auth = AuthContext(organization_id=world.organization_id, user_id=world.id("admin"))
    db_session.add(
        LeaveBalance(
            organization_id=world.organization_id,
            staff_id=world.id("alice"),
            leave_type_id=lt.id,
            year=YEAR,
            accrued=10,
            used=4,
            balance=6,
        )
    )
    await db_session.commit()

    with pytest.raises(InvalidInput, match="cannot be less than days already used"):
        await ledger.set_override(
            db_session, auth, staff_id=world.id("alice"), leave_type_id=lt.id, year=YEAR, new_accrued=3
        )


async def test_set_override_storage_error_raises_storage_failure(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    auth = AuthContext(organization_id=world.organization_id, user_id=world.id("admin"))

    with (
        patch.object(db_session, "flush", AsyncMock(side_effect=_disk_error())),
        pytest.raises(StorageFailure),
    ):
        await ledger.set_override(
            db_session, auth, staff_id=world.id("alice"), leave_type_id=lt.id, year=YEAR, new_accrued=15
        )

    assert await _balance_row(db_session, world.id("alice"), lt.id) is None


async def test_put_override_via_api(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    resp = await async_client.put(
        world.url(f"/staff/{world.id('alice')}/balances/{lt.id}/{YEAR}"),
        json={"accrued": 10},
        headers=world.headers("admin"),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["accrued"] == 10
    assert data["balance"] == 10
    assert data["is_override"] is True

    audit_count = await db_session.execute(
        select(func.count()).select_from(AuditLog).where(col(AuditLog.entity_type) == "BALANCE")
    )
    assert audit_count.scalar_one() == 1


async def test_put_override_negative_rejected(
    async_client: AsyncClient, db_session: AsyncSession, world: World
) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    resp = await async_client.put(
        world.url(f"/staff/{world.id('alice')}/balances/{lt.id}/{YEAR}"),
        json={"accrued": -1},
        headers=world.headers("admin"),
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidInput"


async def test_put_override_requires_admin(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    resp = await async_client.put(
        world.url(f"/staff/{world.id('alice')}/balances/{lt.id}/{YEAR}"),
        json={"accrued": 30},
        headers=world.headers("head_a"),
    )
    assert resp.status_code == 403


async def test_put_override_unknown_staff(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    resp = await async_client.put(
        world.url(f"/staff/{uuid.uuid4()}/balances/{lt.id}/{YEAR}"),
        json={"accrued": 5},
        headers=world.headers("admin"),
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Role defaults and entitlement listing
# ---------------------------------------------------------------------------


async def test_role_default_upsert(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    body = {"role": "staff", "leave_type_id": str(lt.id), "year": YEAR, "default_days": 20}
    first = await async_client.put(world.url("/role-defaults"), json=body, headers=world.headers("admin"))
    assert first.status_code == 200
    second = await async_client.put(
        world.url("/role-defaults"), json={**body, "default_days": 22}, headers=world.headers("admin")
    )
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]

    listing = await async_client.get(world.url(f"/role-defaults?year={YEAR}"), headers=world.headers("alice"))
    assert listing.json()["total"] == 1
    assert listing.json()["items"][0]["default_days"] == 22


async def test_role_default_storage_error_raises_storage_failure(db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    auth = AuthContext(organization_id=world.organization_id, user_id=world.id("admin"))
    payload = SetRoleDefaultPayload(role=StaffRole.STAFF, leave_type_id=lt.id, year=YEAR, default_days=20)

    with (
        patch.object(db_session, "flush", AsyncMock(side_effect=_disk_error())),
        pytest.raises(StorageFailure),
    ):
        await ledger.set_role_default(db_session, auth, payload)

    listing = await ledger.list_role_defaults(db_session, world.organization_id, YEAR)
    assert listing.total == 0


async def test_role_default_requires_admin(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    resp = await async_client.put(
        world.url("/role-defaults"),
        json={"role": "staff", "leave_type_id": str(lt.id), "year": YEAR, "default_days": 20},
        headers=world.headers("alice"),
    )
    assert resp.status_code == 403


async def test_list_entitlements_active_types_only(
    async_client: AsyncClient, db_session: AsyncSession, world: World
) -> None:
    annual = await _leave_type(db_session, world.organization_id, "Annual")
    await _leave_type(db_session, world.organization_id, "Retired", active=False)
    await _role_default(db_session, world.organization_id, annual.id, 20)

    resp = await async_client.get(
        world.url(f"/staff/{world.id('alice')}/entitlements?year={YEAR}"), headers=world.headers("alice")
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["leave_type_id"] == str(annual.id)
    assert data["items"][0]["balance"] == 20


async def test_get_single_entitlement(async_client: AsyncClient, db_session: AsyncSession, world: World) -> None:
    lt = await _leave_type(db_session, world.organization_id)
    await _role_default(db_session, world.organization_id, lt.id, 15)
    resp = await async_client.get(
        world.url(f"/staff/{world.id('alice')}/entitlements/{lt.id}?year={YEAR}"), headers=world.headers("alice")
    )
    assert resp.status_code == 200
    assert resp.json()["accrued"] == 15


async def test_organization_mismatch_forbidden(async_client: AsyncClient, world: World) -> None:
    resp = await async_client.get(
        f"/organizations/{uuid.uuid4()}/staff/{world.id('alice')}/entitlements", headers=world.headers("alice")
    )
    assert resp.status_code == 403
