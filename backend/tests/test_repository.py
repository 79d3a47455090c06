"""Tests for the request repository helpers."""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from leavedesk.exceptions import NotFound, StorageFailure
from leavedesk.models.enums import RequestStatus
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.request import LeaveRequest, LeaveSegment
from leavedesk.services.repository import (
    commit_or_fail,
    flush_or_fail,
    get_request_for_update,
    list_segments,
    load_request_response,
    query_requests,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from conftest import World


async def _stored_request(
    db_session: AsyncSession, world: World, staff: str, *ranges: tuple[date, date, int]
) -> LeaveRequest:
    leave_type = LeaveType(organization_id=world.organization_id, name=f"Annual {uuid.uuid4().hex[:6]}")
    db_session.add(leave_type)
    request = LeaveRequest(
        organization_id=world.organization_id,
        staff_id=world.id(staff),
        department_id=world.department_a,
        leave_type_id=leave_type.id,
        status=RequestStatus.DRAFT.value,
        total_days=sum(days for _, _, days in ranges),
        created_by=world.id(staff),
    )
    db_session.add(request)
    for position, (start, end, days) in enumerate(ranges):
        db_session.add(
            LeaveSegment(request_id=request.id, position=position, start_date=start, end_date=end, days=days)
        )
    await db_session.commit()
    return request


async def test_segments_listed_chronologically(db_session: AsyncSession, world: World) -> None:
    request = await _stored_request(
        db_session,
        world,
        "alice",
        (date(2025, 9, 1), date(2025, 9, 2), 2),
        (date(2025, 3, 3), date(2025, 3, 3), 1),
    )
    segments = await list_segments(db_session, request.id)
    assert [s.start_date for s in segments] == [date(2025, 3, 3), date(2025, 9, 1)]

    response = await load_request_response(db_session, request)
    assert response.total_days == 3
    assert response.approvals == []


async def test_request_lookup_is_organization_scoped(db_session: AsyncSession, world: World) -> None:
    request = await _stored_request(db_session, world, "alice", (date(2025, 7, 1), date(2025, 7, 1), 1))
    assert (await get_request_for_update(db_session, world.organization_id, request.id)).id == request.id
    with pytest.raises(NotFound):
        await get_request_for_update(db_session, uuid.uuid4(), request.id)


async def test_query_requests_pages(db_session: AsyncSession, world: World) -> None:
    for _ in range(3):
        await _stored_request(db_session, world, "alice", (date(2025, 7, 1), date(2025, 7, 1), 1))

    items, total = await query_requests(db_session, [], offset=1, limit=1)
    assert total == 3
    assert len(items) == 1


async def test_commit_or_fail_maps_database_errors() -> None:
    session = AsyncMock()
    session.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(StorageFailure):
        await commit_or_fail(session)
    session.rollback.assert_awaited_once()


async def test_commit_or_fail_commits() -> None:
    session = AsyncMock()
    await commit_or_fail(session)
    session.commit.assert_awaited_once()
    session.rollback.assert_not_awaited()


async def test_flush_or_fail_maps_database_errors() -> None:
    session = AsyncMock()
    session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(StorageFailure):
        await flush_or_fail(session)
    session.rollback.assert_awaited_once()
