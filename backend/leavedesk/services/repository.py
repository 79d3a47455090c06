"""Persistence boundary for leave requests, their segments and approval records."""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from leavedesk.exceptions import NotFound, StorageFailure
from leavedesk.models.approval import ApprovalRecord
from leavedesk.models.enums import ApprovalStatus, RequestStatus, RoutingScope, SegmentStatus
from leavedesk.models.request import LeaveRequest, LeaveSegment
from leavedesk.schemas.request import ApprovalRecordResponse, RequestResponse, SegmentResponse

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------


def build_segment_response(segment: LeaveSegment) -> SegmentResponse:
    return SegmentResponse(
        id=segment.id,
        start_date=segment.start_date,
        end_date=segment.end_date,
        days=segment.days,
        status=SegmentStatus(segment.status),
    )


def build_approval_response(record: ApprovalRecord) -> ApprovalRecordResponse:
    return ApprovalRecordResponse(
        id=record.id,
        level=record.level,
        approver_id=record.approver_id,
        status=ApprovalStatus(record.status),
        comments=record.comments,
        has_conflict=record.has_conflict,
        conflict_reason=record.conflict_reason,
        conflicting_parties=record.conflicting_parties,
        updated_at=record.updated_at,
    )


def build_request_response(
    request: LeaveRequest,
    segments: Sequence[LeaveSegment],
    approvals: Sequence[ApprovalRecord] = (),
) -> RequestResponse:
    """Map a request and its children to the response schema."""
    return RequestResponse(
        id=request.id,
        organization_id=request.organization_id,
        staff_id=request.staff_id,
        department_id=request.department_id,
        leave_type_id=request.leave_type_id,
        status=RequestStatus(request.status),
        routing_scope=RoutingScope(request.routing_scope) if request.routing_scope else None,
        total_days=request.total_days,
        notes=request.notes,
        created_by=request.created_by,
        is_direct=request.is_direct,
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
        decided_by=request.decided_by,
        decision_note=request.decision_note,
        created_at=request.created_at,
        segments=[build_segment_response(s) for s in segments],
        approvals=[build_approval_response(a) for a in approvals],
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_request_or_404(
    session: AsyncSession,
    organization_id: uuid.UUID,
    request_id: uuid.UUID,
) -> LeaveRequest:
    """Fetch a request by ID scoped to the organization. Raises NotFound."""
    result = await session.execute(
        select(LeaveRequest).where(
            col(LeaveRequest.id) == request_id,
            col(LeaveRequest.organization_id) == organization_id,
        )
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Request not found")
    return request


async def get_request_for_update(
    session: AsyncSession,
    organization_id: uuid.UUID,
    request_id: uuid.UUID,
) -> LeaveRequest:
    """Fetch a request with a row lock so concurrent decisions serialize on it."""
    result = await session.execute(
        select(LeaveRequest)
        .where(
            col(LeaveRequest.id) == request_id,
            col(LeaveRequest.organization_id) == organization_id,
        )
        .with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Request not found")
    return request


async def list_segments(session: AsyncSession, request_id: uuid.UUID) -> list[LeaveSegment]:
    """Segments of a request in chronological order."""
    result = await session.execute(
        select(LeaveSegment)
        .where(col(LeaveSegment.request_id) == request_id)
        .order_by(col(LeaveSegment.start_date), col(LeaveSegment.position))
    )
    return list(result.scalars().all())


async def list_approvals(session: AsyncSession, request_id: uuid.UUID) -> list[ApprovalRecord]:
    result = await session.execute(
        select(ApprovalRecord).where(col(ApprovalRecord.request_id) == request_id).order_by(col(ApprovalRecord.level))
    )
    return list(result.scalars().all())


async def load_request_response(session: AsyncSession, request: LeaveRequest) -> RequestResponse:
    """Load children and map a request to its response schema."""
    segments = await list_segments(session, request.id)
    approvals = await list_approvals(session, request.id)
    return build_request_response(request, segments, approvals)


async def query_requests(
    session: AsyncSession,
    filters: list[ColumnElement[bool]],
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[LeaveRequest], int]:
    """Page through requests matching the filters, newest first."""
    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*filters)
        .order_by(col(LeaveRequest.created_at).desc(), col(LeaveRequest.id))
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def upsert_approval_record(
    session: AsyncSession,
    *,
    request_id: uuid.UUID,
    level: int,
    approver_id: uuid.UUID,
    status: ApprovalStatus,
    comments: str | None = None,
    has_conflict: bool = False,
    conflict_reason: str | None = None,
    conflicting_parties: list[dict[str, Any]] | None = None,
) -> ApprovalRecord:
    """Write the decision for one level, overwriting any earlier record at that level."""
    result = await session.execute(
        select(ApprovalRecord).where(
            col(ApprovalRecord.request_id) == request_id,
            col(ApprovalRecord.level) == level,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        record = ApprovalRecord(request_id=request_id, level=level, approver_id=approver_id, status=status.value)
        session.add(record)

    record.approver_id = approver_id
    record.status = status.value
    record.comments = comments
    record.has_conflict = has_conflict
    record.conflict_reason = conflict_reason
    record.conflicting_parties = conflicting_parties
    await session.flush()
    return record


async def flush_or_fail(session: AsyncSession) -> None:
    """Flush pending writes, mapping database errors to StorageFailure after rollback."""
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Flush failed; transaction rolled back")
        raise StorageFailure("The change could not be saved") from exc


async def commit_or_fail(session: AsyncSession) -> None:
    """Commit the unit of work, mapping database errors to StorageFailure after rollback."""
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Commit failed; transaction rolled back")
        raise StorageFailure("The change could not be saved") from exc
