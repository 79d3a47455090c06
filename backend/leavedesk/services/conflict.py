"""Conflict detection for leave segments.

Three independent checks over a set of candidate segments:

* peer overlaps: other staff in the same department with committed
  (pending or approved) leave on the same days. Advisory, an approver may
  override it with a justification.
* operational conflicts: shifts and scheduled events of the requester
  during the segment.
* self overlap: the requester's own other requests. A hard rule on the
  direct-approval path.

All overlap tests are inclusive on both ends and results are sorted so that
repeated calls over the same data return identical lists.
"""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leavedesk.exceptions import InvalidInput
from leavedesk.models.enums import OperationalConflictType, RequestStatus, SegmentStatus
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.request import LeaveRequest, LeaveSegment
from leavedesk.schemas.conflict import ConflictSet, OperationalConflict, PeerConflict, SelfOverlap
from leavedesk.services.directory import get_directory_service
from leavedesk.services.schedule import get_event_service, get_roster_service

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_COMMITTED_REQUEST_STATUSES = [RequestStatus.PENDING.value, RequestStatus.APPROVED.value]
_LIVE_SEGMENT_STATUSES = [SegmentStatus.PENDING.value, SegmentStatus.APPROVED.value]
_SELF_OVERLAP_STATUSES = [RequestStatus.DRAFT.value, RequestStatus.PENDING.value, RequestStatus.APPROVED.value]


def _span(segments: Sequence[LeaveSegment]) -> tuple[date, date]:
    return min(s.start_date for s in segments), max(s.end_date for s in segments)


async def find_peer_overlaps(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    department_id: uuid.UUID,
    segments: Sequence[LeaveSegment],
) -> dict[uuid.UUID, list[PeerConflict]]:
    """Map each segment id to the overlapping committed leave of department peers.

    Segments without overlaps map to an empty list. Pure read.
    """
    overlaps: dict[uuid.UUID, list[PeerConflict]] = {s.id: [] for s in segments}
    if not segments:
        return overlaps

    span_start, span_end = _span(segments)
    result = await session.execute(
        select(LeaveSegment, LeaveRequest)
        .join(LeaveRequest, col(LeaveRequest.id) == col(LeaveSegment.request_id))
        .where(
            col(LeaveRequest.organization_id) == organization_id,
            col(LeaveRequest.department_id) == department_id,
            col(LeaveRequest.staff_id) != staff_id,
            col(LeaveRequest.status).in_(_COMMITTED_REQUEST_STATUSES),
            col(LeaveSegment.status).in_(_LIVE_SEGMENT_STATUSES),
            col(LeaveSegment.start_date) <= span_end,
            col(LeaveSegment.end_date) >= span_start,
        )
    )
    rows = result.all()

    directory = get_directory_service()
    names: dict[uuid.UUID, str] = {}
    for _, peer_request in rows:
        if peer_request.staff_id not in names:
            info = await directory.get_staff(organization_id, peer_request.staff_id)
            names[peer_request.staff_id] = info.full_name if info is not None else "Unknown staff"

    for segment in segments:
        matches = [
            PeerConflict(
                peer_id=peer_request.staff_id,
                peer_name=names[peer_request.staff_id],
                start_date=peer_segment.start_date,
                end_date=peer_segment.end_date,
                days=peer_segment.days,
            )
            for peer_segment, peer_request in rows
            if peer_segment.start_date <= segment.end_date and segment.start_date <= peer_segment.end_date
        ]
        matches.sort(key=lambda c: (c.start_date, c.end_date, c.peer_name, str(c.peer_id)))
        overlaps[segment.id] = matches
    return overlaps


async def find_operational_conflicts(
    staff_id: uuid.UUID,
    segments: Sequence[LeaveSegment],
) -> list[OperationalConflict]:
    """Shift assignments and scheduled events of the staff member during any segment."""
    roster = get_roster_service()
    events = get_event_service()
    conflicts: list[OperationalConflict] = []

    for segment in segments:
        for shift in await roster.shifts_for(staff_id, segment.start_date, segment.end_date):
            window = ""
            if shift.start_time is not None and shift.end_time is not None:
                window = f" {shift.start_time:%H:%M}-{shift.end_time:%H:%M}"
            conflicts.append(
                OperationalConflict(
                    segment_id=segment.id,
                    type=OperationalConflictType.SHIFT,
                    name=shift.shift_name,
                    date=shift.assignment_date,
                    details=f"Shift {shift.shift_name} on {shift.assignment_date.isoformat()}{window}",
                )
            )
        for event in await events.events_for(staff_id, segment.start_date, segment.end_date):
            event_date = max(event.start_at.date(), segment.start_date)
            conflicts.append(
                OperationalConflict(
                    segment_id=segment.id,
                    type=OperationalConflictType.EVENT,
                    name=event.title,
                    date=event_date,
                    details=f"{event.event_type.capitalize()} {event.title} on {event.start_at.date().isoformat()}",
                )
            )

    conflicts.sort(key=lambda c: (c.date, c.type.value, c.name, str(c.segment_id)))
    return conflicts


async def find_self_overlap(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    segments: Sequence[LeaveSegment],
    exclude_request_id: uuid.UUID | None = None,
) -> SelfOverlap | None:
    """First other non-rejected request of the same staff member overlapping any segment."""
    ranges = [(s.start_date, s.end_date) for s in segments]
    if not ranges:
        return None

    span_start = min(r[0] for r in ranges)
    span_end = max(r[1] for r in ranges)
    query = (
        select(LeaveSegment, LeaveRequest, LeaveType)
        .join(LeaveRequest, col(LeaveRequest.id) == col(LeaveSegment.request_id))
        .join(LeaveType, col(LeaveType.id) == col(LeaveRequest.leave_type_id))
        .where(
            col(LeaveRequest.organization_id) == organization_id,
            col(LeaveRequest.staff_id) == staff_id,
            col(LeaveRequest.status).in_(_SELF_OVERLAP_STATUSES),
            col(LeaveSegment.status).in_(_LIVE_SEGMENT_STATUSES),
            col(LeaveSegment.start_date) <= span_end,
            col(LeaveSegment.end_date) >= span_start,
        )
        .order_by(col(LeaveSegment.start_date), col(LeaveSegment.end_date), col(LeaveSegment.id))
    )
    if exclude_request_id is not None:
        query = query.where(col(LeaveRequest.id) != exclude_request_id)

    result = await session.execute(query)
    for existing, request, leave_type in result.all():
        if any(existing.start_date <= end and start <= existing.end_date for start, end in ranges):
            return SelfOverlap(
                request_id=request.id,
                leave_type_name=leave_type.name,
                start_date=existing.start_date,
                end_date=existing.end_date,
            )
    return None


async def detect_conflicts(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    department_id: uuid.UUID,
    segments: Sequence[LeaveSegment],
) -> ConflictSet:
    """Peer and operational conflicts for a selection, as one structured set."""
    peer = await find_peer_overlaps(
        session,
        organization_id=organization_id,
        staff_id=staff_id,
        department_id=department_id,
        segments=segments,
    )
    operational = await find_operational_conflicts(staff_id, segments)
    return ConflictSet(peer_conflicts=peer, operational_conflicts=operational)


async def check_staff_availability(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    staff_id: uuid.UUID,
    start: date,
    end: date,
) -> tuple[bool, str | None]:
    """Whether the staff member has no pending/approved leave within [start, end].

    Scheduling callers use this to refuse shifts and trainings on leave days.
    """
    if end < start:
        raise InvalidInput("end must not be before start")
    result = await session.execute(
        select(LeaveSegment, LeaveType)
        .join(LeaveRequest, col(LeaveRequest.id) == col(LeaveSegment.request_id))
        .join(LeaveType, col(LeaveType.id) == col(LeaveRequest.leave_type_id))
        .where(
            col(LeaveRequest.organization_id) == organization_id,
            col(LeaveRequest.staff_id) == staff_id,
            col(LeaveRequest.status).in_(_COMMITTED_REQUEST_STATUSES),
            col(LeaveSegment.status).in_(_LIVE_SEGMENT_STATUSES),
            col(LeaveSegment.start_date) <= end,
            col(LeaveSegment.end_date) >= start,
        )
        .order_by(col(LeaveSegment.start_date), col(LeaveSegment.id))
        .limit(1)
    )
    row = result.first()
    if row is None:
        return True, None
    segment, leave_type = row
    return False, (
        f"Staff member is on leave ({leave_type.name}) from "
        f"{segment.start_date.isoformat()} to {segment.end_date.isoformat()}"
    )
