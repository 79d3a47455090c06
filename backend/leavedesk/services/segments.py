"""Segment arithmetic and the partial-approval resolver."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from pydantic import BaseModel

from leavedesk.exceptions import InvalidInput, NoSegmentsSelected
from leavedesk.models.enums import SegmentStatus

if TYPE_CHECKING:
    from datetime import date

    from leavedesk.models.request import LeaveSegment
    from leavedesk.schemas.request import SegmentInput


class SegmentSelection(BaseModel):
    """Result of applying an approver's segment selection."""

    approved_ids: list[uuid.UUID]
    rejected_ids: list[uuid.UUID]
    total_days: int


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in [start, end], both ends included."""
    if end < start:
        raise InvalidInput("end_date must not be before start_date")
    return (end - start).days + 1


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive overlap: a single shared day counts."""
    return a_start <= b_end and b_start <= a_end


def validate_segments(segments: Sequence[SegmentInput], max_segments: int) -> list[tuple[date, date, int]]:
    """Check a candidate segment set and return (start, end, days) sorted by start date.

    Rejects empty sets, more than ``max_segments`` ranges, inverted ranges and
    ranges overlapping each other within the same request.
    """
    if not segments:
        raise InvalidInput("At least one segment is required")
    if len(segments) > max_segments:
        raise InvalidInput(f"A request may have at most {max_segments} segments")

    ordered = sorted(((s.start_date, s.end_date) for s in segments), key=lambda r: (r[0], r[1]))
    result: list[tuple[date, date, int]] = []
    for start, end in ordered:
        days = inclusive_days(start, end)
        if result and ranges_overlap(result[-1][0], result[-1][1], start, end):
            raise InvalidInput(f"Segments overlap: {result[-1][0]}..{result[-1][1]} and {start}..{end}")
        result.append((start, end, days))
    return result


def apply_selection(segments: Iterable[LeaveSegment], selected_ids: Iterable[uuid.UUID]) -> SegmentSelection:
    """Mark selected segments approved and the rest rejected; total the approved days.

    An empty selection is a caller error: a full rejection must go through the
    reject decision instead.
    """
    segments = list(segments)
    selected = set(selected_ids)
    if not selected:
        raise NoSegmentsSelected("Select at least one segment to approve")

    known = {s.id for s in segments}
    unknown = selected - known
    if unknown:
        raise InvalidInput(f"Segments not part of this request: {', '.join(sorted(str(u) for u in unknown))}")

    approved: list[uuid.UUID] = []
    rejected: list[uuid.UUID] = []
    total = 0
    for segment in segments:
        if segment.id in selected:
            segment.status = SegmentStatus.APPROVED.value
            approved.append(segment.id)
            total += segment.days
        else:
            segment.status = SegmentStatus.REJECTED.value
            rejected.append(segment.id)

    return SegmentSelection(approved_ids=approved, rejected_ids=rejected, total_days=total)


def reject_all(segments: Iterable[LeaveSegment]) -> None:
    for segment in segments:
        segment.status = SegmentStatus.REJECTED.value


def days_by_year(segments: Iterable[LeaveSegment]) -> dict[int, int]:
    """Sum segment days per calendar year of each segment's start date."""
    totals: dict[int, int] = {}
    for segment in segments:
        totals[segment.start_date.year] = totals.get(segment.start_date.year, 0) + segment.days
    return totals
