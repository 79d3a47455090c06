from __future__ import annotations

import uuid
from datetime import date

import pytest

from leavedesk.exceptions import InvalidInput, NoSegmentsSelected
from leavedesk.models.enums import SegmentStatus
from leavedesk.models.request import LeaveSegment
from leavedesk.schemas.request import SegmentInput
from leavedesk.services.segments import (
    apply_selection,
    days_by_year,
    inclusive_days,
    ranges_overlap,
    reject_all,
    validate_segments,
)


def _segment(start: date, end: date) -> LeaveSegment:
    return LeaveSegment(request_id=uuid.uuid4(), start_date=start, end_date=end, days=inclusive_days(start, end))


def _three_segments() -> list[LeaveSegment]:
    return [
        _segment(date(2025, 7, 1), date(2025, 7, 3)),
        _segment(date(2025, 7, 10), date(2025, 7, 11)),
        _segment(date(2025, 8, 1), date(2025, 8, 5)),
    ]


# ---------------------------------------------------------------------------
# Day arithmetic
# ---------------------------------------------------------------------------


def test_inclusive_days_single_day() -> None:
    assert inclusive_days(date(2025, 7, 1), date(2025, 7, 1)) == 1


def test_inclusive_days_span() -> None:
    assert inclusive_days(date(2025, 12, 30), date(2026, 1, 2)) == 4


def test_inclusive_days_rejects_inverted() -> None:
    with pytest.raises(InvalidInput):
        inclusive_days(date(2025, 7, 2), date(2025, 7, 1))


def test_overlap_is_inclusive_on_both_ends() -> None:
    assert ranges_overlap(date(2025, 7, 1), date(2025, 7, 3), date(2025, 7, 3), date(2025, 7, 5))
    assert not ranges_overlap(date(2025, 7, 1), date(2025, 7, 3), date(2025, 7, 4), date(2025, 7, 5))


# ---------------------------------------------------------------------------
# validate_segments
# ---------------------------------------------------------------------------


def test_validate_sorts_and_counts() -> None:
    result = validate_segments(
        [
            SegmentInput(start_date=date(2025, 8, 1), end_date=date(2025, 8, 2)),
            SegmentInput(start_date=date(2025, 7, 1), end_date=date(2025, 7, 5)),
        ],
        max_segments=6,
    )
    assert result == [(date(2025, 7, 1), date(2025, 7, 5), 5), (date(2025, 8, 1), date(2025, 8, 2), 2)]


def test_validate_rejects_empty() -> None:
    with pytest.raises(InvalidInput, match="At least one segment"):
        validate_segments([], max_segments=6)


def test_validate_rejects_too_many() -> None:
    inputs = [SegmentInput(start_date=date(2025, 7, d), end_date=date(2025, 7, d)) for d in range(1, 8)]
    with pytest.raises(InvalidInput, match="at most 6"):
        validate_segments(inputs, max_segments=6)


def test_validate_rejects_overlap_within_request() -> None:
    inputs = [
        SegmentInput(start_date=date(2025, 7, 1), end_date=date(2025, 7, 3)),
        SegmentInput(start_date=date(2025, 7, 3), end_date=date(2025, 7, 4)),
    ]
    with pytest.raises(InvalidInput, match="overlap"):
        validate_segments(inputs, max_segments=6)


# ---------------------------------------------------------------------------
# apply_selection
# ---------------------------------------------------------------------------


def test_apply_selection_partial() -> None:
    segments = _three_segments()
    selection = apply_selection(segments, [segments[0].id, segments[2].id])
    assert selection.total_days == 3 + 5
    assert [s.status for s in segments] == [
        SegmentStatus.APPROVED,
        SegmentStatus.REJECTED,
        SegmentStatus.APPROVED,
    ]
    assert selection.rejected_ids == [segments[1].id]


def test_apply_selection_total_matches_approved_days() -> None:
    segments = _three_segments()
    selection = apply_selection(segments, [s.id for s in segments])
    assert selection.total_days == sum(s.days for s in segments if s.status == SegmentStatus.APPROVED)


def test_apply_selection_empty_fails_and_leaves_segments() -> None:
    segments = _three_segments()
    with pytest.raises(NoSegmentsSelected):
        apply_selection(segments, [])
    assert all(s.status == SegmentStatus.PENDING for s in segments)


def test_apply_selection_unknown_id() -> None:
    segments = _three_segments()
    with pytest.raises(InvalidInput, match="not part of this request"):
        apply_selection(segments, [uuid.uuid4()])
    assert all(s.status == SegmentStatus.PENDING for s in segments)


def test_reject_all() -> None:
    segments = _three_segments()
    reject_all(segments)
    assert {s.status for s in segments} == {SegmentStatus.REJECTED}


def test_days_by_year_uses_start_date() -> None:
    segments = [
        _segment(date(2025, 12, 30), date(2026, 1, 2)),
        _segment(date(2026, 2, 1), date(2026, 2, 2)),
    ]
    assert days_by_year(segments) == {2025: 4, 2026: 2}
