# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel


class ShiftAssignment(BaseModel):
    """A roster entry placing a staff member on a shift for one day."""

    staff_id: uuid.UUID
    assignment_date: date
    shift_name: str
    start_time: time | None = None
    end_time: time | None = None


class ScheduledEvent(BaseModel):
    """A training or meeting a staff member is assigned to."""

    staff_id: uuid.UUID
    title: str
    event_type: Literal["training", "meeting"] = "training"
    start_at: datetime
    end_at: datetime


@runtime_checkable
class RosterService(Protocol):
    """Interface for the shift roster."""

    async def shifts_for(self, staff_id: uuid.UUID, start: date, end: date) -> list[ShiftAssignment]:
        """Shift assignments for the staff member dated within [start, end]."""
        ...


@runtime_checkable
class EventService(Protocol):
    """Interface for scheduled trainings and meetings."""

    async def events_for(self, staff_id: uuid.UUID, start: date, end: date) -> list[ScheduledEvent]:
        """Events for the staff member whose window intersects [start 00:00, end 23:59:59]."""
        ...


def _window(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


class InMemoryRosterService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._shifts: list[ShiftAssignment] = []

    def seed(self, shift: ShiftAssignment) -> None:
        self._shifts.append(shift)

    async def shifts_for(self, staff_id: uuid.UUID, start: date, end: date) -> list[ShiftAssignment]:
        return [s for s in self._shifts if s.staff_id == staff_id and start <= s.assignment_date <= end]


class InMemoryEventService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._events: list[ScheduledEvent] = []

    def seed(self, event: ScheduledEvent) -> None:
        self._events.append(event)

    async def events_for(self, staff_id: uuid.UUID, start: date, end: date) -> list[ScheduledEvent]:
        window_start, window_end = _window(start, end)
        return [
            e
            for e in self._events
            if e.staff_id == staff_id and _naive(e.start_at) <= window_end and window_start <= _naive(e.end_at)
        ]


_roster_service: RosterService = InMemoryRosterService()
_event_service: EventService = InMemoryEventService()


def get_roster_service() -> RosterService:
    return _roster_service


def set_roster_service(service: RosterService) -> None:
    """Override the roster (for testing or production wiring)."""
    global _roster_service
    _roster_service = service


def get_event_service() -> EventService:
    return _event_service


def set_event_service(service: EventService) -> None:
    """Override the event lookup (for testing or production wiring)."""
    global _event_service
    _event_service = service
