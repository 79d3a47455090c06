# ruff: noqa: TC001, TC003
from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, Field

from leavedesk.models.enums import OperationalConflictType


class PeerConflict(BaseModel):
    """Another department member's committed leave overlapping a segment."""

    peer_id: uuid.UUID
    peer_name: str
    start_date: datetime.date
    end_date: datetime.date
    days: int


class OperationalConflict(BaseModel):
    """A shift or scheduled event the requester is committed to during a segment."""

    segment_id: uuid.UUID | None = None
    type: OperationalConflictType
    name: str
    date: datetime.date
    details: str | None = None


class SelfOverlap(BaseModel):
    """An existing request of the same staff member overlapping the new dates."""

    request_id: uuid.UUID
    leave_type_name: str
    start_date: datetime.date
    end_date: datetime.date


class ConflictSet(BaseModel):
    """Structured conflicts for a candidate selection, keyed by segment."""

    peer_conflicts: dict[uuid.UUID, list[PeerConflict]] = Field(default_factory=dict)
    operational_conflicts: list[OperationalConflict] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return any(self.peer_conflicts.values()) or bool(self.operational_conflicts)

    def snapshot(self) -> list[dict[str, object]]:
        """Flatten peer conflicts into the JSON snapshot stored on approval records.

        A peer segment overlapping several selected segments is listed once.
        """
        parties: list[dict[str, object]] = []
        seen: set[tuple[str, datetime.date, datetime.date]] = set()
        for conflicts in self.peer_conflicts.values():
            for conflict in conflicts:
                key = (conflict.peer_name, conflict.start_date, conflict.end_date)
                if key in seen:
                    continue
                seen.add(key)
                parties.append(
                    {
                        "name": conflict.peer_name,
                        "start_date": conflict.start_date.isoformat(),
                        "end_date": conflict.end_date.isoformat(),
                        "days": conflict.days,
                    }
                )
        for op in self.operational_conflicts:
            parties.append(
                {
                    "name": op.name,
                    "start_date": op.date.isoformat(),
                    "end_date": op.date.isoformat(),
                    "days": 1,
                    "type": op.type.value,
                }
            )
        return parties
