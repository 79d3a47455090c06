# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, Field, model_validator

from leavedesk.models.enums import (
    ApprovalStatus,
    Decision,
    RequestStatus,
    RoutingScope,
    SegmentStatus,
)
from leavedesk.schemas.conflict import ConflictSet

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SegmentInput(BaseModel):
    """One inclusive date range of a leave request."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class CreateRequestPayload(BaseModel):
    """Request body for saving a draft leave request for the caller."""

    leave_type_id: uuid.UUID
    segments: list[SegmentInput] = Field(min_length=1)
    notes: str | None = Field(default=None, max_length=2000)


class CreateDirectPayload(CreateRequestPayload):
    """Request body for a manager creating leave on a subordinate's behalf."""

    staff_id: uuid.UUID


class DecisionPayload(BaseModel):
    """Request body for an approver's decision on a pending request.

    ``selected_segment_ids`` defaults to every segment of the request.
    ``justification`` acknowledges detected conflicts; without it an
    approval that hits conflicts is answered with the conflict set.
    """

    decision: Decision
    selected_segment_ids: list[uuid.UUID] | None = None
    justification: str | None = Field(default=None, max_length=1000)
    comments: str | None = Field(default=None, max_length=1000)
    conflict_related: bool = False

    @model_validator(mode="after")
    def _blank_justification_is_none(self) -> Self:
        if self.justification is not None and not self.justification.strip():
            self.justification = None
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SegmentResponse(BaseModel):
    id: uuid.UUID
    start_date: date
    end_date: date
    days: int
    status: SegmentStatus


class ApprovalRecordResponse(BaseModel):
    id: uuid.UUID
    level: int
    approver_id: uuid.UUID
    status: ApprovalStatus
    comments: str | None
    has_conflict: bool
    conflict_reason: str | None
    conflicting_parties: list[dict[str, Any]] | None
    updated_at: datetime


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    organization_id: uuid.UUID
    staff_id: uuid.UUID
    department_id: uuid.UUID
    leave_type_id: uuid.UUID
    status: RequestStatus
    routing_scope: RoutingScope | None
    total_days: int
    notes: str | None
    created_by: uuid.UUID
    is_direct: bool
    submitted_at: datetime | None
    decided_at: datetime | None
    decided_by: uuid.UUID | None
    decision_note: str | None
    created_at: datetime
    segments: list[SegmentResponse]
    approvals: list[ApprovalRecordResponse] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[RequestResponse]
    total: int


class DecisionApplied(BaseModel):
    """The decision was persisted."""

    outcome: Literal["applied"] = "applied"
    request: RequestResponse


class ConflictsDetected(BaseModel):
    """Approval paused: the selection collides with other commitments.

    Re-invoke with a narrower selection or a justification.
    """

    outcome: Literal["conflicts_detected"] = "conflicts_detected"
    request_id: uuid.UUID
    conflicts: ConflictSet


DecisionOutcome = Annotated[DecisionApplied | ConflictsDetected, Field(discriminator="outcome")]
