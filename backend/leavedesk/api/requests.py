# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leavedesk.api.deps import AuthDep, validate_organization_scope
from leavedesk.db import SessionDep
from leavedesk.models.enums import RequestStatus
from leavedesk.schemas.request import (
    ConflictsDetected,
    CreateDirectPayload,
    CreateRequestPayload,
    DecisionApplied,
    DecisionPayload,
    RequestListResponse,
    RequestResponse,
)
from leavedesk.services import request as request_service

requests_router = APIRouter(
    prefix="/organizations/{organization_id}/requests",
    tags=["requests"],
    dependencies=[Depends(validate_organization_scope)],
)


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: CreateRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Save a draft leave request for the caller."""
    return await request_service.create_request(session, auth, payload)


@requests_router.post("/direct", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_direct_request(
    payload: CreateDirectPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Create and immediately decide leave on behalf of a subordinate."""
    return await request_service.create_direct_request(session, auth, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    staff_id: uuid.UUID | None = Query(default=None),
    leave_type_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List leave requests with optional filters."""
    return await request_service.list_requests(
        session, auth.organization_id, status_filter, staff_id, leave_type_id, offset, limit
    )


@requests_router.get("/pending", response_model=RequestListResponse)
async def list_pending(
    session: SessionDep,
    auth: AuthDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """Pending requests the caller may decide."""
    return await request_service.list_pending_for_actor(session, auth, offset, limit)


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Get a single leave request with segments and approval history."""
    return await request_service.get_request(session, auth.organization_id, request_id)


@requests_router.post("/{request_id}/submit", response_model=RequestResponse)
async def submit_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    return await request_service.submit_request(session, auth, request_id)


@requests_router.post("/{request_id}/decide", response_model=DecisionApplied | ConflictsDetected)
async def decide_request(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    session: SessionDep,
    auth: AuthDep,
) -> DecisionApplied | ConflictsDetected:
    """Approve (fully or partially) or reject a pending request.

    Answers with ``outcome="conflicts_detected"`` and no changes when the
    approval collides with other commitments and no justification was given.
    """
    return await request_service.decide_request(session, auth, request_id, payload)


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Cancel a draft or pending request."""
    return await request_service.cancel_request(session, auth, request_id)
