# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from leavedesk.config import get_settings
from leavedesk.exceptions import (
    AppError,
    InvalidInput,
    InvalidTransition,
    NoSegmentsSelected,
    NotFound,
    StorageFailure,
    Unauthorized,
)
from leavedesk.models.base import now_utc
from leavedesk.models.enums import (
    ApprovalStatus,
    AuditAction,
    AuditEntityType,
    Decision,
    LeaveMode,
    OperationalConflictType,
    RequestStatus,
    RoutingScope,
    SegmentStatus,
)
from leavedesk.models.leave_type import LeaveType
from leavedesk.models.request import LeaveRequest, LeaveSegment
from leavedesk.schemas.conflict import ConflictSet
from leavedesk.schemas.request import ConflictsDetected, DecisionApplied, RequestListResponse, RequestResponse
from leavedesk.services import ledger
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.conflict import detect_conflicts, find_operational_conflicts, find_self_overlap
from leavedesk.services.directory import StaffInfo, get_directory_service
from leavedesk.services.hierarchy import get_hierarchy_service, get_leave_mode
from leavedesk.services.notification import build_status_message, dispatch
from leavedesk.services.repository import (
    build_request_response,
    commit_or_fail,
    flush_or_fail,
    get_request_for_update,
    get_request_or_404,
    list_segments,
    load_request_response,
    query_requests,
    upsert_approval_record,
)
from leavedesk.services.routing import (
    actor_scope,
    can_decide,
    is_override_authority,
    level_for_scope,
    resolve_routing_scope,
)
from leavedesk.services.segments import apply_selection, days_by_year, reject_all, validate_segments

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.request import CreateDirectPayload, CreateRequestPayload, DecisionPayload, SegmentInput

logger = logging.getLogger(__name__)

DIRECT_APPROVAL_COMMENT = "Auto-approved by manager"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def _get_staff_or_404(organization_id: uuid.UUID, staff_id: uuid.UUID) -> StaffInfo:
    staff = await get_directory_service().get_staff(organization_id, staff_id)
    if staff is None:
        raise NotFound("Staff member not found")
    return staff


async def _get_actor(auth: AuthContext) -> StaffInfo:
    actor = await get_directory_service().get_staff(auth.organization_id, auth.user_id)
    if actor is None:
        raise Unauthorized("Unknown user")
    return actor


async def _get_active_leave_type(
    session: AsyncSession,
    organization_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveType:
    result = await session.execute(
        select(LeaveType).where(
            col(LeaveType.id) == leave_type_id,
            col(LeaveType.organization_id) == organization_id,
        )
    )
    leave_type = result.scalar_one_or_none()
    if leave_type is None:
        raise NotFound("Leave type not found")
    if not leave_type.active:
        raise InvalidInput(f"Leave type {leave_type.name} is not active")
    return leave_type


async def _resolve_scope_ids(staff: StaffInfo) -> tuple[uuid.UUID, uuid.UUID | None, uuid.UUID | None]:
    """Department, facility and workspace a staff member's requests are filed under."""
    if staff.department_id is None:
        raise InvalidInput("Staff member is not assigned to a department")
    department = await get_hierarchy_service().get_department(staff.department_id)
    if department is None:
        return staff.department_id, staff.facility_id, staff.workspace_id
    return department.id, department.facility_id, department.workspace_id


async def _build_new_request(
    *,
    staff: StaffInfo,
    leave_type: LeaveType,
    segment_inputs: Sequence[SegmentInput],
    notes: str | None,
    created_by: uuid.UUID,
) -> tuple[LeaveRequest, list[LeaveSegment]]:
    """Validate segments and stage a request with its segments (not flushed)."""
    ranges = validate_segments(segment_inputs, get_settings().max_segments_per_request)
    total_days = sum(days for _, _, days in ranges)
    if leave_type.max_days_per_request is not None and total_days > leave_type.max_days_per_request:
        raise InvalidInput(
            f"{leave_type.name} allows at most {leave_type.max_days_per_request} days per request "
            f"({total_days} requested)"
        )

    department_id, facility_id, workspace_id = await _resolve_scope_ids(staff)
    request = LeaveRequest(
        organization_id=staff.organization_id,
        staff_id=staff.id,
        department_id=department_id,
        facility_id=facility_id,
        workspace_id=workspace_id,
        leave_type_id=leave_type.id,
        status=RequestStatus.DRAFT.value,
        total_days=total_days,
        notes=notes,
        created_by=created_by,
    )
    segments = [
        LeaveSegment(request_id=request.id, position=index, start_date=start, end_date=end, days=days)
        for index, (start, end, days) in enumerate(ranges)
    ]
    return request, segments


def _acting_level(actor: StaffInfo, request: LeaveRequest) -> int:
    """Approval level the actor writes: their own tier, level 3 for the override authority."""
    scope = actor_scope(actor)
    if scope is None or scope == RoutingScope.OVERRIDE:
        return level_for_scope(RoutingScope.OVERRIDE)
    return level_for_scope(scope)


def _requested_days(segments: Sequence[LeaveSegment]) -> int:
    return sum(s.days for s in segments)


async def _notify(
    session: AsyncSession,
    request: LeaveRequest,
    segments: Sequence[LeaveSegment],
    *,
    actor_name: str | None,
    comment: str | None = None,
) -> None:
    """Queue the status notification for a committed change."""
    leave_type = await session.get(LeaveType, request.leave_type_id)
    status = RequestStatus(request.status)
    shown = [s for s in segments if status != RequestStatus.APPROVED or s.status == SegmentStatus.APPROVED.value]
    total = request.total_days if status == RequestStatus.APPROVED else _requested_days(segments)
    await dispatch(
        build_status_message(
            request_id=request.id,
            staff_id=request.staff_id,
            new_status=status,
            leave_type_name=leave_type.name if leave_type is not None else "Leave",
            total_days=total,
            segment_dates=[(s.start_date, s.end_date) for s in shown],
            actor_name=actor_name,
            comment=comment,
        )
    )


def _direct_block_reason(
    conflicts: ConflictSet,
    self_overlap_reason: str | None,
) -> str | None:
    if self_overlap_reason is not None:
        return self_overlap_reason
    if conflicts.operational_conflicts:
        first = conflicts.operational_conflicts[0]
        kind = "shift" if first.type == OperationalConflictType.SHIFT else "scheduled event"
        return f"Conflict with {kind}: {first.name} on {first.date.isoformat()}"
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def create_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateRequestPayload,
) -> RequestResponse:
    """Save a draft leave request for the caller. No conflict or balance checks run here."""
    staff = await _get_staff_or_404(auth.organization_id, auth.user_id)
    leave_type = await _get_active_leave_type(session, auth.organization_id, payload.leave_type_id)
    request, segments = await _build_new_request(
        staff=staff,
        leave_type=leave_type,
        segment_inputs=payload.segments,
        notes=payload.notes,
        created_by=auth.user_id,
    )
    session.add(request)
    session.add_all(segments)
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(request),
    )
    await commit_or_fail(session)
    logger.info("Draft request %s created by %s", request.id, auth.user_id)
    return build_request_response(request, segments)


async def submit_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Move a draft to pending and fix its routing scope from the requester's role."""
    request = await get_request_for_update(session, auth.organization_id, request_id)
    if auth.user_id not in (request.staff_id, request.created_by):
        raise Unauthorized("Only the requester can submit this request")
    if request.status != RequestStatus.DRAFT.value:
        raise InvalidTransition(f"Only draft requests can be submitted (current status: {request.status})")

    segments = await list_segments(session, request.id)
    if not segments:
        raise InvalidInput("A request needs at least one segment before submission")

    requester = await _get_staff_or_404(auth.organization_id, request.staff_id)
    before = model_to_audit_dict(request)

    request.status = RequestStatus.PENDING.value
    request.routing_scope = resolve_routing_scope(requester.role).value
    request.submitted_at = now_utc()
    request.total_days = _requested_days(segments)
    request.updated_at = now_utc()
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.SUBMIT,
        before_json=before,
        after_json=model_to_audit_dict(request),
    )
    await commit_or_fail(session)
    logger.info("Request %s submitted, routed to %s", request.id, request.routing_scope)

    await _notify(session, request, segments, actor_name=requester.full_name)
    return await load_request_response(session, request)


async def decide_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload,
) -> DecisionApplied | ConflictsDetected:
    """Apply an approver's decision to a pending request.

    Flow:
    1. Verify the actor may decide at the request's routing scope.
    2. Reject: every segment rejected, total 0, approval record written.
    3. Approve:
       a. Detect peer and operational conflicts over the selected segments.
       b. Conflicts without a justification: nothing is written, the
          conflict set is returned for the caller to narrow or justify.
       c. Debit the balance per year in full leave mode.
       d. Mark selected segments approved and the rest rejected.
       e. Transition to approved and record the decision for the level.
    4. Audit log, commit, notify.

    Any failure rolls the whole unit back and leaves the request pending.
    """
    actor = await _get_actor(auth)
    request = await get_request_for_update(session, auth.organization_id, request_id)
    if not can_decide(actor, request):
        raise Unauthorized("You are not an approver for this request's routing scope")
    if request.status != RequestStatus.PENDING.value:
        raise InvalidTransition(f"Only pending requests can be decided (current status: {request.status})")

    segments = await list_segments(session, request.id)
    level = _acting_level(actor, request)
    before = model_to_audit_dict(request)
    now = now_utc()
    comment: str | None

    try:
        if payload.decision == Decision.REJECT:
            reject_all(segments)
            request.total_days = 0
            request.status = RequestStatus.REJECTED.value
            comment = payload.comments or payload.justification
            await upsert_approval_record(
                session,
                request_id=request.id,
                level=level,
                approver_id=actor.id,
                status=ApprovalStatus.REJECTED,
                comments=comment,
                has_conflict=payload.conflict_related,
                conflict_reason=comment if payload.conflict_related else None,
            )
            action = AuditAction.REJECT
        else:
            selected_ids = (
                payload.selected_segment_ids
                if payload.selected_segment_ids is not None
                else [s.id for s in segments]
            )
            if not selected_ids:
                raise NoSegmentsSelected("Select at least one segment to approve, or reject the request")
            wanted = set(selected_ids)
            selected = [s for s in segments if s.id in wanted]
            if len(selected) != len(wanted):
                raise InvalidInput("Selection contains segments that are not part of this request")

            conflicts = await detect_conflicts(
                session,
                organization_id=request.organization_id,
                staff_id=request.staff_id,
                department_id=request.department_id,
                segments=selected,
            )
            if conflicts.has_conflicts and payload.justification is None:
                await session.rollback()
                logger.info("Conflicts detected deciding request %s; awaiting acknowledgment", request_id)
                return ConflictsDetected(request_id=request_id, conflicts=conflicts)

            if await get_leave_mode(request.organization_id) == LeaveMode.FULL:
                requester = await _get_staff_or_404(request.organization_id, request.staff_id)
                for year, days in sorted(days_by_year(selected).items()):
                    await ledger.debit(
                        session,
                        organization_id=request.organization_id,
                        staff_id=request.staff_id,
                        leave_type_id=request.leave_type_id,
                        year=year,
                        days=days,
                        role=requester.role,
                    )

            selection = apply_selection(segments, selected_ids)
            request.total_days = selection.total_days
            request.status = RequestStatus.APPROVED.value
            comment = payload.comments
            await upsert_approval_record(
                session,
                request_id=request.id,
                level=level,
                approver_id=actor.id,
                status=ApprovalStatus.APPROVED,
                comments=comment,
                has_conflict=conflicts.has_conflicts,
                conflict_reason=payload.justification if conflicts.has_conflicts else None,
                conflicting_parties=conflicts.snapshot() if conflicts.has_conflicts else None,
            )
            action = AuditAction.APPROVE

        request.decided_at = now
        request.decided_by = actor.id
        request.decision_note = comment
        request.updated_at = now
        await session.flush()

        await write_audit_log(
            session,
            organization_id=auth.organization_id,
            actor_id=actor.id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(request),
        )
        await session.flush()
    except AppError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Decision on request %s failed; rolled back", request_id)
        raise StorageFailure("The decision could not be saved") from exc

    await commit_or_fail(session)
    logger.info("Request %s %s by %s at level %d", request.id, request.status, actor.id, level)

    await _notify(session, request, segments, actor_name=actor.full_name, comment=comment)
    return DecisionApplied(request=await load_request_response(session, request))


async def create_direct_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateDirectPayload,
) -> RequestResponse:
    """Create leave on a subordinate's behalf and decide it immediately.

    Self overlap and operational conflicts are hard blockers, as is the
    balance in full leave mode: a blocked request is still created, already
    rejected, with a machine-written reason. Peer overlap is not checked since
    the manager already has authority over the department.
    """
    manager = await _get_actor(auth)
    staff = await _get_staff_or_404(auth.organization_id, payload.staff_id)
    if staff.id == manager.id:
        raise InvalidInput("Use the regular request flow for your own leave")
    leave_type = await _get_active_leave_type(session, auth.organization_id, payload.leave_type_id)

    request, segments = await _build_new_request(
        staff=staff,
        leave_type=leave_type,
        segment_inputs=payload.segments,
        notes=payload.notes,
        created_by=manager.id,
    )
    request.routing_scope = resolve_routing_scope(staff.role).value
    request.is_direct = True
    if not can_decide(manager, request):
        raise Unauthorized("You do not manage this staff member's leave")

    now = now_utc()
    level = _acting_level(manager, request)

    try:
        request.status = RequestStatus.PENDING.value
        request.submitted_at = now
        session.add(request)
        session.add_all(segments)
        await session.flush()

        self_overlap = await find_self_overlap(
            session,
            organization_id=request.organization_id,
            staff_id=staff.id,
            segments=segments,
            exclude_request_id=request.id,
        )
        self_overlap_reason = None
        if self_overlap is not None:
            self_overlap_reason = (
                f"Overlaps existing {self_overlap.leave_type_name} request from "
                f"{self_overlap.start_date.isoformat()} to {self_overlap.end_date.isoformat()}"
            )
        conflicts = ConflictSet(operational_conflicts=await find_operational_conflicts(staff.id, segments))
        reason = _direct_block_reason(conflicts, self_overlap_reason)
        has_conflict = reason is not None

        full_mode = await get_leave_mode(request.organization_id) == LeaveMode.FULL
        if reason is None and full_mode:
            for year, days in sorted(days_by_year(segments).items()):
                entitlement = await ledger.effective_entitlement(
                    session,
                    organization_id=request.organization_id,
                    staff_id=staff.id,
                    leave_type_id=leave_type.id,
                    year=year,
                    role=staff.role,
                )
                if days > entitlement.balance:
                    reason = (
                        f"Insufficient leave balance: requested {days} days, but only "
                        f"{entitlement.balance} days remain for {leave_type.name} in {year}"
                    )
                    break

        if reason is not None:
            reject_all(segments)
            request.total_days = 0
            request.status = RequestStatus.REJECTED.value
            approval_status = ApprovalStatus.REJECTED
            comment = reason
            action = AuditAction.REJECT
        else:
            if full_mode:
                for year, days in sorted(days_by_year(segments).items()):
                    await ledger.debit(
                        session,
                        organization_id=request.organization_id,
                        staff_id=staff.id,
                        leave_type_id=leave_type.id,
                        year=year,
                        days=days,
                        role=staff.role,
                    )
            selection = apply_selection(segments, [s.id for s in segments])
            request.total_days = selection.total_days
            request.status = RequestStatus.APPROVED.value
            approval_status = ApprovalStatus.APPROVED
            comment = DIRECT_APPROVAL_COMMENT
            action = AuditAction.APPROVE

        request.decided_at = now
        request.decided_by = manager.id
        request.decision_note = comment
        await upsert_approval_record(
            session,
            request_id=request.id,
            level=level,
            approver_id=manager.id,
            status=approval_status,
            comments=comment,
            has_conflict=has_conflict,
            conflict_reason=reason if has_conflict else None,
            conflicting_parties=conflicts.snapshot() if conflicts.operational_conflicts else None,
        )
        await session.flush()

        await write_audit_log(
            session,
            organization_id=auth.organization_id,
            actor_id=manager.id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(request),
        )
        await write_audit_log(
            session,
            organization_id=auth.organization_id,
            actor_id=manager.id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=action,
            after_json=model_to_audit_dict(request),
        )
        await session.flush()
    except AppError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Direct request for staff %s failed; rolled back", payload.staff_id)
        raise StorageFailure("The request could not be saved") from exc

    await commit_or_fail(session)
    logger.info("Direct request %s for %s created %s by %s", request.id, staff.id, request.status, manager.id)

    await _notify(session, request, segments, actor_name=manager.full_name, comment=comment)
    return await load_request_response(session, request)


async def cancel_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Withdraw a draft or pending request. No balance impact."""
    request = await get_request_for_update(session, auth.organization_id, request_id)
    if auth.user_id not in (request.staff_id, request.created_by):
        actor = await _get_actor(auth)
        if not is_override_authority(actor):
            raise Unauthorized("Not authorized to cancel this request")
    if request.status not in (RequestStatus.DRAFT.value, RequestStatus.PENDING.value):
        raise InvalidTransition(f"Only draft or pending requests can be cancelled (current status: {request.status})")

    segments = await list_segments(session, request.id)
    before = model_to_audit_dict(request)
    now = now_utc()

    reject_all(segments)
    request.total_days = 0
    request.status = RequestStatus.CANCELLED.value
    request.decided_at = now
    request.decided_by = auth.user_id
    request.updated_at = now
    await flush_or_fail(session)

    await write_audit_log(
        session,
        organization_id=auth.organization_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.CANCEL,
        before_json=before,
        after_json=model_to_audit_dict(request),
    )
    await commit_or_fail(session)
    logger.info("Request %s cancelled by %s", request.id, auth.user_id)
    return await load_request_response(session, request)


async def get_request(
    session: AsyncSession,
    organization_id: uuid.UUID,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Get a single request with its segments and approval history."""
    request = await get_request_or_404(session, organization_id, request_id)
    return await load_request_response(session, request)


async def list_requests(
    session: AsyncSession,
    organization_id: uuid.UUID,
    status_filter: RequestStatus | None = None,
    staff_id: uuid.UUID | None = None,
    leave_type_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    """List requests with optional filters, newest first."""
    filters = [col(LeaveRequest.organization_id) == organization_id]
    if status_filter is not None:
        filters.append(col(LeaveRequest.status) == status_filter.value)
    if staff_id is not None:
        filters.append(col(LeaveRequest.staff_id) == staff_id)
    if leave_type_id is not None:
        filters.append(col(LeaveRequest.leave_type_id) == leave_type_id)

    requests, total = await query_requests(session, filters, offset, limit)
    return RequestListResponse(
        items=[await load_request_response(session, r) for r in requests],
        total=total,
    )


async def list_pending_for_actor(
    session: AsyncSession,
    auth: AuthContext,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    """Pending requests the caller is allowed to decide."""
    actor = await _get_actor(auth)
    scope = actor_scope(actor)
    if scope is None:
        return RequestListResponse(items=[], total=0)

    filters = [
        col(LeaveRequest.organization_id) == auth.organization_id,
        col(LeaveRequest.status) == RequestStatus.PENDING.value,
        col(LeaveRequest.staff_id) != actor.id,
    ]
    if scope == RoutingScope.DEPARTMENT:
        filters += [
            col(LeaveRequest.routing_scope) == scope.value,
            col(LeaveRequest.department_id) == actor.department_id,
        ]
    elif scope == RoutingScope.FACILITY:
        filters += [
            col(LeaveRequest.routing_scope) == scope.value,
            col(LeaveRequest.facility_id) == actor.facility_id,
        ]
    elif scope == RoutingScope.WORKSPACE:
        filters += [
            col(LeaveRequest.routing_scope) == scope.value,
            col(LeaveRequest.workspace_id) == actor.workspace_id,
        ]

    requests, total = await query_requests(session, filters, offset, limit)
    return RequestListResponse(
        items=[await load_request_response(session, r) for r in requests],
        total=total,
    )
