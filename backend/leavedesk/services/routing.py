"""Approval routing: which tier decides a request, and who may act for that tier.

Routing is derived from the requester's own role, never the approver's.
Levels 2 and 3 exist for escalated self-requests of department heads and
facility supervisors; an ordinary staff request is resolved by a single
decision at level 1.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from leavedesk.models.enums import OVERRIDE_ROLES, RoutingScope, StaffRole

if TYPE_CHECKING:
    from leavedesk.models.request import LeaveRequest
    from leavedesk.services.directory import StaffInfo

_SCOPE_FOR_REQUESTER_ROLE: dict[StaffRole, RoutingScope] = {
    StaffRole.STAFF: RoutingScope.DEPARTMENT,
    StaffRole.INTERN: RoutingScope.DEPARTMENT,
    StaffRole.DEPARTMENT_HEAD: RoutingScope.FACILITY,
    StaffRole.FACILITY_SUPERVISOR: RoutingScope.WORKSPACE,
    StaffRole.WORKSPACE_SUPERVISOR: RoutingScope.OVERRIDE,
    StaffRole.GENERAL_ADMIN: RoutingScope.OVERRIDE,
    StaffRole.ORGANIZATION_ADMIN: RoutingScope.OVERRIDE,
    StaffRole.SUPER_ADMIN: RoutingScope.OVERRIDE,
}

_LEVEL_FOR_SCOPE: dict[RoutingScope, int] = {
    RoutingScope.DEPARTMENT: 1,
    RoutingScope.FACILITY: 2,
    RoutingScope.WORKSPACE: 3,
    RoutingScope.OVERRIDE: 3,
}

_APPROVER_ROLE_FOR_SCOPE: dict[RoutingScope, StaffRole] = {
    RoutingScope.DEPARTMENT: StaffRole.DEPARTMENT_HEAD,
    RoutingScope.FACILITY: StaffRole.FACILITY_SUPERVISOR,
    RoutingScope.WORKSPACE: StaffRole.WORKSPACE_SUPERVISOR,
}


def resolve_routing_scope(requester_role: StaffRole) -> RoutingScope:
    """Approval tier for a request made by someone with ``requester_role``."""
    return _SCOPE_FOR_REQUESTER_ROLE[requester_role]


def level_for_scope(scope: RoutingScope) -> int:
    """ApprovalRecord level written when deciding at ``scope``."""
    return _LEVEL_FOR_SCOPE[scope]


def is_override_authority(actor: StaffInfo) -> bool:
    return actor.role in OVERRIDE_ROLES


def actor_scope(actor: StaffInfo) -> RoutingScope | None:
    """The tier an actor decides for, or None if they approve nothing."""
    if is_override_authority(actor):
        return RoutingScope.OVERRIDE
    for scope, role in _APPROVER_ROLE_FOR_SCOPE.items():
        if actor.role == role:
            return scope
    return None


def can_decide(actor: StaffInfo, request: LeaveRequest) -> bool:
    """Whether ``actor`` may decide ``request`` under its routing scope.

    Nobody decides their own request. The override authority decides any
    request in its organization; tier approvers only decide requests routed
    to their tier within their own department, facility or workspace.
    """
    if actor.id == request.staff_id or actor.organization_id != request.organization_id:
        return False
    if is_override_authority(actor):
        return True
    if request.routing_scope is None:
        return False

    scope = RoutingScope(request.routing_scope)
    if actor_scope(actor) != scope:
        return False
    if scope == RoutingScope.DEPARTMENT:
        return actor.department_id is not None and actor.department_id == request.department_id
    if scope == RoutingScope.FACILITY:
        return actor.facility_id is not None and actor.facility_id == request.facility_id
    if scope == RoutingScope.WORKSPACE:
        return actor.workspace_id is not None and actor.workspace_id == request.workspace_id
    return False
