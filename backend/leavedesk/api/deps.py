# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, Path

from leavedesk.exceptions import Unauthorized
from leavedesk.models.enums import ADMIN_ROLES
from leavedesk.schemas.auth import AuthContext
from leavedesk.services.directory import get_directory_service


async def get_auth_context(
    x_organization_id: uuid.UUID = Header(),
    x_user_id: uuid.UUID = Header(),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(organization_id=x_organization_id, user_id=x_user_id)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require an administrator role, looked up in the directory rather than trusted from headers."""
    staff = await get_directory_service().get_staff(auth.organization_id, auth.user_id)
    if staff is None or staff.role not in ADMIN_ROLES:
        raise Unauthorized("Admin access required")
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def validate_organization_scope(
    organization_id: uuid.UUID = Path(),
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Ensure the path organization_id matches the auth header organization_id."""
    if organization_id != auth.organization_id:
        raise Unauthorized("Organization ID mismatch")
    return auth
