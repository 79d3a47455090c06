from fastapi import APIRouter

from leavedesk.api.balances import availability_router, entitlement_router, override_router, role_default_router
from leavedesk.api.leave_types import leave_types_router
from leavedesk.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(leave_types_router)
api_router.include_router(role_default_router)
api_router.include_router(entitlement_router)
api_router.include_router(override_router)
api_router.include_router(availability_router)
api_router.include_router(requests_router)
