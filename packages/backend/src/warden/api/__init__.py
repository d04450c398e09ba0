"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: auth is not applied at the include_router level here. The account
routes declare get_current_principal themselves because they need the
principal's id, and the auth routes are open by nature (refresh and
logout carry their own Bearer token).
"""

from fastapi import APIRouter

from warden.api.account import router as account_router
from warden.api.auth import router as auth_router
from warden.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(account_router, tags=["account"])
