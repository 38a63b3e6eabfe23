"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter where every route in a router is protected.
Health, auth and profile routers are open at the router level; their
protected routes declare get_current_user themselves.
"""

from fastapi import APIRouter, Depends

from sparklink.api.auth import router as auth_router
from sparklink.api.health import router as health_router
from sparklink.api.profiles import pages_router, profile_router
from sparklink.api.verification import router as verification_router
from sparklink.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

# Open routes — no auth required (or auth declared per route)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(profile_router, tags=["profile"])

# Protected routes — require a valid session token
api_router.include_router(pages_router, tags=["pages"], dependencies=_auth)
api_router.include_router(verification_router, tags=["verification"], dependencies=_auth)
