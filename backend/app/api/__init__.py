############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: API endpoints package and router configuration
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""API endpoints for the LAB Chain directory."""

from fastapi import APIRouter

from backend.app.api.admin_api import router as admin_router
from backend.app.api.auth_api import router as auth_router
from backend.app.api.health import router as health_router
from backend.app.api.public_api import router as public_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health_router)
api_router.include_router(auth_router, prefix="/api/auth", tags=["auth"])
api_router.include_router(public_router, prefix="/api", tags=["public"])
api_router.include_router(admin_router, prefix="/api/admin", tags=["admin"])

__all__ = ["api_router"]
