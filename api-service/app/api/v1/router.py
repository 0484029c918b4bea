"""
API v1 Router
Main router for all API v1 endpoints
"""

from fastapi import APIRouter
from app.api.v1.endpoints import accounts, auth, companies, health, invitation_codes, permissions, roles

api_router = APIRouter()

# Authentication endpoints
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Linked accounts and switching
api_router.include_router(
    accounts.router,
    prefix="/accounts",
    tags=["accounts"]
)

# Companies and memberships
api_router.include_router(
    companies.router,
    prefix="/companies",
    tags=["companies"]
)

# Company roles
api_router.include_router(
    roles.router,
    prefix="/companies/{company_id}/roles",
    tags=["roles"]
)

# Company invitation codes
api_router.include_router(
    invitation_codes.company_router,
    prefix="/companies/{company_id}/invitation-codes",
    tags=["invitation-codes"]
)

# Code validation and redemption
api_router.include_router(
    invitation_codes.router,
    prefix="/invitation-codes",
    tags=["invitation-codes"]
)

# Permission catalog and access checks
api_router.include_router(
    permissions.router,
    prefix="/permissions",
    tags=["permissions"]
)

# Health and monitoring endpoints
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"]
)
