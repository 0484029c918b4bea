"""
Invitation Code Endpoints
Company-scoped code management plus public validation and redemption
"""

from typing import Any, List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.deps import (
    AccessContext,
    get_current_account,
    get_response_cache,
    require_access,
    require_technician,
)
from app.middleware.security import client_address
from app.models.account import Account
from app.schemas.invitation_code import (
    ExpireSweepOut,
    InvitationCodeCreateRequest,
    InvitationCodeOut,
    InvitationCodePreview,
    InvitationCodeRedeemRequest,
    InvitationCodeStats,
    InvitationCodeUsageOut,
    RedemptionOut,
)
from app.services.invitation_codes import invitation_code_service

logger = structlog.get_logger()

# Mounted under /companies/{company_id}/invitation-codes
company_router = APIRouter()
# Mounted under /invitation-codes
router = APIRouter()

manage_codes = require_access(["GENERATE_EMPLOYEE_CODE"])


@company_router.post("/", response_model=InvitationCodeOut, status_code=status.HTTP_201_CREATED)
async def generate_code(
    data: InvitationCodeCreateRequest,
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.generate(db, access.company_id, access.account.id, data)


@company_router.get("/", response_model=List[InvitationCodeOut])
async def list_codes(
    active_only: bool = Query(default=False),
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.list_codes(db, access.company_id, active_only=active_only)


@company_router.get("/{code}/stats", response_model=InvitationCodeStats)
async def code_stats(
    code: str,
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.usage_stats(db, access.company_id, code)


@company_router.get("/{code}/usages", response_model=List[InvitationCodeUsageOut])
async def code_usages(
    code: str,
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.usage_history(db, access.company_id, code)


@company_router.post("/{code}/deactivate", response_model=InvitationCodeOut)
async def deactivate_code(
    code: str,
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.deactivate(db, access.company_id, code)


@company_router.post("/{code}/activate", response_model=InvitationCodeOut)
async def activate_code(
    code: str,
    access: AccessContext = Depends(manage_codes),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await invitation_code_service.activate(db, access.company_id, code)


@router.get("/{code}/validate", response_model=InvitationCodePreview)
async def validate_code(
    code: str,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Public preview of the company a code grants access to"""
    return await invitation_code_service.preview(db, code)


@router.post("/redeem", response_model=RedemptionOut)
async def redeem_code(
    data: InvitationCodeRedeemRequest,
    request: Request,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Join the code's company with its default role"""
    redemption = await invitation_code_service.redeem(
        db,
        current_account,
        data.code,
        ip_address=client_address(request),
        user_agent=request.headers.get("User-Agent"),
    )
    await cache.invalidate("linked-accounts")
    await cache.invalidate(f"roles:{redemption.company.id}")
    return redemption


@router.post("/sweep", response_model=ExpireSweepOut)
async def sweep_codes(
    current_account: Account = Depends(require_technician),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Run the expiry sweep immediately"""
    return await invitation_code_service.expire_sweep(db)
