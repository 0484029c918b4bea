"""
Company Endpoints
Company creation and membership management
"""

from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.deps import AccessContext, get_response_cache, require_access, require_company_creator
from app.models.account import Account
from app.schemas.company import AssignRoleRequest, CompanyCreateRequest, CompanyOut, MemberOut
from app.services.companies import company_service

logger = structlog.get_logger()
router = APIRouter()


@router.post("/", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(
    data: CompanyCreateRequest,
    current_account: Account = Depends(require_company_creator),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Create a company with its Admin and Employee roles"""
    company = await company_service.create_company(db, current_account, data)
    await cache.invalidate("linked-accounts")
    return company


@router.get("/{company_id}", response_model=CompanyOut)
async def get_company(
    company_id: UUID,
    access: AccessContext = Depends(require_access()),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await company_service.get_company(db, company_id)


@router.get("/{company_id}/members", response_model=List[MemberOut])
async def list_members(
    company_id: UUID,
    include_inactive: bool = Query(default=False),
    access: AccessContext = Depends(require_access(["MANAGE_EMPLOYES", "ASSIGN_EMPLOYEE_ROLES"])),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await company_service.list_members(db, company_id, active_only=not include_inactive)


@router.put("/{company_id}/members/{account_id}/role", response_model=MemberOut)
async def assign_member_role(
    company_id: UUID,
    account_id: UUID,
    data: AssignRoleRequest,
    access: AccessContext = Depends(require_access(["ASSIGN_EMPLOYEE_ROLES"])),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    member = await company_service.assign_role(db, company_id, account_id, data.role_id)
    await cache.invalidate("linked-accounts")
    return member


@router.delete("/{company_id}/members/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    company_id: UUID,
    account_id: UUID,
    access: AccessContext = Depends(require_access(["MANAGE_EMPLOYES"])),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> None:
    await company_service.remove_member(db, company_id, account_id)
    await cache.invalidate("linked-accounts")
