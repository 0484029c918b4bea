"""
Permission Endpoints
Catalog listing, access checks and accessible categories
"""

from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.database import get_db
from app.core.deps import get_current_account, require_technician
from app.core.errors import ForbiddenError
from app.models.account import Account
from app.schemas.permission import (
    AccessCheckRequest,
    AccessDecisionOut,
    CategoryAccessOut,
    PermissionCategoryGroup,
)
from app.schemas.role import EffectivePermissionsOut
from app.services.access import access_service
from app.services.permission_catalog import permission_catalog_service

logger = structlog.get_logger()
router = APIRouter()


@router.get("/", response_model=List[PermissionCategoryGroup])
async def list_permissions(
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Permission catalog grouped by category"""
    return await permission_catalog_service.list_grouped(db)


@router.get("/categories", response_model=CategoryAccessOut)
async def list_accessible_categories(
    company_id: Optional[UUID] = Query(default=None),
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> Any:
    target = company_id or current_account.current_company_id
    categories, permissions = await access_service.accessible_categories(db, current_account, target)
    return CategoryAccessOut(
        company_id=target,
        categories=categories,
        permissions=permissions,
        is_technician=current_account.is_technician,
    )


@router.post("/check", response_model=AccessDecisionOut)
async def check_access(
    data: AccessCheckRequest,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Evaluate an access decision without enforcing it"""
    company_id = data.company_id or current_account.current_company_id
    if data.account_id and data.account_id != current_account.id:
        if not current_account.is_technician:
            raise ForbiddenError("Only technicians can check access for another account")
        decision = await access_service.check_access_by_id(
            db, data.account_id, company_id, data.permissions, data.category
        )
    else:
        decision = await access_service.check_access(
            db, current_account, company_id, data.permissions, data.category
        )

    return AccessDecisionOut(
        allowed=decision.allowed,
        reason=decision.reason.value if decision.reason else None,
        company_id=decision.company_id,
        role_id=decision.role_id,
        required=list(decision.required),
        required_category=decision.required_category,
        held=sorted(decision.held),
    )


@router.get("/roles/{role_id}", response_model=EffectivePermissionsOut)
async def resolve_role_permissions(
    role_id: UUID,
    current_account: Account = Depends(require_technician),
    db: AsyncSession = Depends(get_db),
) -> Any:
    permissions = await access_service.resolve_role_permissions(db, role_id)
    return EffectivePermissionsOut(role_id=role_id, permissions=sorted(permissions))
