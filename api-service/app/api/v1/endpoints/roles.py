"""
Role Endpoints
Company-scoped role management, mounted under /companies/{company_id}/roles
"""

from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.deps import AccessContext, get_response_cache, require_access
from app.schemas.role import (
    EffectivePermissionsOut,
    RoleCreateRequest,
    RoleOut,
    RoleOverrideRequest,
    RoleUpdateRequest,
)
from app.services.roles import role_service

logger = structlog.get_logger()
router = APIRouter()

manage_roles = require_access(["MANAGE_ROLES"])


def roles_namespace(company_id: UUID) -> str:
    return f"roles:{company_id}"


async def _invalidate(cache: ResponseCache, company_id: UUID) -> None:
    await cache.invalidate(roles_namespace(company_id))
    # Account summaries embed role names
    await cache.invalidate("linked-accounts")


@router.get("/", response_model=List[RoleOut])
async def list_roles(
    company_id: UUID,
    request: Request,
    include_inactive: bool = Query(default=False),
    access: AccessContext = Depends(require_access(["MANAGE_ROLES", "ASSIGN_EMPLOYEE_ROLES"])),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    key = cache.build_key(roles_namespace(company_id), request.url.path, dict(request.query_params))

    async def load():
        roles = await role_service.list_roles(db, company_id, include_inactive=include_inactive)
        return [role.model_dump(mode="json") for role in roles]

    return await cache.get_or_set(key, load)


@router.post("/", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    company_id: UUID,
    data: RoleCreateRequest,
    access: AccessContext = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    role = await role_service.create_role(db, company_id, data, created_by_id=access.account.id)
    await _invalidate(cache, company_id)
    return role


@router.patch("/{role_id}", response_model=RoleOut)
async def update_role(
    company_id: UUID,
    role_id: UUID,
    data: RoleUpdateRequest,
    access: AccessContext = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    role = await role_service.update_role(db, company_id, role_id, data)
    await _invalidate(cache, company_id)
    return role


@router.put("/{role_id}/overrides", response_model=RoleOut)
async def set_role_override(
    company_id: UUID,
    role_id: UUID,
    data: RoleOverrideRequest,
    access: AccessContext = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Grant (true), revoke (false) or clear (null) one permission on top of the base set"""
    role = await role_service.set_override(db, company_id, role_id, data.code, data.granted)
    await _invalidate(cache, company_id)
    return role


@router.get("/{role_id}/effective-permissions", response_model=EffectivePermissionsOut)
async def get_effective_permissions(
    company_id: UUID,
    role_id: UUID,
    access: AccessContext = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await role_service.effective_permissions(db, company_id, role_id)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    company_id: UUID,
    role_id: UUID,
    access: AccessContext = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> None:
    await role_service.delete_role(db, company_id, role_id)
    await _invalidate(cache, company_id)
