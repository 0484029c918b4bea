"""
Role Service
Company-scoped role management: base permissions, overrides and deletion guard.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError
from app.core.rbac import ContractType
from app.models.role import Role
from app.repositories.membership import membership_repository
from app.repositories.role import role_repository
from app.schemas.role import (
    EffectivePermissionsOut,
    RoleCreateRequest,
    RoleOut,
    RoleUpdateRequest,
)
from app.services.permission_catalog import permission_catalog_service

logger = structlog.get_logger()


def to_role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        is_default=role.is_default,
        description=role.description,
        company_id=role.company_id,
        is_active=role.is_active,
        base_permissions=role.base_permission_codes,
        permission_overrides=dict(role.permission_overrides or {}),
        effective_permissions=sorted(role.effective_permissions()),
        salary_norm=role.salary_norm or 0.0,
        salary_cap=role.salary_cap or 0.0,
        contract_type=role.contract_type,
        created_at=role.created_at,
    )


class RoleService:
    def __init__(self):
        self.repository = role_repository
        self.memberships = membership_repository
        self.catalog = permission_catalog_service

    async def get_role(self, db: AsyncSession, company_id: UUID, role_id: UUID) -> Role:
        role = await self.repository.get(db, id=role_id)
        # Roles of other companies are reported as missing
        if role is None or role.company_id != company_id:
            raise NotFoundError("Role not found")
        return role

    async def list_roles(self, db: AsyncSession, company_id: UUID, include_inactive: bool = False) -> list[RoleOut]:
        roles = await self.repository.list_for_company(db, company_id, include_inactive=include_inactive)
        return [to_role_out(role) for role in roles]

    async def _clear_other_defaults(self, db: AsyncSession, company_id: UUID, keep: Role) -> None:
        for role in await self.repository.list_for_company(db, company_id, include_inactive=True):
            if role.id != keep.id and role.is_default:
                role.is_default = False

    async def _commit(self, db: AsyncSession, role: Role) -> Role:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Role write conflicted", company_id=str(role.company_id), error=str(e))
            raise ConflictError("A role with this name already exists")
        return await self.repository.get(db, id=role.id, refresh=True)

    async def create_role(
        self,
        db: AsyncSession,
        company_id: UUID,
        data: RoleCreateRequest,
        created_by_id: Optional[UUID] = None,
    ) -> RoleOut:
        if await self.repository.get_by_name(db, company_id, data.name):
            raise ConflictError("A role with this name already exists")

        permissions = await self.catalog.get_permissions(db, data.permissions)
        role = Role(
            name=data.name,
            description=data.description,
            company_id=company_id,
            permission_overrides={},
            is_default=data.is_default,
            is_active=True,
            salary_norm=data.salary_norm,
            salary_cap=data.salary_cap,
            contract_type=ContractType(data.contract_type).value,
            created_by_id=created_by_id,
            permissions=permissions,
        )
        db.add(role)
        await db.flush()
        if role.is_default:
            await self._clear_other_defaults(db, company_id, role)

        role = await self._commit(db, role)
        logger.info("Role created", company_id=str(company_id), role_id=str(role.id), name=role.name)
        return to_role_out(role)

    async def update_role(self, db: AsyncSession, company_id: UUID, role_id: UUID, data: RoleUpdateRequest) -> RoleOut:
        role = await self.get_role(db, company_id, role_id)
        changes = data.model_dump(exclude_unset=True)

        if "name" in changes and changes["name"] != role.name:
            if await self.repository.get_by_name(db, company_id, changes["name"]):
                raise ConflictError("A role with this name already exists")
            role.name = changes["name"]
        if "permissions" in changes and changes["permissions"] is not None:
            role.permissions = await self.catalog.get_permissions(db, changes["permissions"])
        if "contract_type" in changes and changes["contract_type"] is not None:
            role.contract_type = ContractType(changes["contract_type"]).value
        for field in ("description", "is_active", "salary_norm", "salary_cap"):
            if field in changes and (changes[field] is not None or field == "description"):
                setattr(role, field, changes[field])
        if changes.get("is_default") is not None:
            role.is_default = changes["is_default"]
            if role.is_default:
                await self._clear_other_defaults(db, company_id, role)

        role = await self._commit(db, role)
        logger.info("Role updated", company_id=str(company_id), role_id=str(role.id), fields=sorted(changes))
        return to_role_out(role)

    async def set_override(
        self,
        db: AsyncSession,
        company_id: UUID,
        role_id: UUID,
        code: str,
        granted: Optional[bool],
    ) -> RoleOut:
        role = await self.get_role(db, company_id, role_id)
        if granted is not None:
            await self.catalog.get_permissions(db, [code])
        role.set_override(code, granted)

        role = await self._commit(db, role)
        logger.info(
            "Role permission override set",
            company_id=str(company_id),
            role_id=str(role.id),
            permission=code,
            granted=granted,
        )
        return to_role_out(role)

    async def effective_permissions(self, db: AsyncSession, company_id: UUID, role_id: UUID) -> EffectivePermissionsOut:
        role = await self.get_role(db, company_id, role_id)
        return EffectivePermissionsOut(role_id=role.id, permissions=sorted(role.effective_permissions()))

    async def delete_role(self, db: AsyncSession, company_id: UUID, role_id: UUID) -> None:
        role = await self.get_role(db, company_id, role_id)
        references = await self.memberships.count_for_role(db, role.id)
        if references:
            raise ConflictError("Role is still assigned to members", members=references)
        await self.repository.delete(db, db_obj=role)
        logger.info("Role deleted", company_id=str(company_id), role_id=str(role_id))


role_service = RoleService()
