"""
Role Repository
Company-scoped role lookups
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.role import Role
from app.repositories.base import CRUDBase


class RoleRepository(CRUDBase[Role]):
    async def list_for_company(self, db: AsyncSession, company_id: UUID, include_inactive: bool = False) -> list[Role]:
        query = select(Role).where(Role.company_id == company_id).order_by(Role.name)
        if not include_inactive:
            query = query.where(Role.is_active == True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_by_name(self, db: AsyncSession, company_id: UUID, name: str) -> Optional[Role]:
        result = await db.execute(
            select(Role).where(Role.company_id == company_id, Role.name == name.strip())
        )
        return result.scalar_one_or_none()

    async def get_default(self, db: AsyncSession, company_id: UUID) -> Optional[Role]:
        result = await db.execute(
            select(Role)
            .where(Role.company_id == company_id, Role.is_default == True, Role.is_active == True)
            .order_by(Role.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()


role_repository = RoleRepository(Role)
