"""
Permission Repository
Catalog lookups by code and category
"""

from __future__ import annotations

from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.permission import Permission
from app.repositories.base import CRUDBase

logger = structlog.get_logger()


class PermissionRepository(CRUDBase[Permission]):
    async def get_by_code(self, db: AsyncSession, code: str) -> Permission | None:
        result = await db.execute(select(Permission).where(Permission.code == code))
        return result.scalar_one_or_none()

    async def get_by_codes(self, db: AsyncSession, codes: Iterable[str]) -> list[Permission]:
        codes = list(dict.fromkeys(codes))
        if not codes:
            return []
        result = await db.execute(select(Permission).where(Permission.code.in_(codes)))
        return list(result.scalars().all())

    async def list_all(self, db: AsyncSession, category: str | None = None) -> list[Permission]:
        query = select(Permission).order_by(Permission.category, Permission.module, Permission.code)
        if category:
            query = query.where(Permission.category == category)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def existing_codes(self, db: AsyncSession) -> set[str]:
        result = await db.execute(select(Permission.code))
        return set(result.scalars().all())


permission_repository = PermissionRepository(Permission)
