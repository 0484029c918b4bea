"""
Permission catalog seeding and lookups.
"""

from __future__ import annotations

from typing import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.rbac import PERMISSION_CATALOG, PermissionCategory
from app.models.permission import Permission
from app.repositories.permission import permission_repository
from app.schemas.permission import PermissionCategoryGroup, PermissionOut

logger = structlog.get_logger()


class PermissionCatalogService:
    def __init__(self):
        self.repository = permission_repository

    async def seed(self, db: AsyncSession) -> int:
        """Insert catalog permissions that are missing. Existing rows are left untouched."""
        existing = await self.repository.existing_codes(db)
        created = 0
        for definition in PERMISSION_CATALOG:
            if definition.code in existing:
                continue
            db.add(
                Permission(
                    code=definition.code,
                    name=definition.name,
                    description=definition.description,
                    module=definition.module,
                    category=definition.category.value,
                )
            )
            created += 1

        if created:
            await db.commit()
        logger.info("Permission catalog seeded", created=created, total=len(PERMISSION_CATALOG))
        return created

    async def list_grouped(self, db: AsyncSession) -> list[PermissionCategoryGroup]:
        permissions = await self.repository.list_all(db)
        grouped: dict[str, list[PermissionOut]] = {category.value: [] for category in PermissionCategory}
        for permission in permissions:
            grouped.setdefault(permission.category, []).append(PermissionOut.model_validate(permission))
        return [
            PermissionCategoryGroup(category=category, permissions=items)
            for category, items in grouped.items()
        ]

    async def get_permissions(self, db: AsyncSession, codes: Iterable[str]) -> list[Permission]:
        """Load permissions by code, failing when any code is not in the catalog"""
        codes = sorted(set(codes))
        permissions = await self.repository.get_by_codes(db, codes)
        unknown = sorted(set(codes) - {permission.code for permission in permissions})
        if unknown:
            raise NotFoundError("Unknown permission codes", unknown=unknown)
        return sorted(permissions, key=lambda permission: permission.code)


permission_catalog_service = PermissionCatalogService()
