"""
Company Repository
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.company import Company
from app.repositories.base import CRUDBase


class CompanyRepository(CRUDBase[Company]):
    async def get_by_name(self, db: AsyncSession, name: str) -> Company | None:
        result = await db.execute(select(Company).where(func.lower(Company.name) == name.strip().lower()))
        return result.scalar_one_or_none()


company_repository = CompanyRepository(Company)
