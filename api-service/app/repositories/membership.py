"""
Company Membership Repository
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import CompanyMembership
from app.repositories.base import CRUDBase


class MembershipRepository(CRUDBase[CompanyMembership]):
    async def get_for(self, db: AsyncSession, *, account_id: UUID, company_id: UUID) -> Optional[CompanyMembership]:
        result = await db.execute(
            select(CompanyMembership).where(
                CompanyMembership.account_id == account_id,
                CompanyMembership.company_id == company_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active(self, db: AsyncSession, *, account_id: UUID, company_id: UUID) -> Optional[CompanyMembership]:
        membership = await self.get_for(db, account_id=account_id, company_id=company_id)
        if membership is None or not membership.is_active:
            return None
        return membership

    async def list_for_company(self, db: AsyncSession, company_id: UUID, active_only: bool = True) -> list[CompanyMembership]:
        query = (
            select(CompanyMembership)
            .where(CompanyMembership.company_id == company_id)
            .order_by(CompanyMembership.joined_at)
        )
        if active_only:
            query = query.where(CompanyMembership.is_active == True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def count_for_role(self, db: AsyncSession, role_id: UUID) -> int:
        result = await db.execute(
            select(func.count(CompanyMembership.id)).where(CompanyMembership.role_id == role_id)
        )
        return result.scalar() or 0


membership_repository = MembershipRepository(CompanyMembership)
