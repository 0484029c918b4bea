"""
Invitation Code Repository
Includes the conditional single-statement consume used by redemption
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.invitation_code import InvitationCode, InvitationCodeUsage
from app.repositories.base import CRUDBase

logger = structlog.get_logger()


class InvitationCodeRepository(CRUDBase[InvitationCode]):
    async def get_by_code(self, db: AsyncSession, code: str, refresh: bool = False) -> Optional[InvitationCode]:
        query = select(InvitationCode).where(InvitationCode.code == code.strip().upper())
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def code_exists(self, db: AsyncSession, code: str) -> bool:
        result = await db.execute(select(func.count(InvitationCode.id)).where(InvitationCode.code == code))
        return (result.scalar() or 0) > 0

    async def list_for_company(self, db: AsyncSession, company_id: UUID, active_only: bool = False) -> list[InvitationCode]:
        query = (
            select(InvitationCode)
            .where(InvitationCode.company_id == company_id)
            .order_by(InvitationCode.created_at.desc())
        )
        if active_only:
            query = query.where(InvitationCode.is_active == True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_usages(self, db: AsyncSession, code_id: UUID) -> list[InvitationCodeUsage]:
        result = await db.execute(
            select(InvitationCodeUsage)
            .where(InvitationCodeUsage.invitation_code_id == code_id)
            .order_by(InvitationCodeUsage.used_at.desc())
        )
        return list(result.scalars().all())

    async def try_consume(self, db: AsyncSession, code_id: UUID, now: datetime) -> bool:
        """
        Increment the use counter in one conditional UPDATE.

        The row only matches while it is active, unexpired and below its cap,
        and reaching the cap clears ``is_active`` in the same statement, so
        concurrent redemptions can never push ``current_uses`` past ``max_uses``.
        Returns False when no row matched.
        """
        reaches_cap = and_(
            InvitationCode.max_uses.is_not(None),
            InvitationCode.current_uses + 1 >= InvitationCode.max_uses,
        )
        stmt = (
            update(InvitationCode)
            .where(
                InvitationCode.id == code_id,
                InvitationCode.is_active == True,
                or_(InvitationCode.max_uses.is_(None), InvitationCode.current_uses < InvitationCode.max_uses),
                or_(InvitationCode.expires_at.is_(None), InvitationCode.expires_at > now),
            )
            .values(
                current_uses=InvitationCode.current_uses + 1,
                is_active=case((reaches_cap, False), else_=True),
                last_used_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        consumed = result.rowcount == 1
        logger.debug("Invitation code consume attempted", code_id=str(code_id), consumed=consumed)
        return consumed

    async def add_usage(
        self,
        db: AsyncSession,
        *,
        code_id: UUID,
        account_id: UUID,
        used_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> InvitationCodeUsage:
        usage = InvitationCodeUsage(
            invitation_code_id=code_id,
            account_id=account_id,
            used_at=used_at,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
        db.add(usage)
        await db.flush()
        return usage

    async def deactivate_expired(self, db: AsyncSession, now: datetime) -> int:
        result = await db.execute(
            update(InvitationCode)
            .where(
                InvitationCode.is_active == True,
                InvitationCode.expires_at.is_not(None),
                InvitationCode.expires_at <= now,
            )
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_expired_before(self, db: AsyncSession, cutoff: datetime) -> int:
        result = await db.execute(
            delete(InvitationCode)
            .where(InvitationCode.expires_at.is_not(None), InvitationCode.expires_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_exhausted_before(self, db: AsyncSession, cutoff: datetime) -> int:
        result = await db.execute(
            delete(InvitationCode)
            .where(
                InvitationCode.max_uses.is_not(None),
                InvitationCode.current_uses >= InvitationCode.max_uses,
                InvitationCode.updated_at <= cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


invitation_code_repository = InvitationCodeRepository(InvitationCode)
