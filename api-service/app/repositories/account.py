"""
Account Repository
Lookups by identity fields and account family
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account
from app.models.membership import CompanyMembership
from app.repositories.base import CRUDBase

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountRepository(CRUDBase[Account]):
    async def get_by_username(self, db: AsyncSession, username: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.username == username.strip()))
        return result.scalar_one_or_none()

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def get_by_discord_id(self, db: AsyncSession, discord_id: str) -> Optional[Account]:
        # discord_id is unique, so more than one row is an integrity fault and raises here
        result = await db.execute(select(Account).where(Account.discord_id == discord_id))
        return result.scalar_one_or_none()

    async def username_exists(self, db: AsyncSession, username: str) -> bool:
        result = await db.execute(select(exists().where(Account.username == username.strip())))
        return bool(result.scalar())

    async def list_family(self, db: AsyncSession, family_id: str, active_only: bool = True) -> list[Account]:
        query = (
            select(Account)
            .where(Account.account_family_id == family_id)
            .order_by(Account.created_at, Account.username)
        )
        if active_only:
            query = query.where(Account.is_active == True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def family_has_company(self, db: AsyncSession, family_id: str, company_id: UUID) -> bool:
        """True when an active account of the family already holds an active membership in the company"""
        query = (
            select(func.count(CompanyMembership.id))
            .join(Account, Account.id == CompanyMembership.account_id)
            .where(
                Account.account_family_id == family_id,
                Account.is_active == True,
                CompanyMembership.company_id == company_id,
                CompanyMembership.is_active == True,
            )
        )
        result = await db.execute(query)
        return (result.scalar() or 0) > 0

    async def clear_current_company(self, db: AsyncSession, account_id: UUID, company_id: UUID) -> None:
        account = await self.get(db, id=account_id)
        if account is not None and account.current_company_id == company_id:
            account.set_current_company(None)
            await db.flush()

    async def mark_login(self, db: AsyncSession, account: Account, when: datetime) -> Account:
        account.last_login_at = when
        await db.flush()
        return account


account_repository = AccountRepository(Account)
