"""
Account Identity Graph
Projections, sessions, linked accounts (same family id) and account switching.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotCompanyMemberError,
    NotFoundError,
)
from app.core.rbac import SYSTEM_ROLE_LABELS, SystemRole
from app.core.security import ACCESS_TOKEN_EXPIRE_MINUTES, create_access_token, get_password_hash, verify_password
from app.models.account import Account
from app.models.base import as_utc, utcnow
from app.repositories.account import account_repository, normalize_email
from app.schemas.account import (
    AccountProjection,
    AccountSummary,
    LinkedAccountCreateRequest,
    LinkedAccountsOut,
    ProfileCompletionRequest,
    SessionOut,
)
from app.schemas.company import CompanySummary, MembershipOut
from app.schemas.role import RoleSummary
from app.services.invitation_codes import invitation_code_service

logger = structlog.get_logger()


def system_role_label(value: str) -> str:
    try:
        return SYSTEM_ROLE_LABELS[SystemRole(value)]
    except ValueError:
        return value


def next_login_time(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Login timestamps strictly increase even when the clock does not move"""
    now = now or utcnow()
    previous = as_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _company_summary(company) -> Optional[CompanySummary]:
    return CompanySummary.model_validate(company) if company is not None else None


def _role_summary(role) -> Optional[RoleSummary]:
    return RoleSummary.model_validate(role) if role is not None else None


class AccountGraphService:
    def __init__(self):
        self.repository = account_repository
        self.invitation_codes = invitation_code_service

    def build_projection(self, account: Account) -> AccountProjection:
        memberships = [
            MembershipOut(
                company=_company_summary(membership.company),
                role=_role_summary(membership.role),
                is_active=membership.is_active,
                joined_at=membership.joined_at,
            )
            for membership in account.active_memberships
        ]
        return AccountProjection(
            id=account.id,
            username=account.username,
            display_name=account.display_name,
            first_name=account.first_name,
            last_name=account.last_name,
            email=account.email,
            phone_number=account.phone_number,
            bank_account=account.bank_account,
            discord_id=account.discord_id,
            discord_username=account.discord_username,
            avatar_url=account.avatar_url,
            is_active=account.is_active,
            system_role=account.system_role,
            system_role_label=system_role_label(account.system_role),
            company_validated=account.company_validated,
            has_complete_profile=account.has_complete_profile,
            account_family_id=account.account_family_id,
            company=_company_summary(account.company),
            role=_role_summary(account.role),
            companies=memberships,
            advances=account.advances or 0.0,
            bonuses=account.bonuses or 0.0,
            last_login_at=account.last_login_at,
            created_at=account.created_at,
        )

    def build_summary(self, account: Account, current_id: Optional[UUID] = None) -> AccountSummary:
        return AccountSummary(
            id=account.id,
            username=account.username,
            display_name=account.display_name,
            avatar_url=account.avatar_url,
            company=_company_summary(account.company),
            role=_role_summary(account.role),
            system_role=account.system_role,
            is_active=account.is_active,
            is_current=current_id is not None and account.id == current_id,
        )

    def issue_session(self, account: Account) -> SessionOut:
        token = create_access_token(
            subject=account.id,
            additional_claims={
                "username": account.username,
                "system_role": account.system_role,
                "company_id": str(account.current_company_id) if account.current_company_id else None,
            },
        )
        return SessionOut(
            access_token=token,
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            account=self.build_projection(account),
        )

    async def authenticate(self, db: AsyncSession, username: str, password: str) -> SessionOut:
        account = await self.repository.get_by_username(db, username)
        if not account or not verify_password(password, account.hashed_password):
            logger.warning("Login failed", username=username)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect username or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not account.is_active:
            logger.warning("Login attempt on inactive account", account_id=str(account.id))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is inactive",
                headers={"WWW-Authenticate": "Bearer"},
            )

        await self.repository.mark_login(db, account, next_login_time(account.last_login_at))
        await db.commit()
        logger.info("Account logged in", account_id=str(account.id))
        return self.issue_session(account)

    async def list_linked_accounts(self, db: AsyncSession, account: Account) -> LinkedAccountsOut:
        if not account.account_family_id:
            return LinkedAccountsOut(
                account_family_id=None,
                accounts=[self.build_summary(account, account.id)],
            )

        siblings = await self.repository.list_family(db, account.account_family_id)
        if all(sibling.id != account.id for sibling in siblings):
            siblings.insert(0, account)
        return LinkedAccountsOut(
            account_family_id=account.account_family_id,
            accounts=[self.build_summary(sibling, account.id) for sibling in siblings],
        )

    async def _get_sibling(self, db: AsyncSession, caller: Account, target_id: UUID) -> Account:
        target = await self.repository.get(db, id=target_id)
        if target is None:
            raise NotFoundError("Account not found")
        if target.id == caller.id:
            return target
        if not caller.account_family_id or target.account_family_id != caller.account_family_id:
            logger.warning(
                "Cross-family account access refused",
                account_id=str(caller.id),
                target_id=str(target_id),
            )
            raise ForbiddenError("This account is not linked to yours")
        return target

    async def switch_account(self, db: AsyncSession, caller: Account, target_id: UUID) -> SessionOut:
        target = await self._get_sibling(db, caller, target_id)
        if not target.is_active:
            raise InvalidStateError("Target account is inactive")

        await self.repository.mark_login(db, target, next_login_time(target.last_login_at))
        await db.commit()
        target = await self.repository.get(db, id=target.id, refresh=True)

        logger.info("Account switched", account_id=str(caller.id), target_id=str(target.id))
        return self.issue_session(target)

    def _resolve_family_id(self, caller: Account, family_id: Optional[str]) -> str:
        """
        Family of a new linked account: the caller's own, then a trusted
        server-side hint, then a freshly minted one.
        """
        if caller.account_family_id and family_id and caller.account_family_id != family_id:
            logger.warning(
                "Account family mismatch, keeping the caller's family",
                account_id=str(caller.id),
                family_id=caller.account_family_id,
                ignored_family_id=family_id,
            )
        resolved = caller.account_family_id or family_id
        if not resolved:
            resolved = uuid.uuid4().hex
        if caller.account_family_id != resolved:
            caller.account_family_id = resolved
        return resolved

    async def create_linked_account(
        self,
        db: AsyncSession,
        caller: Account,
        data: LinkedAccountCreateRequest,
        family_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AccountSummary:
        preview = await self.invitation_codes.preview(db, data.company_code)
        company_id = preview.company.id

        if caller.membership_for(company_id) is not None:
            raise ConflictError("You already have an account in this company")
        if caller.account_family_id and await self.repository.family_has_company(
            db, caller.account_family_id, company_id
        ):
            raise ConflictError("You already have an account in this company")
        if await self.repository.username_exists(db, data.username):
            raise ConflictError("Username already taken")

        try:
            resolved_family = self._resolve_family_id(caller, family_id)
            account = Account(
                username=data.username,
                hashed_password=get_password_hash(data.password) if data.password else None,
                first_name=data.first_name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                bank_account=data.bank_account,
                discord_username=caller.discord_username,
                avatar_url=caller.avatar_url,
                system_role=SystemRole.USER.value,
                is_active=True,
                company_validated=False,
                account_family_id=resolved_family,
                advances=0.0,
                bonuses=0.0,
                memberships=[],
            )
            db.add(account)
            await db.flush()

            await self.invitation_codes.consume(db, account, data.company_code, ip_address, user_agent)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Linked account creation conflicted", username=data.username, error=str(e))
            raise ConflictError("Username already taken or account already exists")
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Linked account created",
            account_id=str(caller.id),
            linked_account_id=str(account.id),
            company_id=str(company_id),
            family_id=resolved_family,
        )
        return self.build_summary(account, caller.id)

    async def delete_linked_account(self, db: AsyncSession, caller: Account, target_id: UUID) -> None:
        target = await self._get_sibling(db, caller, target_id)
        if target.id == caller.id:
            raise InvalidStateError("The account in use cannot be deleted")
        await self.repository.delete(db, db_obj=target)
        logger.info("Linked account deleted", account_id=str(caller.id), target_id=str(target_id))

    async def set_current_company(self, db: AsyncSession, account: Account, company_id: UUID) -> AccountProjection:
        try:
            account.set_current_company(company_id)
        except ValueError:
            raise NotCompanyMemberError()
        await db.commit()
        logger.info("Current company changed", account_id=str(account.id), company_id=str(company_id))
        return self.build_projection(account)

    async def complete_profile(
        self,
        db: AsyncSession,
        account: Account,
        data: ProfileCompletionRequest,
    ) -> AccountProjection:
        changes = {
            "first_name": data.first_name,
            "last_name": data.last_name,
        }
        if data.phone_number is not None:
            changes["phone_number"] = data.phone_number
        if data.bank_account is not None:
            changes["bank_account"] = data.bank_account
        if data.email:
            email = normalize_email(data.email)
            owner = await self.repository.get_by_email(db, email)
            if owner is not None and owner.id != account.id:
                raise ConflictError("Email already in use")
            changes["email"] = email

        try:
            account = await self.repository.update(db, db_obj=account, obj_in=changes)
        except IntegrityError:
            raise ConflictError("Email already in use")
        logger.info("Profile completed", account_id=str(account.id))
        return self.build_projection(account)


account_graph_service = AccountGraphService()
