"""
Invitation Code Service
Generation, redemption and housekeeping of company invitation codes.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    CodeDeactivatedError,
    CodeExhaustedError,
    CodeExpiredError,
    ConflictError,
    InvalidCodeError,
    InvalidStateError,
    NotFoundError,
    UpstreamFailureError,
)
from app.core.rbac import EMPLOYEE_BASE_PERMISSIONS, EMPLOYEE_ROLE_NAME
from app.core.simple_config import settings
from app.models.base import as_utc, utcnow
from app.models.invitation_code import InvitationCode, InvitationCodeStatus
from app.models.membership import CompanyMembership
from app.models.role import Role
from app.repositories.company import company_repository
from app.repositories.invitation_code import invitation_code_repository
from app.repositories.membership import membership_repository
from app.repositories.permission import permission_repository
from app.repositories.role import role_repository
from app.schemas.company import CompanySummary
from app.schemas.invitation_code import (
    ExpireSweepOut,
    InvitationCodeCreateRequest,
    InvitationCodeOut,
    InvitationCodePreview,
    InvitationCodeStats,
    InvitationCodeUsageOut,
    RedemptionOut,
)
from app.schemas.role import RoleSummary

logger = structlog.get_logger()

CODE_LENGTH = 8
MAX_GENERATION_ATTEMPTS = 10

_STATUS_ERRORS = {
    InvitationCodeStatus.EXHAUSTED: CodeExhaustedError,
    InvitationCodeStatus.EXPIRED: CodeExpiredError,
    InvitationCodeStatus.DEACTIVATED: CodeDeactivatedError,
}


def generate_code_value() -> str:
    """Eight uppercase hexadecimal characters"""
    return secrets.token_hex(CODE_LENGTH // 2).upper()


def raise_for_status(code: InvitationCode, now: Optional[datetime] = None) -> None:
    """Raise the error matching a non-redeemable code"""
    error = _STATUS_ERRORS.get(code.status(now))
    if error is not None:
        raise error()


class InvitationCodeService:
    def __init__(self):
        self.repository = invitation_code_repository
        self.companies = company_repository
        self.memberships = membership_repository
        self.roles = role_repository
        self.permissions = permission_repository

    def to_stats(self, code: InvitationCode, now: Optional[datetime] = None) -> InvitationCodeStats:
        now = now or utcnow()
        return InvitationCodeStats(
            total_uses=code.current_uses,
            max_uses=code.max_uses,
            remaining_uses=code.remaining_uses,
            is_active=code.is_active,
            is_expired=code.is_expired(now),
            status=code.status(now).value,
            last_used_at=code.last_used_at,
        )

    def to_out(self, code: InvitationCode, now: Optional[datetime] = None) -> InvitationCodeOut:
        return InvitationCodeOut(
            id=code.id,
            code=code.code,
            company_id=code.company_id,
            description=code.description,
            created_by_id=code.created_by_id,
            expires_at=code.expires_at,
            created_at=code.created_at,
            stats=self.to_stats(code, now),
        )

    async def _unique_code(self, db: AsyncSession) -> str:
        for _ in range(MAX_GENERATION_ATTEMPTS):
            candidate = generate_code_value()
            if not await self.repository.code_exists(db, candidate):
                return candidate
        logger.error("Could not generate a unique invitation code", attempts=MAX_GENERATION_ATTEMPTS)
        raise UpstreamFailureError("Could not generate a unique invitation code")

    async def generate(
        self,
        db: AsyncSession,
        company_id: UUID,
        issuer_id: Optional[UUID],
        data: InvitationCodeCreateRequest,
    ) -> InvitationCodeOut:
        company = await self.companies.get(db, id=company_id)
        if company is None:
            raise NotFoundError("Company not found")

        now = utcnow()
        expires_at = as_utc(data.expires_at)
        if data.expires_in_days is not None:
            expires_at = now + timedelta(days=data.expires_in_days)
        if expires_at is not None and expires_at <= now:
            raise InvalidStateError("Expiry must be in the future")

        code = await self.repository.create(
            db,
            obj_in={
                "code": await self._unique_code(db),
                "company_id": company.id,
                "created_by_id": issuer_id,
                "description": data.description,
                "is_active": True,
                "expires_at": expires_at,
                "max_uses": data.max_uses,
                "current_uses": 0,
            },
        )
        logger.info(
            "Invitation code generated",
            code=code.code,
            company_id=str(company.id),
            max_uses=code.max_uses,
            expires_at=str(expires_at) if expires_at else None,
        )
        return self.to_out(code, now)

    async def get_for_company(self, db: AsyncSession, company_id: UUID, code_value: str) -> InvitationCode:
        code = await self.repository.get_by_code(db, code_value)
        # Codes of other companies are reported as unknown
        if code is None or code.company_id != company_id:
            raise InvalidCodeError()
        return code

    async def list_codes(self, db: AsyncSession, company_id: UUID, active_only: bool = False) -> list[InvitationCodeOut]:
        now = utcnow()
        codes = await self.repository.list_for_company(db, company_id, active_only=active_only)
        return [self.to_out(code, now) for code in codes]

    async def usage_history(self, db: AsyncSession, company_id: UUID, code_value: str) -> list[InvitationCodeUsageOut]:
        code = await self.get_for_company(db, company_id, code_value)
        usages = await self.repository.list_usages(db, code.id)
        return [InvitationCodeUsageOut.model_validate(usage) for usage in usages]

    async def usage_stats(self, db: AsyncSession, company_id: UUID, code_value: str) -> InvitationCodeStats:
        code = await self.get_for_company(db, company_id, code_value)
        return self.to_stats(code)

    async def deactivate(self, db: AsyncSession, company_id: UUID, code_value: str) -> InvitationCodeOut:
        code = await self.get_for_company(db, company_id, code_value)
        if code.is_active and not code.is_exhausted:
            code = await self.repository.update(db, db_obj=code, obj_in={"is_active": False})
            logger.info("Invitation code deactivated", code=code.code, company_id=str(company_id))
        return self.to_out(code)

    async def activate(self, db: AsyncSession, company_id: UUID, code_value: str) -> InvitationCodeOut:
        code = await self.get_for_company(db, company_id, code_value)
        if code.is_exhausted:
            raise CodeExhaustedError("An exhausted invitation code cannot be reactivated")
        if code.is_expired():
            raise CodeExpiredError("An expired invitation code cannot be reactivated")
        if not code.is_active:
            code = await self.repository.update(db, db_obj=code, obj_in={"is_active": True})
            logger.info("Invitation code reactivated", code=code.code, company_id=str(company_id))
        return self.to_out(code)

    async def preview(self, db: AsyncSession, code_value: str) -> InvitationCodePreview:
        """Public validation: what joining with this code would give"""
        code = await self.repository.get_by_code(db, code_value)
        if code is None:
            raise InvalidCodeError()
        raise_for_status(code)
        return InvitationCodePreview(
            code=code.code,
            company=CompanySummary.model_validate(code.company),
            remaining_uses=code.remaining_uses,
            expires_at=code.expires_at,
        )

    async def ensure_default_role(self, db: AsyncSession, company_id: UUID) -> Role:
        role = await self.roles.get_default(db, company_id)
        if role is not None:
            return role

        role = await self.roles.get_by_name(db, company_id, EMPLOYEE_ROLE_NAME)
        if role is not None:
            role.is_default = True
            role.is_active = True
            await db.flush()
            return role

        permissions = await self.permissions.get_by_codes(db, EMPLOYEE_BASE_PERMISSIONS)
        role = Role(
            name=EMPLOYEE_ROLE_NAME,
            description="Default role for new employees",
            company_id=company_id,
            permission_overrides={},
            is_default=True,
            is_active=True,
            permissions=permissions,
        )
        db.add(role)
        await db.flush()
        logger.info("Default role created", company_id=str(company_id), role_id=str(role.id))
        return role

    async def consume(
        self,
        db: AsyncSession,
        account,
        code_value: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CompanyMembership:
        """
        Redeem a code for ``account`` without committing.

        The use counter is incremented by a single conditional UPDATE; when it
        matches no row the stored state decides which error is raised.
        """
        now = utcnow()
        code = await self.repository.get_by_code(db, code_value)
        if code is None:
            raise InvalidCodeError()
        raise_for_status(code, now)

        existing = await self.memberships.get_for(db, account_id=account.id, company_id=code.company_id)
        if existing is not None and existing.is_active:
            raise ConflictError("You are already a member of this company")

        if not await self.repository.try_consume(db, code.id, now):
            code = await self.repository.get_by_code(db, code_value, refresh=True)
            if code is None:
                raise InvalidCodeError()
            raise_for_status(code, now)
            raise CodeExhaustedError()

        await self.repository.add_usage(
            db,
            code_id=code.id,
            account_id=account.id,
            used_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        role = await self.ensure_default_role(db, code.company_id)
        company = code.company

        if existing is not None:
            existing.is_active = True
            existing.joined_at = now
            existing.assign_role(role)
            membership = existing
        else:
            membership = CompanyMembership(
                account=account,
                company=company,
                company_id=company.id,
                is_active=True,
                joined_at=now,
            )
            membership.assign_role(role)
            db.add(membership)

        if account.current_company_id is None:
            account.set_current_company(company.id)
        account.company_validated = True
        await db.flush()

        logger.info(
            "Invitation code redeemed",
            code=code.code,
            company_id=str(company.id),
            account_id=str(account.id),
            role_id=str(role.id),
        )
        return membership

    async def redeem(
        self,
        db: AsyncSession,
        account,
        code_value: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RedemptionOut:
        try:
            membership = await self.consume(db, account, code_value, ip_address, user_agent)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Invitation code redemption conflicted", code=code_value, error=str(e))
            raise ConflictError("You are already a member of this company")
        except Exception:
            await db.rollback()
            raise

        return RedemptionOut(
            company=CompanySummary.model_validate(membership.company),
            role=RoleSummary.model_validate(membership.role) if membership.role else None,
            current_company_id=account.current_company_id,
        )

    async def expire_sweep(self, db: AsyncSession, now: Optional[datetime] = None) -> ExpireSweepOut:
        now = now or utcnow()
        deactivated = await self.repository.deactivate_expired(db, now)
        deleted_expired = await self.repository.delete_expired_before(
            db, now - timedelta(days=settings.INVITATION_CODE_RETENTION_DAYS)
        )
        deleted_exhausted = await self.repository.delete_exhausted_before(
            db, now - timedelta(days=settings.INVITATION_CODE_CONSUMED_RETENTION_DAYS)
        )
        await db.commit()

        logger.info(
            "Invitation code sweep completed",
            deactivated=deactivated,
            deleted_expired=deleted_expired,
            deleted_exhausted=deleted_exhausted,
        )
        return ExpireSweepOut(
            deactivated=deactivated,
            deleted_expired=deleted_expired,
            deleted_exhausted=deleted_exhausted,
        )


invitation_code_service = InvitationCodeService()
