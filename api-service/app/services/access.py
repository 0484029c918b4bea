"""
Access Decision Point.

``check_access`` is the single place where the technician bypass, membership,
role and permission rules are evaluated. It returns a decision value; callers
that want an exception use ``AccessDecision.raise_for_denial``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InsufficientPermissionsError,
    NoRoleAssignedError,
    NotCompanyMemberError,
    NotFoundError,
)
from app.core.permission_resolver import DBPermissionResolver, ResolvedAccess
from app.core.rbac import ALL_PERMISSION_CODES, PermissionCategory, accessible_categories, has_category_access, parse_category
from app.repositories.account import account_repository
from app.repositories.membership import membership_repository
from app.repositories.permission import permission_repository
from app.repositories.role import role_repository

logger = structlog.get_logger()


class AccessDenialReason(str, Enum):
    NOT_COMPANY_MEMBER = "NOT_COMPANY_MEMBER"
    NO_ROLE_ASSIGNED = "NO_ROLE_ASSIGNED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[AccessDenialReason] = None
    company_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    required: tuple[str, ...] = ()
    required_category: Optional[str] = None
    held: frozenset[str] = field(default_factory=frozenset)
    bypass: bool = False

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        if self.reason == AccessDenialReason.NOT_COMPANY_MEMBER:
            raise NotCompanyMemberError()
        if self.reason == AccessDenialReason.NO_ROLE_ASSIGNED:
            raise NoRoleAssignedError()
        raise InsufficientPermissionsError(
            required=self.required,
            held=self.held,
            required_category=self.required_category,
        )


class AccessService:
    def __init__(self):
        self.accounts = account_repository
        self.resolver = DBPermissionResolver(membership_repository, role_repository, permission_repository)

    async def resolve(self, db: AsyncSession, account, company_id: Optional[UUID]) -> ResolvedAccess:
        if company_id is None:
            return ResolvedAccess()
        return await self.resolver.resolve_for_account(db, account, company_id)

    async def check_access(
        self,
        db: AsyncSession,
        account,
        company_id: Optional[UUID],
        required_codes: Iterable[str] = (),
        required_category: Optional[str | PermissionCategory] = None,
    ) -> AccessDecision:
        """
        Decide whether ``account`` may act in ``company_id``.

        Any one of ``required_codes`` is sufficient; when a category is also
        given, both conditions must hold.
        """
        required = tuple(sorted(set(required_codes)))
        category = parse_category(required_category).value if required_category else None

        if account.is_technician:
            logger.debug("Access granted by system role", account_id=str(account.id), company_id=str(company_id))
            return AccessDecision(
                allowed=True,
                company_id=company_id,
                required=required,
                required_category=category,
                held=frozenset(ALL_PERMISSION_CODES),
                bypass=True,
            )

        resolved = await self.resolve(db, account, company_id)

        if not resolved.is_member:
            return self._deny(account, company_id, AccessDenialReason.NOT_COMPANY_MEMBER, required, category)

        if not resolved.has_role:
            return self._deny(account, company_id, AccessDenialReason.NO_ROLE_ASSIGNED, required, category)

        held = resolved.permissions
        role_id = resolved.role.id

        if required and not held.intersection(required):
            return self._deny(
                account, company_id, AccessDenialReason.INSUFFICIENT_PERMISSIONS, required, category, held, role_id
            )

        if category and not has_category_access(held, category, resolved.category_by_code):
            return self._deny(
                account, company_id, AccessDenialReason.INSUFFICIENT_PERMISSIONS, required, category, held, role_id
            )

        return AccessDecision(
            allowed=True,
            company_id=company_id,
            role_id=role_id,
            required=required,
            required_category=category,
            held=held,
        )

    def _deny(self, account, company_id, reason, required, category, held=frozenset(), role_id=None) -> AccessDecision:
        logger.warning(
            "Access denied",
            account_id=str(account.id),
            company_id=str(company_id) if company_id else None,
            reason=reason.value,
            required=list(required),
            required_category=category,
            held=sorted(held),
        )
        return AccessDecision(
            allowed=False,
            reason=reason,
            company_id=company_id,
            role_id=role_id,
            required=required,
            required_category=category,
            held=frozenset(held),
        )

    async def check_access_by_id(
        self,
        db: AsyncSession,
        account_id: UUID,
        company_id: Optional[UUID],
        required_codes: Iterable[str] = (),
        required_category: Optional[str] = None,
    ) -> AccessDecision:
        account = await self.accounts.get(db, id=account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return await self.check_access(db, account, company_id, required_codes, required_category)

    async def resolve_role_permissions(self, db: AsyncSession, role_id: UUID) -> frozenset[str]:
        permissions = await self.resolver.resolve_role(db, role_id)
        if permissions is None:
            raise NotFoundError("Role not found")
        return permissions

    async def accessible_categories(self, db: AsyncSession, account, company_id: Optional[UUID]) -> tuple[list[str], list[str]]:
        """Categories and permission codes available to the account in a company"""
        if account.is_technician:
            return [category.value for category in PermissionCategory], sorted(ALL_PERMISSION_CODES)

        resolved = await self.resolve(db, account, company_id)
        if not resolved.has_role:
            return [], []
        categories = accessible_categories(resolved.permissions, resolved.category_by_code)
        return [category.value for category in categories], sorted(resolved.permissions)


access_service = AccessService()
