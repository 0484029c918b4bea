"""
Effective permission resolution.

The pure merge of a role's base grants with its override map lives here, plus
the resolver seam that performs the explicit membership -> role -> permissions
read for a given account and company.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from app.core.rbac import CATEGORY_BY_CODE


def resolve_effective_permissions(
    base_codes: Iterable[str],
    overrides: Optional[Mapping[str, Any]] = None,
) -> frozenset[str]:
    """
    Merge base permission codes with an override map.

    ``True`` overrides add the code, ``False`` overrides remove it even when it
    is part of the base set. An empty result is a normal deny-by-default state.
    """
    effective = set(base_codes)
    for code, granted in (overrides or {}).items():
        if granted:
            effective.add(code)
        else:
            effective.discard(code)
    return frozenset(effective)


@dataclass(frozen=True)
class ResolvedAccess:
    """Outcome of the membership -> role -> permissions read"""
    membership: Any = None
    role: Any = None
    permissions: frozenset[str] = frozenset()
    category_by_code: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_member(self) -> bool:
        return self.membership is not None

    @property
    def has_role(self) -> bool:
        return self.role is not None and bool(getattr(self.role, "is_active", True))


class PermissionResolver(ABC):
    @abstractmethod
    async def resolve_role(self, db: Any, role_id: Any) -> Optional[frozenset[str]]:
        raise NotImplementedError

    @abstractmethod
    async def resolve_for_account(self, db: Any, account: Any, company_id: Any) -> ResolvedAccess:
        raise NotImplementedError


class DBPermissionResolver(PermissionResolver):
    """Database-backed resolver; repositories are injected to keep core free of persistence imports"""

    def __init__(self, membership_repository: Any, role_repository: Any, permission_repository: Any) -> None:
        self.memberships = membership_repository
        self.roles = role_repository
        self.permissions = permission_repository

    async def resolve_role(self, db: Any, role_id: Any) -> Optional[frozenset[str]]:
        role = await self.roles.get(db, id=role_id)
        if role is None:
            return None
        return role.effective_permissions()

    async def _category_map(self, db: Any, role: Any, codes: Iterable[str]) -> dict[str, str]:
        categories = {code: category.value for code, category in CATEGORY_BY_CODE.items()}
        for permission in getattr(role, "permissions", None) or []:
            categories[permission.code] = permission.category
        unknown = [code for code in codes if code not in categories]
        if unknown:
            for permission in await self.permissions.get_by_codes(db, unknown):
                categories[permission.code] = permission.category
        return categories

    async def resolve_for_account(self, db: Any, account: Any, company_id: Any) -> ResolvedAccess:
        membership = await self.memberships.get_active(db, account_id=account.id, company_id=company_id)
        if membership is None:
            return ResolvedAccess()

        if membership.role_id is None:
            return ResolvedAccess(membership=membership)

        role = await self.roles.get(db, id=membership.role_id)
        if role is None or role.company_id != membership.company_id:
            return ResolvedAccess(membership=membership)

        permissions = role.effective_permissions()
        categories = await self._category_map(db, role, permissions)
        return ResolvedAccess(
            membership=membership,
            role=role,
            permissions=permissions,
            category_by_code=categories,
        )
