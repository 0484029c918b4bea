"""
Company Service
Company creation with its preset roles, and membership management.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, ForbiddenError, NotFoundError
from app.core.rbac import (
    ADMIN_ROLE_NAME,
    ALL_PERMISSION_CODES,
    COMPANY_CREATOR_ROLES,
    EMPLOYEE_BASE_PERMISSIONS,
    EMPLOYEE_ROLE_NAME,
    ContractType,
    SystemRole,
)
from app.models.base import utcnow
from app.models.company import Company
from app.models.membership import CompanyMembership
from app.models.role import Role
from app.repositories.account import account_repository
from app.repositories.company import company_repository
from app.repositories.membership import membership_repository
from app.repositories.role import role_repository
from app.schemas.company import CompanyCreateRequest, CompanyOut, MemberOut
from app.schemas.role import RoleSummary
from app.services.permission_catalog import permission_catalog_service

logger = structlog.get_logger()


def to_member_out(membership: CompanyMembership) -> MemberOut:
    account = membership.account
    return MemberOut(
        account_id=membership.account_id,
        username=account.username,
        display_name=account.display_name,
        role=RoleSummary.model_validate(membership.role) if membership.role else None,
        is_active=membership.is_active,
        joined_at=membership.joined_at,
    )


class CompanyService:
    def __init__(self):
        self.repository = company_repository
        self.accounts = account_repository
        self.memberships = membership_repository
        self.roles = role_repository
        self.catalog = permission_catalog_service

    async def create_company(self, db: AsyncSession, caller, data: CompanyCreateRequest) -> CompanyOut:
        if SystemRole(caller.system_role) not in COMPANY_CREATOR_ROLES:
            raise ForbiddenError("Only technicians and super administrators can create companies")
        if await self.repository.get_by_name(db, data.name):
            raise ConflictError("A company with this name already exists")

        owner = caller
        if data.owner_account_id and data.owner_account_id != caller.id:
            owner = await self.accounts.get(db, id=data.owner_account_id)
            if owner is None:
                raise NotFoundError("Owner account not found")

        try:
            company = Company(
                name=data.name,
                description=data.description,
                category=data.category,
                is_active=True,
                owner_id=owner.id,
            )
            db.add(company)
            await db.flush()

            admin_role = Role(
                name=ADMIN_ROLE_NAME,
                description="Full access to the company",
                company_id=company.id,
                permission_overrides={},
                is_default=False,
                is_active=True,
                contract_type=ContractType.DIRECTION.value,
                created_by_id=caller.id,
                permissions=await self.catalog.get_permissions(db, ALL_PERMISSION_CODES),
            )
            employee_role = Role(
                name=EMPLOYEE_ROLE_NAME,
                description="Default role for new employees",
                company_id=company.id,
                permission_overrides={},
                is_default=True,
                is_active=True,
                created_by_id=caller.id,
                permissions=await self.catalog.get_permissions(db, EMPLOYEE_BASE_PERMISSIONS),
            )
            db.add_all([admin_role, employee_role])
            await db.flush()

            membership = CompanyMembership(
                account=owner,
                company=company,
                company_id=company.id,
                is_active=True,
                joined_at=utcnow(),
            )
            membership.assign_role(admin_role)
            db.add(membership)

            if owner.current_company_id is None:
                owner.set_current_company(company.id)
            owner.company_validated = True
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Company creation conflicted", name=data.name, error=str(e))
            raise ConflictError("A company with this name already exists")

        await db.refresh(company)
        logger.info(
            "Company created",
            company_id=str(company.id),
            owner_id=str(owner.id),
            created_by=str(caller.id),
        )
        return CompanyOut.model_validate(company)

    async def get_company(self, db: AsyncSession, company_id: UUID) -> Company:
        company = await self.repository.get(db, id=company_id)
        if company is None:
            raise NotFoundError("Company not found")
        return company

    async def list_members(self, db: AsyncSession, company_id: UUID, active_only: bool = True) -> list[MemberOut]:
        memberships = await self.memberships.list_for_company(db, company_id, active_only=active_only)
        return [to_member_out(membership) for membership in memberships]

    async def _get_member(self, db: AsyncSession, company_id: UUID, account_id: UUID) -> CompanyMembership:
        membership = await self.memberships.get_active(db, account_id=account_id, company_id=company_id)
        if membership is None:
            raise NotFoundError("Member not found")
        return membership

    async def assign_role(self, db: AsyncSession, company_id: UUID, account_id: UUID, role_id: UUID) -> MemberOut:
        membership = await self._get_member(db, company_id, account_id)
        role = await self.roles.get(db, id=role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if role.company_id != company_id:
            logger.warning(
                "Cross-company role assignment refused",
                company_id=str(company_id),
                role_id=str(role_id),
            )
            raise ForbiddenError("Role belongs to another company")

        membership.assign_role(role)
        await db.commit()
        logger.info(
            "Member role assigned",
            company_id=str(company_id),
            account_id=str(account_id),
            role_id=str(role.id),
        )
        return to_member_out(membership)

    async def remove_member(self, db: AsyncSession, company_id: UUID, account_id: UUID) -> None:
        membership = await self._get_member(db, company_id, account_id)
        membership.is_active = False
        await self.accounts.clear_current_company(db, account_id, company_id)
        await db.commit()
        logger.info("Member removed", company_id=str(company_id), account_id=str(account_id))


company_service = CompanyService()
