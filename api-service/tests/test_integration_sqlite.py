"""
Integration tests against a real SQLite database
Company bootstrap, redemption limits, linked accounts and identity merge
"""

import pytest
from sqlalchemy import select

from app.core.errors import (
    CodeExhaustedError,
    ConflictError,
    ForbiddenError,
    InsufficientPermissionsError,
)
from app.core.rbac import ALL_PERMISSION_CODES, EMPLOYEE_BASE_PERMISSIONS, SystemRole
from app.models.account import Account
from app.models.invitation_code import InvitationCodeUsage
from app.models.permission import Permission
from app.repositories.account import account_repository
from app.repositories.invitation_code import invitation_code_repository
from app.schemas.account import LinkedAccountCreateRequest
from app.schemas.company import CompanyCreateRequest
from app.schemas.invitation_code import InvitationCodeCreateRequest
from app.services.access import AccessDenialReason, access_service
from app.services.account_graph import account_graph_service
from app.services.companies import company_service
from app.services.identity_merge import ExternalIdentity, MergeOutcome, identity_merge_service
from app.services.invitation_codes import invitation_code_service
from app.services.permission_catalog import permission_catalog_service
from app.services.roles import role_service


# ==================== Helpers ====================


async def create_account(session, username, system_role=SystemRole.USER.value, **values):
    account = Account(
        username=username,
        system_role=system_role,
        is_active=True,
        company_validated=False,
        advances=0.0,
        bonuses=0.0,
        memberships=[],
        **values,
    )
    session.add(account)
    await session.commit()
    return account


async def bootstrap_company(session, name="Bean Machine"):
    """Seed the catalog and let a technician create a company"""
    await permission_catalog_service.seed(session)
    technician = await create_account(session, "technician", SystemRole.TECHNICIAN.value)
    company = await company_service.create_company(session, technician, CompanyCreateRequest(name=name))
    return technician, company


# ==================== Catalog ====================


@pytest.mark.asyncio
async def test_catalog_seed_is_idempotent(db_session):
    first = await permission_catalog_service.seed(db_session)
    second = await permission_catalog_service.seed(db_session)

    result = await db_session.execute(select(Permission.code))
    assert first == len(ALL_PERMISSION_CODES)
    assert second == 0
    assert sorted(result.scalars().all()) == sorted(ALL_PERMISSION_CODES)


@pytest.mark.asyncio
async def test_catalog_grouped_by_category(db_session):
    await permission_catalog_service.seed(db_session)

    groups = await permission_catalog_service.list_grouped(db_session)

    assert [group.category for group in groups] == ["GENERALE", "PAPERASSE", "ADMINISTRATION", "GESTION"]
    assert sum(len(group.permissions) for group in groups) == len(ALL_PERMISSION_CODES)


# ==================== Company bootstrap and access ====================


@pytest.mark.asyncio
async def test_company_creation_makes_owner_admin(db_session):
    technician, company = await bootstrap_company(db_session)

    roles = await role_service.list_roles(db_session, company.id)
    decision = await access_service.check_access(db_session, technician, company.id, ["MANAGE_ROLES"])

    assert sorted(role.name for role in roles) == ["Admin", "Employee"]
    assert [role.name for role in roles if role.is_default] == ["Employee"]
    assert technician.current_company_id == company.id
    assert decision.allowed


@pytest.mark.asyncio
async def test_regular_user_cannot_create_company(db_session):
    await permission_catalog_service.seed(db_session)
    user = await create_account(db_session, "civilian")

    with pytest.raises(ForbiddenError):
        await company_service.create_company(db_session, user, CompanyCreateRequest(name="Pillbox"))


@pytest.mark.asyncio
async def test_redeemed_employee_gets_default_role_permissions(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(db_session, company.id, technician.id, InvitationCodeCreateRequest())
    employee = await create_account(db_session, "employee")

    redemption = await invitation_code_service.redeem(db_session, employee, code.code, ip_address="10.0.0.7")

    assert redemption.company.id == company.id
    assert redemption.role.name == "Employee"
    assert redemption.current_company_id == company.id
    assert employee.current_company_id == company.id
    assert employee.company.id == company.id

    allowed = await access_service.check_access(db_session, employee, company.id, ["CREATE_FACTURES"])
    denied = await access_service.check_access(db_session, employee, company.id, ["MANAGE_ROLES"])

    assert allowed.allowed
    assert denied.reason == AccessDenialReason.INSUFFICIENT_PERMISSIONS
    assert denied.held == frozenset(EMPLOYEE_BASE_PERMISSIONS)
    with pytest.raises(InsufficientPermissionsError):
        denied.raise_for_denial()


@pytest.mark.asyncio
async def test_removed_member_loses_current_company(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(db_session, company.id, technician.id, InvitationCodeCreateRequest())
    employee = await create_account(db_session, "employee")
    await invitation_code_service.redeem(db_session, employee, code.code)

    await company_service.remove_member(db_session, company.id, employee.id)

    assert employee.current_company_id is None
    assert employee.company is None
    assert employee.membership_for(company.id) is None
    decision = await access_service.check_access(db_session, employee, company.id, ["VIEW_FACTURES"])
    assert decision.reason == AccessDenialReason.NOT_COMPANY_MEMBER


@pytest.mark.asyncio
async def test_false_override_revokes_default_grant(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(db_session, company.id, technician.id, InvitationCodeCreateRequest())
    employee = await create_account(db_session, "employee")
    redemption = await invitation_code_service.redeem(db_session, employee, code.code)

    role = await role_service.set_override(db_session, company.id, redemption.role.id, "CREATE_FACTURES", False)
    decision = await access_service.check_access(db_session, employee, company.id, ["CREATE_FACTURES"])

    assert "CREATE_FACTURES" in role.base_permissions
    assert "CREATE_FACTURES" not in role.effective_permissions
    assert not decision.allowed
    assert decision.held == {"VIEW_GENERALE_CATEGORY", "VIEW_PAPERASSE_CATEGORY", "VIEW_FACTURES"}


@pytest.mark.asyncio
async def test_assigned_role_cannot_be_deleted(db_session):
    technician, company = await bootstrap_company(db_session)
    roles = await role_service.list_roles(db_session, company.id)
    admin = next(role for role in roles if role.name == "Admin")

    with pytest.raises(ConflictError):
        await role_service.delete_role(db_session, company.id, admin.id)


# ==================== Redemption limits ====================


@pytest.mark.asyncio
async def test_code_with_max_uses_is_exhausted_after_n_redemptions(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(
        db_session, company.id, technician.id, InvitationCodeCreateRequest(max_uses=2)
    )
    code_value = code.code
    company_id = company.id

    for index in range(2):
        account = await create_account(db_session, f"employee{index}")
        await invitation_code_service.redeem(db_session, account, code_value)

    late = await create_account(db_session, "late_employee")
    with pytest.raises(CodeExhaustedError):
        await invitation_code_service.redeem(db_session, late, code_value)

    stored = await invitation_code_repository.get_by_code(db_session, code_value, refresh=True)
    usages = await db_session.execute(
        select(InvitationCodeUsage).where(InvitationCodeUsage.invitation_code_id == stored.id)
    )
    assert stored.current_uses == 2
    assert stored.is_active is False
    assert len(usages.scalars().all()) == 2
    assert stored.company_id == company_id


@pytest.mark.asyncio
async def test_stale_session_cannot_overshoot_max_uses(session_factory):
    async with session_factory() as setup:
        technician, company = await bootstrap_company(setup)
        code = await invitation_code_service.generate(
            setup, company.id, technician.id, InvitationCodeCreateRequest(max_uses=1)
        )
        code_value = code.code

    async with session_factory() as slow, session_factory() as fast:
        slow_account = await create_account(slow, "slow")
        # The slow session reads the code while it still has a use left
        assert (await invitation_code_repository.get_by_code(slow, code_value)).is_redeemable()

        fast_account = await create_account(fast, "fast")
        await invitation_code_service.redeem(fast, fast_account, code_value)

        with pytest.raises(CodeExhaustedError):
            await invitation_code_service.redeem(slow, slow_account, code_value)

    async with session_factory() as check:
        stored = await invitation_code_repository.get_by_code(check, code_value)
        assert stored.current_uses == 1


@pytest.mark.asyncio
async def test_member_cannot_redeem_twice(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(db_session, company.id, technician.id, InvitationCodeCreateRequest())
    employee = await create_account(db_session, "employee")
    await invitation_code_service.redeem(db_session, employee, code.code)

    with pytest.raises(ConflictError):
        await invitation_code_service.redeem(db_session, employee, code.code)


# ==================== Linked accounts ====================


@pytest.mark.asyncio
async def test_linked_account_lifecycle(db_session):
    technician, bean_machine = await bootstrap_company(db_session)
    pillbox = await company_service.create_company(db_session, technician, CompanyCreateRequest(name="Pillbox"))
    bean_code = await invitation_code_service.generate(db_session, bean_machine.id, technician.id, InvitationCodeCreateRequest())
    pillbox_code = await invitation_code_service.generate(db_session, pillbox.id, technician.id, InvitationCodeCreateRequest())

    mike = await create_account(db_session, "mike", discord_id="1111", discord_username="Mike#0001")
    await invitation_code_service.redeem(db_session, mike, bean_code.code)

    summary = await account_graph_service.create_linked_account(
        db_session,
        mike,
        LinkedAccountCreateRequest(company_code=pillbox_code.code, username="mike_ems", password="a-long-password"),
    )

    assert summary.company.id == pillbox.id
    assert summary.role.name == "Employee"
    assert mike.account_family_id is not None

    linked = await account_graph_service.list_linked_accounts(db_session, mike)
    assert sorted(account.username for account in linked.accounts) == ["mike", "mike_ems"]
    assert [account.username for account in linked.accounts if account.is_current] == ["mike"]

    sibling = await account_repository.get(db_session, id=summary.id)
    assert sibling.discord_id is None
    assert sibling.account_family_id == mike.account_family_id

    session = await account_graph_service.switch_account(db_session, mike, summary.id)
    assert session.account.id == summary.id
    assert session.account.company.id == pillbox.id

    with pytest.raises(ConflictError):
        await account_graph_service.create_linked_account(
            db_session,
            mike,
            LinkedAccountCreateRequest(company_code=pillbox_code.code, username="mike_ems2"),
        )


@pytest.mark.asyncio
async def test_switch_refreshes_last_login_each_time(db_session):
    family = "family-1"
    first = await create_account(db_session, "first", account_family_id=family)
    second = await create_account(db_session, "second", account_family_id=family)

    there = await account_graph_service.switch_account(db_session, first, second.id)
    back = await account_graph_service.switch_account(db_session, second, first.id)
    again = await account_graph_service.switch_account(db_session, first, second.id)

    assert there.account.id == again.account.id == second.id
    assert back.account.id == first.id
    assert again.account.last_login_at > there.account.last_login_at


@pytest.mark.asyncio
async def test_switch_round_trip_restores_projection(db_session):
    technician, company = await bootstrap_company(db_session)
    code = await invitation_code_service.generate(db_session, company.id, technician.id, InvitationCodeCreateRequest())
    family = "family-1"
    first = await create_account(db_session, "first", account_family_id=family, email="first@example.com")
    second = await create_account(db_session, "second", account_family_id=family)
    await invitation_code_service.redeem(db_session, first, code.code)
    await account_graph_service.switch_account(db_session, second, first.id)

    first = await account_repository.get(db_session, id=first.id, refresh=True)
    before = account_graph_service.build_projection(first)

    await account_graph_service.switch_account(db_session, first, second.id)
    back = await account_graph_service.switch_account(db_session, second, first.id)

    assert back.account.company.id == company.id
    assert back.account.model_dump(exclude={"last_login_at"}) == before.model_dump(exclude={"last_login_at"})
    assert back.account.last_login_at > before.last_login_at


@pytest.mark.asyncio
async def test_switch_outside_family_is_forbidden(db_session):
    first = await create_account(db_session, "first", account_family_id="family-1")
    stranger = await create_account(db_session, "stranger", account_family_id="family-2")

    with pytest.raises(ForbiddenError):
        await account_graph_service.switch_account(db_session, first, stranger.id)


# ==================== Identity merge ====================


@pytest.mark.asyncio
async def test_merge_is_idempotent(session_factory):
    identity = ExternalIdentity(external_id="4242", username="Nelly", email="nelly@example.com")

    async with session_factory() as session:
        created = await identity_merge_service.merge(session, identity)
        created_id = created.account.id

    async with session_factory() as session:
        again = await identity_merge_service.merge(session, identity)
        count = await session.execute(select(Account).where(Account.discord_id == "4242"))

        assert created.outcome == MergeOutcome.CREATED
        assert again.outcome == MergeOutcome.EXISTING
        assert again.account.id == created_id
        assert len(count.scalars().all()) == 1
        assert again.account.hashed_password is None
        assert again.requires_company_code


@pytest.mark.asyncio
async def test_merge_links_existing_email_account(db_session):
    existing = await create_account(db_session, "nelly_rp", email="nelly@example.com")

    result = await identity_merge_service.merge(
        db_session, ExternalIdentity(external_id="4242", username="Nelly", email="Nelly@Example.com")
    )

    assert result.outcome == MergeOutcome.LINKED
    assert result.account.id == existing.id
    assert result.account.username == "nelly_rp"
    assert result.account.discord_id == "4242"


@pytest.mark.asyncio
async def test_merge_refuses_email_owned_by_other_discord_identity(db_session):
    await create_account(db_session, "nelly_rp", email="nelly@example.com", discord_id="1")

    with pytest.raises(ConflictError):
        await identity_merge_service.merge(
            db_session, ExternalIdentity(external_id="2", username="Impostor", email="nelly@example.com")
        )
