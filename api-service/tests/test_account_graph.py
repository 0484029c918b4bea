"""
Tests for the account identity graph
Linked accounts, switching and family id resolution
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from fastapi import HTTPException

from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotCompanyMemberError,
    NotFoundError,
)
from app.core.security import get_password_hash, verify_token
from app.models.account import Account
from app.schemas.account import LinkedAccountCreateRequest
from app.services.account_graph import AccountGraphService, next_login_time, system_role_label


# ==================== Fixtures ====================


@pytest.fixture
def graph_service():
    """Create an AccountGraphService with mocked collaborators"""
    service = AccountGraphService()
    service.repository = AsyncMock()
    service.invitation_codes = AsyncMock()
    return service


@pytest.fixture
def mock_db():
    """Create a mock async database session"""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.add = MagicMock(side_effect=lambda obj: setattr(obj, "id", obj.id or uuid4()))
    return db


def make_account(username, family_id=None, **overrides):
    values = {
        "id": uuid4(),
        "username": username,
        "system_role": "user",
        "is_active": True,
        "company_validated": True,
        "account_family_id": family_id,
        "advances": 0.0,
        "bonuses": 0.0,
        "memberships": [],
    }
    values.update(overrides)
    return Account(**values)


@pytest.fixture
def family_id():
    return uuid4().hex


@pytest.fixture
def caller(family_id):
    return make_account("mike", family_id, discord_username="Mike#0001", discord_id="1111")


@pytest.fixture
def sibling(family_id):
    return make_account("mike_ems", family_id, last_login_at=datetime.now(timezone.utc) - timedelta(hours=1))


# ==================== Helpers ====================


def test_next_login_time_is_strictly_increasing():
    previous = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

    assert next_login_time(previous, now=previous) == previous + timedelta(microseconds=1)
    assert next_login_time(previous, now=previous - timedelta(seconds=5)) > previous
    assert next_login_time(previous, now=previous + timedelta(seconds=5)) == previous + timedelta(seconds=5)


def test_next_login_time_accepts_naive_previous():
    previous = datetime(2026, 10, 16, 12, 0)
    now = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

    assert next_login_time(previous, now=now) > now


def test_system_role_label():
    assert system_role_label("technician") == "Technician"
    assert system_role_label("unknown-tier") == "unknown-tier"


# ==================== Linked accounts ====================


class TestListLinkedAccounts:

    @pytest.mark.asyncio
    async def test_account_without_family_lists_itself(self, graph_service, mock_db):
        account = make_account("solo")

        result = await graph_service.list_linked_accounts(mock_db, account)

        assert result.account_family_id is None
        assert [summary.id for summary in result.accounts] == [account.id]
        assert result.accounts[0].is_current
        graph_service.repository.list_family.assert_not_called()

    @pytest.mark.asyncio
    async def test_family_members_are_listed_with_current_flag(self, graph_service, mock_db, caller, sibling, family_id):
        graph_service.repository.list_family.return_value = [caller, sibling]

        result = await graph_service.list_linked_accounts(mock_db, caller)

        assert result.account_family_id == family_id
        assert [(s.username, s.is_current) for s in result.accounts] == [("mike", True), ("mike_ems", False)]


class TestSwitchAccount:

    @pytest.mark.asyncio
    async def test_unknown_target(self, graph_service, mock_db, caller):
        graph_service.repository.get.return_value = None

        with pytest.raises(NotFoundError):
            await graph_service.switch_account(mock_db, caller, uuid4())

    @pytest.mark.asyncio
    async def test_target_outside_family_is_forbidden(self, graph_service, mock_db, caller):
        graph_service.repository.get.return_value = make_account("stranger", uuid4().hex)

        with pytest.raises(ForbiddenError):
            await graph_service.switch_account(mock_db, caller, uuid4())

        graph_service.repository.mark_login.assert_not_called()

    @pytest.mark.asyncio
    async def test_caller_without_family_cannot_switch(self, graph_service, mock_db):
        lonely = make_account("lonely")
        graph_service.repository.get.return_value = make_account("other")

        with pytest.raises(ForbiddenError):
            await graph_service.switch_account(mock_db, lonely, uuid4())

    @pytest.mark.asyncio
    async def test_inactive_target(self, graph_service, mock_db, caller, sibling):
        sibling.is_active = False
        graph_service.repository.get.return_value = sibling

        with pytest.raises(InvalidStateError):
            await graph_service.switch_account(mock_db, caller, sibling.id)

    @pytest.mark.asyncio
    async def test_switch_issues_session_for_target(self, graph_service, mock_db, caller, sibling):
        previous_login = sibling.last_login_at
        graph_service.repository.get.return_value = sibling

        session = await graph_service.switch_account(mock_db, caller, sibling.id)

        assert session.account.id == sibling.id
        assert verify_token(session.access_token) == str(sibling.id)
        mark_login_args = graph_service.repository.mark_login.call_args.args
        assert mark_login_args[1] is sibling
        assert mark_login_args[2] > previous_login
        mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_switch_to_self_is_allowed(self, graph_service, mock_db):
        account = make_account("solo")
        graph_service.repository.get.return_value = account

        session = await graph_service.switch_account(mock_db, account, account.id)

        assert session.account.id == account.id


class TestFamilyResolution:

    def test_caller_family_wins_over_hint(self, graph_service, caller, family_id):
        assert graph_service._resolve_family_id(caller, "other-family") == family_id
        assert caller.account_family_id == family_id

    def test_hint_used_when_caller_has_none(self, graph_service):
        account = make_account("solo")

        assert graph_service._resolve_family_id(account, "trusted-family") == "trusted-family"
        assert account.account_family_id == "trusted-family"

    def test_family_minted_when_nothing_known(self, graph_service):
        account = make_account("solo")

        minted = graph_service._resolve_family_id(account, None)

        assert minted
        assert account.account_family_id == minted


class TestCreateLinkedAccount:

    @pytest.fixture
    def request_data(self):
        return LinkedAccountCreateRequest(
            company_code="ab12cd34",
            username="mike_lspd",
            password="a-long-password",
            first_name="Mike",
            last_name="Bell",
        )

    @pytest.fixture
    def preview(self):
        preview = MagicMock()
        preview.company.id = uuid4()
        return preview

    @pytest.mark.asyncio
    async def test_family_already_in_company(self, graph_service, mock_db, caller, request_data, preview):
        graph_service.invitation_codes.preview.return_value = preview
        graph_service.repository.family_has_company.return_value = True

        with pytest.raises(ConflictError):
            await graph_service.create_linked_account(mock_db, caller, request_data)

        graph_service.invitation_codes.consume.assert_not_called()

    @pytest.mark.asyncio
    async def test_username_taken(self, graph_service, mock_db, caller, request_data, preview):
        graph_service.invitation_codes.preview.return_value = preview
        graph_service.repository.family_has_company.return_value = False
        graph_service.repository.username_exists.return_value = True

        with pytest.raises(ConflictError):
            await graph_service.create_linked_account(mock_db, caller, request_data)

    @pytest.mark.asyncio
    async def test_creates_sibling_in_callers_family(self, graph_service, mock_db, request_data, preview):
        caller = make_account("mike", discord_username="Mike#0001", discord_id="1111", avatar_url="https://cdn/a.png")
        graph_service.invitation_codes.preview.return_value = preview
        graph_service.repository.username_exists.return_value = False

        summary = await graph_service.create_linked_account(mock_db, caller, request_data)

        created = mock_db.add.call_args.args[0]
        assert summary.username == "mike_lspd"
        assert not summary.is_current
        assert caller.account_family_id is not None
        assert created.account_family_id == caller.account_family_id
        assert created.discord_id is None
        assert created.discord_username == "Mike#0001"
        assert created.avatar_url == "https://cdn/a.png"
        assert created.hashed_password != "a-long-password"
        graph_service.invitation_codes.consume.assert_called_once_with(mock_db, created, "AB12CD34", None, None)
        mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_redemption_failure_rolls_back(self, graph_service, mock_db, caller, request_data, preview):
        graph_service.invitation_codes.preview.return_value = preview
        graph_service.repository.family_has_company.return_value = False
        graph_service.repository.username_exists.return_value = False
        graph_service.invitation_codes.consume.side_effect = ConflictError("You are already a member of this company")

        with pytest.raises(ConflictError):
            await graph_service.create_linked_account(mock_db, caller, request_data)

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()


class TestOtherOperations:

    @pytest.mark.asyncio
    async def test_cannot_delete_account_in_use(self, graph_service, mock_db, caller):
        graph_service.repository.get.return_value = caller

        with pytest.raises(InvalidStateError):
            await graph_service.delete_linked_account(mock_db, caller, caller.id)

        graph_service.repository.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_sibling(self, graph_service, mock_db, caller, sibling):
        graph_service.repository.get.return_value = sibling

        await graph_service.delete_linked_account(mock_db, caller, sibling.id)

        graph_service.repository.delete.assert_called_once_with(mock_db, db_obj=sibling)

    @pytest.mark.asyncio
    async def test_current_company_must_be_a_membership(self, graph_service, mock_db, caller):
        with pytest.raises(NotCompanyMemberError):
            await graph_service.set_current_company(mock_db, caller, uuid4())

        mock_db.commit.assert_not_called()


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_valid_credentials(self, graph_service, mock_db):
        account = make_account("boss", hashed_password=get_password_hash("s3cret-pass"))
        graph_service.repository.get_by_username.return_value = account

        session = await graph_service.authenticate(mock_db, "boss", "s3cret-pass")

        assert session.token_type == "bearer"
        assert session.account.username == "boss"
        graph_service.repository.mark_login.assert_called_once()

    @pytest.mark.asyncio
    async def test_wrong_password(self, graph_service, mock_db):
        account = make_account("boss", hashed_password=get_password_hash("s3cret-pass"))
        graph_service.repository.get_by_username.return_value = account

        with pytest.raises(HTTPException) as exc_info:
            await graph_service.authenticate(mock_db, "boss", "nope")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_discord_only_account_cannot_use_password(self, graph_service, mock_db):
        graph_service.repository.get_by_username.return_value = make_account("discord_user", hashed_password=None)

        with pytest.raises(HTTPException):
            await graph_service.authenticate(mock_db, "discord_user", "anything")
