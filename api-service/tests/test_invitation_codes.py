"""
Tests for Invitation Code Service
Unit tests for code generation, status rules and redemption failures
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

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
from app.models.company import Company
from app.models.invitation_code import InvitationCode, InvitationCodeStatus
from app.schemas.invitation_code import InvitationCodeCreateRequest
from app.services.invitation_codes import (
    InvitationCodeService,
    generate_code_value,
    raise_for_status,
)


# ==================== Fixtures ====================


@pytest.fixture
def code_service():
    """Create an InvitationCodeService with mocked repositories"""
    service = InvitationCodeService()
    service.repository = AsyncMock()
    service.companies = AsyncMock()
    service.memberships = AsyncMock()
    service.roles = AsyncMock()
    service.permissions = AsyncMock()
    return service


@pytest.fixture
def mock_db():
    """Create a mock async database session"""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    return db


@pytest.fixture
def company():
    return Company(id=uuid4(), name="Bean Machine", is_active=True)


def make_code(company, **overrides):
    values = {
        "id": uuid4(),
        "code": "AB12CD34",
        "company_id": company.id,
        "is_active": True,
        "expires_at": None,
        "max_uses": None,
        "current_uses": 0,
        "created_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    code = InvitationCode(**values)
    code.company = company
    return code


@pytest.fixture
def redeeming_account():
    account = MagicMock()
    account.id = uuid4()
    account.current_company_id = None
    account.company_validated = False
    return account


# ==================== Status rules ====================


def test_generated_code_is_eight_uppercase_hex_chars():
    value = generate_code_value()

    assert len(value) == 8
    assert value == value.upper()
    int(value, 16)


class TestCodeStatus:

    def test_fresh_code_is_active(self, company):
        code = make_code(company)

        assert code.status() == InvitationCodeStatus.ACTIVE
        assert code.is_redeemable()
        raise_for_status(code)

    def test_used_code_with_uses_left_is_consumed(self, company):
        code = make_code(company, max_uses=3, current_uses=1)

        assert code.status() == InvitationCodeStatus.CONSUMED
        assert code.remaining_uses == 2
        assert code.is_redeemable()

    def test_unlimited_code_has_no_remaining_count(self, company):
        assert make_code(company, current_uses=40).remaining_uses is None

    def test_exhaustion_wins_over_expiry_and_deactivation(self, company):
        code = make_code(
            company,
            max_uses=1,
            current_uses=1,
            is_active=False,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )

        with pytest.raises(CodeExhaustedError):
            raise_for_status(code)

    def test_expiry_wins_over_deactivation(self, company):
        code = make_code(company, is_active=False, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))

        with pytest.raises(CodeExpiredError):
            raise_for_status(code)

    def test_deactivated(self, company):
        with pytest.raises(CodeDeactivatedError):
            raise_for_status(make_code(company, is_active=False))

    def test_naive_expiry_is_treated_as_utc(self, company):
        past = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=1)

        assert make_code(company, expires_at=past).is_expired()


# ==================== Generation ====================


class TestGenerate:

    @pytest.mark.asyncio
    async def test_generate_success(self, code_service, mock_db, company):
        issuer_id = uuid4()
        code_service.companies.get.return_value = company
        code_service.repository.code_exists.return_value = False
        code_service.repository.create.side_effect = lambda db, obj_in: make_code(company, **obj_in)

        result = await code_service.generate(
            mock_db, company.id, issuer_id, InvitationCodeCreateRequest(max_uses=5, expires_in_days=7)
        )

        assert len(result.code) == 8
        assert result.company_id == company.id
        assert result.created_by_id == issuer_id
        assert result.stats.max_uses == 5
        assert result.stats.remaining_uses == 5
        assert result.stats.status == "active"
        assert result.expires_at > datetime.now(timezone.utc) + timedelta(days=6)

    @pytest.mark.asyncio
    async def test_generate_for_unknown_company(self, code_service, mock_db):
        code_service.companies.get.return_value = None

        with pytest.raises(NotFoundError):
            await code_service.generate(mock_db, uuid4(), uuid4(), InvitationCodeCreateRequest())

        code_service.repository.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_with_past_expiry(self, code_service, mock_db, company):
        code_service.companies.get.return_value = company
        data = InvitationCodeCreateRequest(expires_at=datetime.now(timezone.utc) - timedelta(days=1))

        with pytest.raises(InvalidStateError):
            await code_service.generate(mock_db, company.id, uuid4(), data)

    @pytest.mark.asyncio
    async def test_generate_gives_up_after_repeated_collisions(self, code_service, mock_db, company):
        code_service.companies.get.return_value = company
        code_service.repository.code_exists.return_value = True

        with pytest.raises(UpstreamFailureError):
            await code_service.generate(mock_db, company.id, uuid4(), InvitationCodeCreateRequest())


# ==================== Management ====================


class TestManagement:

    @pytest.mark.asyncio
    async def test_code_of_another_company_is_unknown(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(company)

        with pytest.raises(InvalidCodeError):
            await code_service.get_for_company(mock_db, uuid4(), "AB12CD34")

    @pytest.mark.asyncio
    async def test_deactivate_active_code(self, code_service, mock_db, company):
        code = make_code(company)
        code_service.repository.get_by_code.return_value = code
        code_service.repository.update.return_value = make_code(company, is_active=False)

        result = await code_service.deactivate(mock_db, company.id, code.code)

        assert result.stats.status == "deactivated"
        code_service.repository.update.assert_called_once_with(mock_db, db_obj=code, obj_in={"is_active": False})

    @pytest.mark.asyncio
    async def test_deactivate_is_idempotent(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(company, is_active=False)

        result = await code_service.deactivate(mock_db, company.id, "AB12CD34")

        assert result.stats.status == "deactivated"
        code_service.repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_deactivate_exhausted_code_is_noop(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(company, max_uses=2, current_uses=2, is_active=False)

        result = await code_service.deactivate(mock_db, company.id, "AB12CD34")

        assert result.stats.status == "exhausted"
        code_service.repository.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_activate_rejects_expired_code(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(
            company, is_active=False, expires_at=datetime.now(timezone.utc) - timedelta(days=1)
        )

        with pytest.raises(CodeExpiredError):
            await code_service.activate(mock_db, company.id, "AB12CD34")

    @pytest.mark.asyncio
    async def test_activate_rejects_exhausted_code(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(company, max_uses=1, current_uses=1, is_active=False)

        with pytest.raises(CodeExhaustedError):
            await code_service.activate(mock_db, company.id, "AB12CD34")

    @pytest.mark.asyncio
    async def test_preview_unknown_code(self, code_service, mock_db):
        code_service.repository.get_by_code.return_value = None

        with pytest.raises(InvalidCodeError):
            await code_service.preview(mock_db, "ZZZZZZZZ")

    @pytest.mark.asyncio
    async def test_preview_valid_code(self, code_service, mock_db, company):
        code_service.repository.get_by_code.return_value = make_code(company, max_uses=4, current_uses=1)

        preview = await code_service.preview(mock_db, "ab12cd34")

        assert preview.company.name == "Bean Machine"
        assert preview.remaining_uses == 3


# ==================== Redemption ====================


class TestConsume:

    @pytest.mark.asyncio
    async def test_unknown_code(self, code_service, mock_db, redeeming_account):
        code_service.repository.get_by_code.return_value = None

        with pytest.raises(InvalidCodeError):
            await code_service.consume(mock_db, redeeming_account, "AB12CD34")

    @pytest.mark.asyncio
    async def test_exhausted_code_is_rejected_before_update(self, code_service, mock_db, company, redeeming_account):
        code_service.repository.get_by_code.return_value = make_code(company, max_uses=1, current_uses=1, is_active=False)

        with pytest.raises(CodeExhaustedError):
            await code_service.consume(mock_db, redeeming_account, "AB12CD34")

        code_service.repository.try_consume.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_member_conflicts(self, code_service, mock_db, company, redeeming_account):
        code_service.repository.get_by_code.return_value = make_code(company)
        code_service.memberships.get_for.return_value = MagicMock(is_active=True)

        with pytest.raises(ConflictError):
            await code_service.consume(mock_db, redeeming_account, "AB12CD34")

        code_service.repository.try_consume.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_race_reports_stored_state(self, code_service, mock_db, company, redeeming_account):
        stale = make_code(company, max_uses=1, current_uses=0)
        fresh = make_code(company, id=stale.id, max_uses=1, current_uses=1, is_active=False)
        code_service.repository.get_by_code.side_effect = [stale, fresh]
        code_service.memberships.get_for.return_value = None
        code_service.repository.try_consume.return_value = False

        with pytest.raises(CodeExhaustedError):
            await code_service.consume(mock_db, redeeming_account, "AB12CD34")

        code_service.repository.get_by_code.assert_called_with(mock_db, "AB12CD34", refresh=True)
        code_service.repository.add_usage.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_race_without_visible_cause_is_exhausted(self, code_service, mock_db, company, redeeming_account):
        code = make_code(company)
        code_service.repository.get_by_code.return_value = code
        code_service.memberships.get_for.return_value = None
        code_service.repository.try_consume.return_value = False

        with pytest.raises(CodeExhaustedError):
            await code_service.consume(mock_db, redeeming_account, "AB12CD34")

    @pytest.mark.asyncio
    async def test_inactive_membership_is_reactivated(self, code_service, mock_db, company, redeeming_account):
        code = make_code(company, max_uses=5, current_uses=2)
        existing = MagicMock(is_active=False)
        default_role = MagicMock(id=uuid4(), company_id=company.id)
        code_service.repository.get_by_code.return_value = code
        code_service.memberships.get_for.return_value = existing
        code_service.repository.try_consume.return_value = True
        code_service.roles.get_default.return_value = default_role

        membership = await code_service.consume(
            mock_db, redeeming_account, "AB12CD34", ip_address="10.0.0.1", user_agent="pytest"
        )

        assert membership is existing
        assert existing.is_active is True
        existing.assign_role.assert_called_once_with(default_role)
        redeeming_account.set_current_company.assert_called_once_with(company.id)
        assert redeeming_account.company_validated is True
        code_service.repository.add_usage.assert_called_once()
        assert code_service.repository.add_usage.call_args.kwargs["ip_address"] == "10.0.0.1"
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_current_company_is_kept_when_set(self, code_service, mock_db, company, redeeming_account):
        other_company_id = uuid4()
        redeeming_account.current_company_id = other_company_id
        code_service.repository.get_by_code.return_value = make_code(company)
        code_service.memberships.get_for.return_value = MagicMock(is_active=False)
        code_service.repository.try_consume.return_value = True
        code_service.roles.get_default.return_value = MagicMock(id=uuid4(), company_id=company.id)

        await code_service.consume(mock_db, redeeming_account, "AB12CD34")

        assert redeeming_account.current_company_id == other_company_id
        redeeming_account.set_current_company.assert_not_called()


class TestRedeem:

    @pytest.mark.asyncio
    async def test_failure_rolls_back_and_propagates(self, code_service, mock_db, redeeming_account):
        code_service.consume = AsyncMock(side_effect=CodeExpiredError())

        with pytest.raises(CodeExpiredError):
            await code_service.redeem(mock_db, redeeming_account, "AB12CD34")

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_integrity_error_becomes_conflict(self, code_service, mock_db, redeeming_account):
        code_service.consume = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate")))

        with pytest.raises(ConflictError):
            await code_service.redeem(mock_db, redeeming_account, "AB12CD34")

        mock_db.rollback.assert_called_once()


# ==================== Housekeeping ====================


class TestExpireSweep:

    @pytest.mark.asyncio
    async def test_sweep_reports_counts_and_commits(self, code_service, mock_db):
        now = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
        code_service.repository.deactivate_expired.return_value = 3
        code_service.repository.delete_expired_before.return_value = 2
        code_service.repository.delete_exhausted_before.return_value = 1

        result = await code_service.expire_sweep(mock_db, now=now)

        assert (result.deactivated, result.deleted_expired, result.deleted_exhausted) == (3, 2, 1)
        code_service.repository.delete_expired_before.assert_called_once_with(mock_db, now - timedelta(days=30))
        code_service.repository.delete_exhausted_before.assert_called_once_with(mock_db, now - timedelta(days=7))
        mock_db.commit.assert_called_once()
