"""
Identity Merge Service
Reconciles an external (Discord) login with local accounts: find, link or create.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, InvalidStateError, UpstreamFailureError
from app.core.rbac import SystemRole
from app.models.account import Account
from app.repositories.account import account_repository, normalize_email
from app.services.account_graph import next_login_time

logger = structlog.get_logger()

SYNTHETIC_EMAIL_DOMAIN = "discord.user"
USERNAME_MAX_LENGTH = 64
_USERNAME_INVALID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class MergeOutcome(str, Enum):
    EXISTING = "existing"
    LINKED = "linked"
    CREATED = "created"


@dataclass(frozen=True)
class ExternalIdentity:
    external_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class MergeResult:
    account: Account
    outcome: MergeOutcome

    @property
    def requires_company_code(self) -> bool:
        return not self.account.company_validated

    @property
    def requires_profile_completion(self) -> bool:
        return not self.account.has_complete_profile


def synthetic_email(external_id: str) -> str:
    return f"{external_id}@{SYNTHETIC_EMAIL_DOMAIN}"


def username_base(identity: ExternalIdentity) -> str:
    base = _USERNAME_INVALID_CHARS.sub("", (identity.username or "").replace(" ", "_"))
    if len(base) < 3:
        base = f"discord_{identity.external_id}"
    return base[:USERNAME_MAX_LENGTH]


class IdentityMergeService:
    def __init__(self):
        self.repository = account_repository

    async def _available_username(self, db: AsyncSession, identity: ExternalIdentity) -> str:
        base = username_base(identity)
        if not await self.repository.username_exists(db, base):
            return base

        suffix = f"_{identity.external_id}"
        candidate = base[:USERNAME_MAX_LENGTH - len(suffix)] + suffix
        attempt = 2
        while await self.repository.username_exists(db, candidate):
            numbered = f"{suffix}_{attempt}"
            candidate = base[:USERNAME_MAX_LENGTH - len(numbered)] + numbered
            attempt += 1
        return candidate

    def _ensure_active(self, account: Account, identity: ExternalIdentity) -> None:
        if not account.is_active:
            logger.warning(
                "Discord login attempt on inactive account",
                account_id=str(account.id),
                discord_id=identity.external_id,
            )
            raise InvalidStateError("Account is inactive")

    def _refresh_profile(self, account: Account, identity: ExternalIdentity) -> None:
        if identity.username:
            account.discord_username = identity.username
        if identity.avatar_url:
            account.avatar_url = identity.avatar_url
        # Never overwrite a username that is already set
        if not (account.username or "").strip():
            account.username = username_base(identity)
        account.last_login_at = next_login_time(account.last_login_at)

    async def _merge(self, db: AsyncSession, identity: ExternalIdentity) -> MergeResult:
        account = await self.repository.get_by_discord_id(db, identity.external_id)
        if account is not None:
            self._ensure_active(account, identity)
            self._refresh_profile(account, identity)
            await db.commit()
            return MergeResult(account, MergeOutcome.EXISTING)

        if identity.email:
            account = await self.repository.get_by_email(db, identity.email)
            if account is not None:
                if account.discord_id and account.discord_id != identity.external_id:
                    logger.warning(
                        "Email already linked to another Discord identity",
                        account_id=str(account.id),
                        discord_id=identity.external_id,
                    )
                    raise ConflictError("This email is already linked to another Discord account")
                self._ensure_active(account, identity)
                account.discord_id = identity.external_id
                self._refresh_profile(account, identity)
                await db.commit()
                return MergeResult(account, MergeOutcome.LINKED)

        username = await self._available_username(db, identity)
        account = Account(
            username=username,
            hashed_password=None,
            email=normalize_email(identity.email) if identity.email else synthetic_email(identity.external_id),
            discord_id=identity.external_id,
            discord_username=identity.username or username,
            avatar_url=identity.avatar_url,
            is_active=True,
            system_role=SystemRole.USER.value,
            company_validated=False,
            advances=0.0,
            bonuses=0.0,
            last_login_at=next_login_time(None),
            memberships=[],
        )
        db.add(account)
        await db.commit()
        await db.refresh(account)
        return MergeResult(account, MergeOutcome.CREATED)

    async def merge(self, db: AsyncSession, identity: ExternalIdentity) -> MergeResult:
        """
        Resolve an external login to exactly one account.

        Lookup order: external id, then contact email, then a new account.
        Any persistence failure rolls the whole merge back.
        """
        try:
            result = await self._merge(db, identity)
        except IntegrityError as e:
            await db.rollback()
            # A concurrent callback for the same identity won the insert
            account = await self.repository.get_by_discord_id(db, identity.external_id)
            if account is not None:
                self._ensure_active(account, identity)
                logger.info("Identity merge resolved after concurrent insert", account_id=str(account.id))
                return MergeResult(account, MergeOutcome.EXISTING)
            logger.error("Identity merge failed", discord_id=identity.external_id, error=str(e))
            raise UpstreamFailureError("Authentication failed, please retry")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Identity merge failed", discord_id=identity.external_id, error=str(e))
            raise UpstreamFailureError("Authentication failed, please retry")

        logger.info(
            "External identity merged",
            account_id=str(result.account.id),
            discord_id=identity.external_id,
            outcome=result.outcome.value,
        )
        return result


identity_merge_service = IdentityMergeService()
