"""
Authentication Endpoints
Password login, Discord OAuth login and profile completion
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.deps import get_current_account, get_response_cache
from app.core.security import create_oauth_state, verify_oauth_state
from app.models.account import Account
from app.schemas.account import AccountProjection, ProfileCompletionRequest, SessionOut
from app.schemas.auth import DiscordCallbackOut, DiscordLoginOut, LoginRequest
from app.services.account_graph import account_graph_service
from app.services.discord_oauth import discord_oauth_client
from app.services.identity_merge import MergeOutcome, identity_merge_service

logger = structlog.get_logger()
router = APIRouter()


@router.post("/login", response_model=SessionOut)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Password login

    Returns:
        Access token and the full account projection
    """
    return await account_graph_service.authenticate(db, login_data.username, login_data.password)


@router.get("/me", response_model=AccountProjection)
async def get_me(current_account: Account = Depends(get_current_account)) -> Any:
    return account_graph_service.build_projection(current_account)


@router.get("/discord/login", response_model=DiscordLoginOut)
async def discord_login() -> Any:
    """Authorization URL to start the Discord OAuth flow"""
    state = create_oauth_state()
    return DiscordLoginOut(authorization_url=discord_oauth_client.authorization_url(state), state=state)


@router.get("/discord/callback", response_model=DiscordCallbackOut)
async def discord_callback(
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """
    Discord OAuth callback

    Resolves the Discord identity to one account (existing, linked or
    created) and opens a session for it.
    The state must be one issued by /discord/login.
    """
    verify_oauth_state(state)
    identity = await discord_oauth_client.resolve_identity(code)
    result = await identity_merge_service.merge(db, identity)
    if result.outcome != MergeOutcome.EXISTING:
        await cache.invalidate("linked-accounts")

    session = account_graph_service.issue_session(result.account)
    redirect_hint = None
    if result.requires_company_code:
        redirect_hint = "company-code"
    elif result.requires_profile_completion:
        redirect_hint = "complete-profile"

    return DiscordCallbackOut(
        access_token=session.access_token,
        token_type=session.token_type,
        expires_in=session.expires_in,
        outcome=result.outcome.value,
        requires_company_code=result.requires_company_code,
        requires_profile_completion=result.requires_profile_completion,
        account=session.account,
        redirect_hint=redirect_hint,
    )


@router.post("/complete-profile", response_model=AccountProjection)
async def complete_profile(
    data: ProfileCompletionRequest,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    projection = await account_graph_service.complete_profile(db, current_account, data)
    await cache.invalidate("linked-accounts")
    return projection
