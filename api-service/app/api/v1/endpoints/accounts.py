"""
Account Endpoints
Linked accounts, account switching and current company selection
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.deps import get_current_account, get_response_cache
from app.middleware.security import client_address
from app.models.account import Account
from app.schemas.account import (
    AccountProjection,
    AccountSummary,
    CurrentCompanyRequest,
    LinkedAccountCreateRequest,
    LinkedAccountsOut,
    SessionOut,
    SwitchAccountRequest,
)
from app.services.account_graph import account_graph_service

logger = structlog.get_logger()
router = APIRouter()

LINKED_ACCOUNTS_NAMESPACE = "linked-accounts"


@router.get("/linked", response_model=LinkedAccountsOut)
async def list_linked_accounts(
    request: Request,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Every account of the caller's family, flagging the one in use"""
    key = cache.build_key(LINKED_ACCOUNTS_NAMESPACE, request.url.path, dict(request.query_params), str(current_account.id))

    async def load():
        linked = await account_graph_service.list_linked_accounts(db, current_account)
        return linked.model_dump(mode="json")

    return await cache.get_or_set(key, load)


@router.post("/linked", response_model=AccountSummary, status_code=status.HTTP_201_CREATED)
async def create_linked_account(
    data: LinkedAccountCreateRequest,
    request: Request,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Create a sibling account in another company using its invitation code"""
    summary = await account_graph_service.create_linked_account(
        db,
        current_account,
        data,
        ip_address=client_address(request),
        user_agent=request.headers.get("User-Agent"),
    )
    await cache.invalidate(LINKED_ACCOUNTS_NAMESPACE)
    return summary


@router.post("/switch", response_model=SessionOut)
async def switch_account(
    data: SwitchAccountRequest,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    """Open a session on a linked account"""
    session = await account_graph_service.switch_account(db, current_account, data.target_account_id)
    await cache.invalidate(LINKED_ACCOUNTS_NAMESPACE)
    return session


@router.post("/current-company", response_model=AccountProjection)
async def set_current_company(
    data: CurrentCompanyRequest,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> Any:
    projection = await account_graph_service.set_current_company(db, current_account, data.company_id)
    await cache.invalidate(LINKED_ACCOUNTS_NAMESPACE)
    return projection


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_linked_account(
    account_id: UUID,
    current_account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
) -> None:
    await account_graph_service.delete_linked_account(db, current_account, account_id)
    await cache.invalidate(LINKED_ACCOUNTS_NAMESPACE)
