"""
FastAPI Dependencies
Authentication, access decisions, cache and other common dependencies
"""

from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.cache import ResponseCache
from app.core.database import get_db
from app.core.errors import ForbiddenError
from app.core.rate_tracker import RequestRateTracker
from app.core.rbac import COMPANY_CREATOR_ROLES, PermissionCategory, SystemRole
from app.core.security import verify_token
from app.models.account import Account
from app.repositories.account import account_repository
from app.services.access import AccessDecision, access_service

logger = structlog.get_logger()

# Security schemes
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AccessContext:
    """Decision context recorded on ``request.state.access`` for downstream handlers"""
    account: Account
    company_id: Optional[UUID]
    decision: AccessDecision


async def get_current_account(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Account:
    """
    Get current authenticated account from JWT token

    Raises:
        HTTPException: If authentication fails
    """
    if not credentials:
        logger.warning("Missing authentication credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    subject = verify_token(credentials.credentials, token_type="access")
    try:
        account_id = UUID(subject)
    except ValueError:
        logger.warning("Token subject is not an account id", subject=subject)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        account = await account_repository.get(db, id=account_id)
    except SQLAlchemyError as e:
        logger.error("Database error during authentication", error=str(e), account_id=subject)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service error"
        )

    if not account or not account.is_active:
        logger.warning("Account not found or inactive", account_id=subject)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found or inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("Account authenticated successfully", account_id=subject)
    return account


async def require_technician(
    current_account: Account = Depends(get_current_account)
) -> Account:
    if not current_account.is_technician:
        logger.warning("Non-technician attempted technician access", account_id=str(current_account.id))
        raise ForbiddenError("Technician access required")
    return current_account


async def require_company_creator(
    current_account: Account = Depends(get_current_account)
) -> Account:
    if SystemRole(current_account.system_role) not in COMPANY_CREATOR_ROLES:
        logger.warning("Company creation refused", account_id=str(current_account.id))
        raise ForbiddenError("Only technicians and super administrators can create companies")
    return current_account


def _target_company(request: Request, account: Account) -> Optional[UUID]:
    raw = request.path_params.get("company_id")
    if raw is None:
        return account.current_company_id
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def require_access(
    permissions: Iterable[str] = (),
    category: Optional[PermissionCategory] = None,
):
    """
    Dependency factory running the access decision for the target company.

    The company comes from the ``company_id`` path parameter, or the caller's
    current company when the route has none. Any one of ``permissions`` is
    sufficient.
    """
    required = tuple(permissions)

    async def access_checker(
        request: Request,
        db: AsyncSession = Depends(get_db),
        current_account: Account = Depends(get_current_account),
    ) -> AccessContext:
        company_id = _target_company(request, current_account)
        decision = await access_service.check_access(
            db,
            current_account,
            company_id,
            required_codes=required,
            required_category=category,
        )
        context = AccessContext(account=current_account, company_id=company_id, decision=decision)
        request.state.access = context
        decision.raise_for_denial()
        return context

    return access_checker


def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache


def get_rate_tracker(request: Request) -> RequestRateTracker:
    return request.app.state.rate_tracker

