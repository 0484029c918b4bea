"""
Bootstrap technician creation service.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import SystemRole
from app.core.security import get_password_hash
from app.core.simple_config import settings
from app.models.account import Account
from app.repositories.account import account_repository

logger = structlog.get_logger()


async def ensure_bootstrap_technician_exists(db: AsyncSession) -> None:
    username = settings.BOOTSTRAP_TECHNICIAN_USERNAME.strip()
    if not username or not settings.BOOTSTRAP_TECHNICIAN_PASSWORD:
        logger.info("Bootstrap technician not configured, skipping")
        return

    existing = await account_repository.get_by_username(db, username)
    if existing:
        if existing.system_role != SystemRole.TECHNICIAN.value:
            logger.warning(
                "Bootstrap username belongs to a non-technician account",
                username=username,
                account_id=str(existing.id),
            )
        else:
            logger.info("Bootstrap technician already exists", username=username, account_id=str(existing.id))
        return

    technician = Account(
        username=username,
        hashed_password=get_password_hash(settings.BOOTSTRAP_TECHNICIAN_PASSWORD),
        first_name="System",
        last_name="Technician",
        is_active=True,
        system_role=SystemRole.TECHNICIAN.value,
        company_validated=True,
        advances=0.0,
        bonuses=0.0,
        memberships=[],
    )

    db.add(technician)
    await db.commit()
    await db.refresh(technician)

    logger.info("Bootstrap technician created", username=username, account_id=str(technician.id))
