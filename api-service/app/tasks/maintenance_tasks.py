"""
Maintenance Background Tasks
Celery beat tasks for invitation code housekeeping
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.celery_app import celery_app
from app.core.database import database_url, engine_kwargs

logger = structlog.get_logger()


async def _run_expire_sweep() -> dict:
    from app.services.invitation_codes import invitation_code_service

    # Celery workers run each task in a fresh event loop, so the engine is task-scoped
    task_engine = create_async_engine(database_url, **engine_kwargs)
    session_factory = async_sessionmaker(task_engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            result = await invitation_code_service.expire_sweep(session)
            return result.model_dump()
    finally:
        await task_engine.dispose()


@celery_app.task(bind=True, name="invitation_codes.expire_sweep", max_retries=3, default_retry_delay=60)
def expire_invitation_codes_task(self):
    """
    Deactivate expired invitation codes and delete those past their retention window.
    """
    logger.info("Invitation code sweep started")
    try:
        result = asyncio.run(_run_expire_sweep())
    except Exception as e:
        logger.error("Invitation code sweep failed", error=str(e), retries=self.request.retries)
        raise self.retry(exc=e)

    logger.info("Invitation code sweep finished", **result)
    return result
