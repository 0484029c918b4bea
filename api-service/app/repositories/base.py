"""
Base CRUD Repository Pattern
Generic repository with common database operations
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import structlog

from app.core.database import Base

logger = structlog.get_logger()

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    Base CRUD repository with generic database operations
    """

    def __init__(self, model: Type[ModelType]):
        """
        Initialize CRUD repository

        Args:
            model: SQLAlchemy model class
        """
        self.model = model

    def _apply_filters(self, query, filters: Optional[Dict[str, Any]]):
        for field, value in (filters or {}).items():
            if hasattr(self.model, field):
                if isinstance(value, list):
                    query = query.where(getattr(self.model, field).in_(value))
                else:
                    query = query.where(getattr(self.model, field) == value)
        return query

    async def get(
        self,
        db: AsyncSession,
        id: Union[UUID, str],
        *,
        refresh: bool = False
    ) -> Optional[ModelType]:
        """
        Get a single record by ID

        Args:
            db: Database session
            id: Record ID
            refresh: Overwrite an already loaded instance with the stored row

        Returns:
            Model instance or None
        """
        try:
            query = select(self.model).where(self.model.id == id)
            if refresh:
                query = query.execution_options(populate_existing=True)

            result = await db.execute(query)
            record = result.scalar_one_or_none()

            if record:
                logger.debug("Record retrieved", model=self.model.__name__, id=str(id))
            else:
                logger.debug("Record not found", model=self.model.__name__, id=str(id))

            return record

        except Exception as e:
            logger.error("Error retrieving record", model=self.model.__name__, id=str(id), error=str(e))
            raise

    async def count(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Count records with optional filtering
        """
        try:
            query = self._apply_filters(select(func.count(self.model.id)), filters)
            result = await db.execute(query)
            count = result.scalar() or 0

            logger.debug("Record count", model=self.model.__name__, count=count)
            return count

        except Exception as e:
            logger.error("Error counting records", model=self.model.__name__, error=str(e))
            raise

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: Dict[str, Any],
        commit: bool = True
    ) -> ModelType:
        """
        Create a new record

        Args:
            db: Database session
            obj_in: Column values for the new record
            commit: Whether to commit the transaction (flush only otherwise)

        Returns:
            Created model instance
        """
        try:
            db_obj = self.model(**obj_in)
            db.add(db_obj)

            if commit:
                await db.commit()
                await db.refresh(db_obj)
            else:
                await db.flush()

            logger.info("Record created", model=self.model.__name__, id=str(db_obj.id))
            return db_obj

        except Exception as e:
            if commit:
                await db.rollback()
            logger.error("Error creating record", model=self.model.__name__, error=str(e))
            raise

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Dict[str, Any],
        commit: bool = True
    ) -> ModelType:
        """
        Update an existing record

        Args:
            db: Database session
            db_obj: Existing model instance
            obj_in: Field values to change
            commit: Whether to commit the transaction (flush only otherwise)

        Returns:
            Updated model instance
        """
        try:
            for field, value in obj_in.items():
                if hasattr(db_obj, field):
                    setattr(db_obj, field, value)

            if commit:
                await db.commit()
                await db.refresh(db_obj)
            else:
                await db.flush()

            logger.info("Record updated", model=self.model.__name__, id=str(db_obj.id))
            return db_obj

        except Exception as e:
            if commit:
                await db.rollback()
            logger.error("Error updating record", model=self.model.__name__, id=str(db_obj.id), error=str(e))
            raise

    async def delete(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        commit: bool = True
    ) -> ModelType:
        """
        Hard delete a record
        """
        try:
            await db.delete(db_obj)

            if commit:
                await db.commit()
            else:
                await db.flush()

            logger.info("Record deleted", model=self.model.__name__, id=str(db_obj.id))
            return db_obj

        except Exception as e:
            if commit:
                await db.rollback()
            logger.error("Error deleting record", model=self.model.__name__, id=str(db_obj.id), error=str(e))
            raise
