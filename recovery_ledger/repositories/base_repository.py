from typing import Generic, TypeVar, Type, Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from recovery_ledger.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common CRUD operations.

    Repositories only flush. The calling service owns the unit of work and
    commits once through ``transactional(session)``, so a recompute and the
    write that triggered it land together or not at all.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[ModelType]:
        """Get a record by its ID.

        Args:
            id: The UUID of the record
            for_update: Lock the row until the transaction ends

        Returns:
            The record if found, None otherwise
        """
        try:
            query = select(self.model).where(self.model.id == id)
            if for_update:
                # A row read earlier in this session must not mask a newer version
                query = query.with_for_update().execution_options(populate_existing=True)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def create(self, **kwargs) -> ModelType:
        """Create a new record.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record, flushed but not committed
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def update(self, instance: ModelType, **kwargs) -> ModelType:
        """Apply field values to a loaded record.

        Args:
            instance: Record previously loaded through this repository
            **kwargs: Fields and values to update

        Returns:
            The updated record
        """
        instance_id = getattr(instance, "id", None)
        try:
            for key, value in kwargs.items():
                if not hasattr(instance, key):
                    raise AttributeError(f"{self.model.__name__} has no field '{key}'")
                setattr(instance, key, value)

            if hasattr(instance, "updated_at"):
                setattr(instance, "updated_at", datetime.now(timezone.utc))

            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error updating {self.model.__name__} {instance_id}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete(self, instance: ModelType) -> None:
        """Delete a loaded record."""
        instance_id = getattr(instance, "id", None)
        try:
            await self.session.delete(instance)
            await self.session.flush()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} {instance_id}: {str(e)}",
                exc_info=True
            )
            raise
