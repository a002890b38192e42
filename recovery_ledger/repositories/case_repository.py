"""Repository for case record data access."""

from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from recovery_ledger.database.models import CaseRecord
from recovery_ledger.repositories.base_repository import BaseRepository
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CaseRepository(BaseRepository[CaseRecord]):
    """Repository for CaseRecord model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CaseRecord)

    async def get_by_key(
        self,
        establishment_code: str,
        case_number: str
    ) -> Optional[CaseRecord]:
        """Get a case by its natural key, including soft-deleted cases."""
        try:
            query = select(CaseRecord).where(
                and_(
                    CaseRecord.establishment_code == establishment_code,
                    CaseRecord.case_number == case_number
                )
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error getting case by key: {e}",
                extra={
                    "establishment_code": establishment_code,
                    "case_number": case_number
                },
                exc_info=True
            )
            raise

    async def list_by_establishment(
        self,
        establishment_code: str,
        include_deleted: bool = False,
        for_update: bool = False
    ) -> List[CaseRecord]:
        """List an establishment's cases ordered by case number.

        Args:
            establishment_code: Establishment whose cases to load
            include_deleted: Include soft-deleted cases
            for_update: Lock the rows until the transaction ends

        Returns:
            List of cases
        """
        try:
            query = select(CaseRecord).where(
                CaseRecord.establishment_code == establishment_code
            )
            if not include_deleted:
                query = query.where(CaseRecord.is_deleted.is_(False))
            query = query.order_by(CaseRecord.case_number)
            if for_update:
                query = query.with_for_update().execution_options(populate_existing=True)

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing cases for establishment: {e}",
                extra={"establishment_code": establishment_code},
                exc_info=True
            )
            raise
