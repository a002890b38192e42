"""Repository for recovery transaction data access."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from recovery_ledger.database.models import CaseRecord, RecoveryTransaction
from recovery_ledger.repositories.base_repository import BaseRepository
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TransactionRepository(BaseRepository[RecoveryTransaction]):
    """Repository for RecoveryTransaction model.

    Provides lookups by case, duplicate detection on the DD/TRRN reference
    and the establishment-wide recovery cost sum.
    """

    def __init__(self, session: AsyncSession):
        """Initialize the transaction repository.

        Args:
            session: SQLAlchemy async session
        """
        super().__init__(session, RecoveryTransaction)

    async def list_for_case(
        self,
        case_id: UUID,
        exclude_id: Optional[UUID] = None
    ) -> List[RecoveryTransaction]:
        """Get a case's transactions in recovery-date order.

        Args:
            case_id: Case UUID
            exclude_id: Transaction to leave out (edit previews)

        Returns:
            List of transactions
        """
        try:
            query = select(RecoveryTransaction).where(
                RecoveryTransaction.case_id == case_id
            )
            if exclude_id is not None:
                query = query.where(RecoveryTransaction.id != exclude_id)
            query = query.order_by(
                RecoveryTransaction.transaction_date,
                RecoveryTransaction.created_at
            )

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing transactions for case: {e}",
                extra={"case_id": str(case_id)},
                exc_info=True
            )
            raise

    async def find_duplicate(
        self,
        reference_number: str,
        instrument_date: date,
        exclude_id: Optional[UUID] = None
    ) -> Optional[RecoveryTransaction]:
        """Find a transaction already recorded with the same reference and date."""
        try:
            query = select(RecoveryTransaction).where(
                RecoveryTransaction.reference_number == reference_number,
                RecoveryTransaction.instrument_date == instrument_date
            )
            if exclude_id is not None:
                query = query.where(RecoveryTransaction.id != exclude_id)

            result = await self.session.execute(query.limit(1))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error checking duplicate transaction: {e}",
                extra={
                    "reference_number": reference_number,
                    "instrument_date": str(instrument_date)
                },
                exc_info=True
            )
            raise

    async def sum_cost_for_establishment(self, establishment_code: str) -> Decimal:
        """Sum the cost-only portion of every transaction of an establishment.

        Transactions of soft-deleted cases are included.
        """
        try:
            query = (
                select(func.coalesce(func.sum(RecoveryTransaction.cost_amount), 0))
                .join(CaseRecord, RecoveryTransaction.case_id == CaseRecord.id)
                .where(CaseRecord.establishment_code == establishment_code)
            )
            result = await self.session.execute(query)
            return Decimal(result.scalar_one())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error summing recovery cost: {e}",
                extra={"establishment_code": establishment_code},
                exc_info=True
            )
            raise
