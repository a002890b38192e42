"""Establishment-level reads and recovery-cost edits."""

from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import transactional
from recovery_ledger.core.exceptions import NotFoundError, ValidationError
from recovery_ledger.core.locks import CaseLockRegistry, case_locks
from recovery_ledger.ledger.aggregation import EstablishmentAggregate, aggregate_establishment
from recovery_ledger.ledger.money import ZERO, to_amount
from recovery_ledger.repositories.case_repository import CaseRepository
from recovery_ledger.repositories.transaction_repository import TransactionRepository
from recovery_ledger.services.reconciliation_service import LedgerReconciliationService
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class EstablishmentService:
    """Consolidated view over an establishment's cases."""

    def __init__(
        self,
        session: AsyncSession,
        case_repo: Optional[CaseRepository] = None,
        transaction_repo: Optional[TransactionRepository] = None,
        locks: Optional[CaseLockRegistry] = None,
    ):
        self.session = session
        self.case_repo = case_repo or CaseRepository(session)
        self.transaction_repo = transaction_repo or TransactionRepository(session)
        self.locks = locks or case_locks
        self.reconciler = LedgerReconciliationService(
            session, self.case_repo, self.transaction_repo, self.locks
        )

    async def aggregate_establishment(self, establishment_code: str) -> EstablishmentAggregate:
        """Sum the committed totals of an establishment's live cases.

        Computed on every read and never stored.

        Raises:
            NotFoundError: The establishment has no case records at all
        """
        cases = await self.case_repo.list_by_establishment(
            establishment_code, include_deleted=True
        )
        if not cases:
            raise NotFoundError(f"Establishment {establishment_code} not found")
        return aggregate_establishment(establishment_code, cases)

    async def set_recovery_cost_charged(
        self,
        establishment_code: str,
        amount: Decimal,
    ) -> EstablishmentAggregate:
        """Set the recovery cost charged and replicate it to every case.

        Raises:
            ValidationError: Negative or non-numeric amount
            NotFoundError: The establishment has no case records at all
        """
        charged = to_amount(amount, "recovery_cost_charged")
        if charged < ZERO:
            raise ValidationError(f"Recovery cost charged cannot be negative: {charged}")

        async with self.locks.hold(establishment_code):
            async with transactional(self.session):
                cases = await self.case_repo.list_by_establishment(
                    establishment_code, include_deleted=True, for_update=True
                )
                if not cases:
                    raise NotFoundError(f"Establishment {establishment_code} not found")
                await self.reconciler.refresh_establishment_cost(establishment_code, charged)

        LOGGER.info(
            "Recovery cost charged updated",
            extra={"establishment_code": establishment_code, "charged": str(charged)},
        )
        return aggregate_establishment(establishment_code, cases)
