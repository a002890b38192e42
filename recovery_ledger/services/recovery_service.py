"""Recovery transaction service.

Every write follows the same path: take the establishment lock, open one
unit of work, load the case for update, decide the allocation, write the
transaction and reconcile the case before the single commit.
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.config import settings
from recovery_ledger.core.database import transactional
from recovery_ledger.core.exceptions import (
    DuplicateTransactionError,
    NotFoundError,
    ValidationError,
)
from recovery_ledger.core.locks import CaseLockRegistry, case_locks
from recovery_ledger.database.models import CaseRecord, RecoveryTransaction
from recovery_ledger.ledger.allocation import (
    propose_allocation,
    settle_remainder,
    validate_manual_allocation,
)
from recovery_ledger.ledger.money import ZERO, amounts_to_json, to_amount
from recovery_ledger.ledger.reconciliation import compute_case_aggregates
from recovery_ledger.ledger.schema import parse_statutory_basis
from recovery_ledger.repositories.case_repository import CaseRepository
from recovery_ledger.repositories.transaction_repository import TransactionRepository
from recovery_ledger.schemas.recovery import (
    AllocationMode,
    AllocationPreview,
    TransactionCreate,
    TransactionListResponse,
    TransactionPayload,
    TransactionResponse,
    TransactionResult,
    TransactionUpdate,
)
from recovery_ledger.services.reconciliation_service import LedgerReconciliationService
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RecoveryService:
    """Service for recording, editing and deleting recovery transactions."""

    def __init__(
        self,
        session: AsyncSession,
        case_repo: Optional[CaseRepository] = None,
        transaction_repo: Optional[TransactionRepository] = None,
        locks: Optional[CaseLockRegistry] = None,
        allow_over_recovery: Optional[bool] = None,
    ):
        """Initialize the recovery service.

        Args:
            session: SQLAlchemy async session
            case_repo: Case repository, defaults to one bound to ``session``
            transaction_repo: Transaction repository, defaults to one bound to ``session``
            locks: Establishment lock registry
            allow_over_recovery: Default for requests that do not say
        """
        self.session = session
        self.case_repo = case_repo or CaseRepository(session)
        self.transaction_repo = transaction_repo or TransactionRepository(session)
        self.locks = locks or case_locks
        self.allow_over_recovery = (
            settings.ledger.allow_over_recovery
            if allow_over_recovery is None
            else allow_over_recovery
        )
        self.reconciler = LedgerReconciliationService(
            session, self.case_repo, self.transaction_repo, self.locks
        )

    async def submit_transaction(self, data: TransactionCreate) -> TransactionResult:
        """Record a payment against a case and reconcile it.

        Raises:
            NotFoundError: Case does not exist or is soft-deleted
            ValidationError: Amount or allocation breaks a ledger rule
            DuplicateTransactionError: Reference and instrument date already recorded
            ConcurrencyConflict: Establishment is busy
        """
        amount, cost_amount = self._amounts(data)
        case = await self._live_case(data.case_id)

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self._live_case(data.case_id, for_update=True)
                await self._check_duplicate(data)

                allocation, mode = await self._resolve_allocation(case, data, amount, cost_amount)
                transaction = await self.transaction_repo.create(
                    case_id=case.id,
                    amount=amount,
                    cost_amount=cost_amount,
                    allocation=amounts_to_json(allocation),
                    allocation_mode=mode.value,
                    **self._metadata(data),
                )
                aggregates = await self.reconciler.reconcile(case)

        LOGGER.info(
            "Recovery transaction recorded",
            extra={
                "case_id": str(case.id),
                "transaction_id": str(transaction.id),
                "amount": str(amount),
                "allocation_mode": mode.value,
            },
        )
        return TransactionResult(
            transaction=TransactionResponse.model_validate(transaction),
            aggregates=aggregates,
        )

    async def edit_transaction(
        self,
        transaction_id: UUID,
        data: TransactionUpdate,
    ) -> TransactionResult:
        """Replace a transaction's amount, metadata and allocation vector.

        Without a manual allocation the waterfall runs again against the
        case's balances as they stand without this transaction.
        """
        amount, cost_amount = self._amounts(data)
        transaction = await self._get_transaction(transaction_id)
        case = await self._live_case(transaction.case_id)

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self._live_case(transaction.case_id, for_update=True)
                transaction = await self._get_transaction(transaction_id, for_update=True)
                await self._check_duplicate(data, exclude_id=transaction.id)

                allocation, mode = await self._resolve_allocation(
                    case, data, amount, cost_amount, exclude_id=transaction.id
                )
                transaction = await self.transaction_repo.update(
                    transaction,
                    amount=amount,
                    cost_amount=cost_amount,
                    allocation=amounts_to_json(allocation),
                    allocation_mode=mode.value,
                    **self._metadata(data),
                )
                aggregates = await self.reconciler.reconcile(case)

        LOGGER.info(
            "Recovery transaction updated",
            extra={"case_id": str(case.id), "transaction_id": str(transaction_id)},
        )
        return TransactionResult(
            transaction=TransactionResponse.model_validate(transaction),
            aggregates=aggregates,
        )

    async def delete_transaction(self, transaction_id: UUID) -> TransactionResult:
        """Remove a transaction and reconcile its case."""
        transaction = await self._get_transaction(transaction_id)
        case = await self._live_case(transaction.case_id)

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self._live_case(transaction.case_id, for_update=True)
                transaction = await self._get_transaction(transaction_id, for_update=True)
                await self.transaction_repo.delete(transaction)
                aggregates = await self.reconciler.reconcile(case)

        LOGGER.info(
            "Recovery transaction deleted",
            extra={"case_id": str(case.id), "transaction_id": str(transaction_id)},
        )
        return TransactionResult(transaction=None, aggregates=aggregates)

    async def get_transaction(self, transaction_id: UUID) -> TransactionResponse:
        transaction = await self._get_transaction(transaction_id)
        return TransactionResponse.model_validate(transaction)

    async def list_transactions(self, case_id: UUID) -> TransactionListResponse:
        case = await self._live_case(case_id)
        transactions = await self.transaction_repo.list_for_case(case.id)
        return TransactionListResponse(
            case_id=case.id,
            transactions=[TransactionResponse.model_validate(t) for t in transactions],
            total=len(transactions),
        )

    async def preview_allocation(
        self,
        case_id: UUID,
        amount: Decimal,
        cost_amount: Decimal = ZERO,
        exclude_transaction_id: Optional[UUID] = None,
    ) -> AllocationPreview:
        """Propose a waterfall allocation without writing anything.

        In edit mode (``exclude_transaction_id`` given) the balances leave out
        that transaction's own allocation.
        """
        amount = to_amount(amount)
        cost_amount = to_amount(cost_amount, "cost_amount")
        self._check_amounts(amount, cost_amount)
        case = await self._live_case(case_id)

        outstanding = await self._outstanding(case, exclude_id=exclude_transaction_id)
        proposal = propose_allocation(
            outstanding,
            amount - cost_amount,
            parse_statutory_basis(case.statutory_basis),
        )
        return AllocationPreview(
            case_id=case.id,
            amount=amount,
            cost_amount=cost_amount,
            allocation=proposal.allocation,
            unallocated_remainder=proposal.unallocated_remainder,
            outstanding=outstanding,
        )

    async def _resolve_allocation(
        self,
        case: CaseRecord,
        data: TransactionPayload,
        amount: Decimal,
        cost_amount: Decimal,
        exclude_id: Optional[UUID] = None,
    ) -> tuple[Dict[str, Decimal], AllocationMode]:
        sections = parse_statutory_basis(case.statutory_basis)

        if data.allocation is not None:
            allocation = validate_manual_allocation(
                data.allocation, amount, sections, cost_amount=cost_amount
            )
            return allocation, AllocationMode.MANUAL

        outstanding = await self._outstanding(case, exclude_id=exclude_id)
        proposal = propose_allocation(outstanding, amount - cost_amount, sections)
        allow_over_recovery = (
            self.allow_over_recovery
            if data.allow_over_recovery is None
            else data.allow_over_recovery
        )
        return settle_remainder(proposal, sections, allow_over_recovery), AllocationMode.AUTO

    async def _outstanding(
        self,
        case: CaseRecord,
        exclude_id: Optional[UUID] = None,
    ) -> Dict[str, Decimal]:
        """Current outstanding per sub-account, optionally without one transaction."""
        transactions = await self.transaction_repo.list_for_case(case.id, exclude_id=exclude_id)
        aggregates = compute_case_aggregates(
            demand=case.demand,
            allocations=[txn.allocation for txn in transactions],
            applicable_sections=parse_statutory_basis(case.statutory_basis),
            context={"case_id": str(case.id)},
        )
        return aggregates.outstanding

    async def _check_duplicate(
        self,
        data: TransactionPayload,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        if not data.reference_number or data.instrument_date is None:
            return
        existing = await self.transaction_repo.find_duplicate(
            data.reference_number, data.instrument_date, exclude_id=exclude_id
        )
        if existing is not None:
            raise DuplicateTransactionError(
                f"A transaction with reference {data.reference_number} dated "
                f"{data.instrument_date.isoformat()} is already recorded"
            )

    async def _live_case(self, case_id: UUID, for_update: bool = False) -> CaseRecord:
        case = await self.case_repo.get_by_id(case_id, for_update=for_update)
        if case is None or case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found")
        return case

    async def _get_transaction(
        self,
        transaction_id: UUID,
        for_update: bool = False,
    ) -> RecoveryTransaction:
        transaction = await self.transaction_repo.get_by_id(transaction_id, for_update=for_update)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def _amounts(self, data: TransactionPayload) -> tuple[Decimal, Decimal]:
        amount = to_amount(data.amount)
        cost_amount = to_amount(data.cost_amount, "cost_amount")
        self._check_amounts(amount, cost_amount)
        return amount, cost_amount

    @staticmethod
    def _check_amounts(amount: Decimal, cost_amount: Decimal) -> None:
        if amount < ZERO:
            raise ValidationError(f"Recovery amount cannot be negative: {amount}")
        if cost_amount < ZERO:
            raise ValidationError(f"Recovery cost amount cannot be negative: {cost_amount}")
        if cost_amount > amount:
            raise ValidationError(
                f"Recovery cost amount {cost_amount} exceeds the amount received {amount}"
            )

    @staticmethod
    def _metadata(data: TransactionPayload) -> Dict[str, Any]:
        return {
            "transaction_date": data.transaction_date,
            "instrument_date": data.instrument_date,
            "reference_number": data.reference_number,
            "transaction_type": data.transaction_type.value if data.transaction_type else None,
            "bank_name": data.bank_name,
            "remark": data.remark,
        }
