"""Ledger reconciliation service.

Persists the output of ``compute_case_aggregates`` on the case record and
keeps the establishment-scoped recovery-cost fields identical across every
case of the establishment.
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import transactional
from recovery_ledger.core.exceptions import NotFoundError
from recovery_ledger.core.locks import CaseLockRegistry, case_locks
from recovery_ledger.database.models import CaseRecord
from recovery_ledger.ledger.money import ZERO, amounts_from_json, amounts_to_json, coerce_amount, quantize
from recovery_ledger.ledger.reconciliation import (
    CaseAggregates,
    SectionTotals,
    compute_case_aggregates,
    with_cost,
)
from recovery_ledger.ledger.schema import ACCOUNT_CODES, Section, parse_statutory_basis
from recovery_ledger.repositories.case_repository import CaseRepository
from recovery_ledger.repositories.transaction_repository import TransactionRepository
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


def aggregate_columns(aggregates: CaseAggregates) -> Dict[str, Any]:
    """Column values for persisting a recompute on a CaseRecord."""
    return {
        "recovered": amounts_to_json(aggregates.recovered),
        "outstanding": amounts_to_json(aggregates.outstanding),
        "section_totals": {
            section: {
                "demand": str(totals.demand),
                "recovered": str(totals.recovered),
                "outstanding": str(totals.outstanding),
            }
            for section, totals in aggregates.section_totals.items()
        },
        "demand_total": aggregates.demand_total,
        "recovered_total": aggregates.recovered_total,
        "outstanding_total": aggregates.outstanding_total,
        "recovery_cost_charged": aggregates.recovery_cost_charged,
        "recovery_cost_received": aggregates.recovery_cost_received,
        "cost_outstanding": aggregates.cost_outstanding,
        "outstanding_with_cost": aggregates.outstanding_with_cost,
    }


def stored_aggregates(case: CaseRecord) -> CaseAggregates:
    """Rebuild the last persisted recompute of a case without recomputing."""

    def vector(raw: Optional[dict]) -> Dict[str, Decimal]:
        values = {code: ZERO for code in ACCOUNT_CODES}
        values.update({
            code: amount for code, amount in amounts_from_json(raw).items() if code in values
        })
        return values

    raw_totals = case.section_totals or {}
    section_totals = {}
    for section in Section:
        stored = raw_totals.get(section.value) or {}
        section_totals[section.value] = SectionTotals(**{
            key: coerce_amount(stored.get(key))[0]
            for key in ("demand", "recovered", "outstanding")
        })

    return CaseAggregates(
        applicable_sections=[
            s for s in Section if s in parse_statutory_basis(case.statutory_basis)
        ],
        demand=vector(case.demand),
        recovered=vector(case.recovered),
        outstanding=vector(case.outstanding),
        section_totals=section_totals,
        demand_total=case.demand_total or ZERO,
        recovered_total=case.recovered_total or ZERO,
        outstanding_total=case.outstanding_total or ZERO,
        recovery_cost_charged=case.recovery_cost_charged or ZERO,
        recovery_cost_received=case.recovery_cost_received or ZERO,
        cost_outstanding=case.cost_outstanding or ZERO,
        outstanding_with_cost=case.outstanding_with_cost or ZERO,
    )


class LedgerReconciliationService:
    """Recompute and persist case aggregates.

    ``reconcile`` runs inside a unit of work the caller already holds (the
    establishment lock plus an open transaction). ``recompute`` is the
    standalone entry point that takes both itself.
    """

    def __init__(
        self,
        session: AsyncSession,
        case_repo: Optional[CaseRepository] = None,
        transaction_repo: Optional[TransactionRepository] = None,
        locks: Optional[CaseLockRegistry] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            session: SQLAlchemy async session
            case_repo: Case repository, defaults to one bound to ``session``
            transaction_repo: Transaction repository, defaults to one bound to ``session``
            locks: Establishment lock registry
        """
        self.session = session
        self.case_repo = case_repo or CaseRepository(session)
        self.transaction_repo = transaction_repo or TransactionRepository(session)
        self.locks = locks or case_locks

    async def recompute(self, case_id: UUID) -> CaseAggregates:
        """Force a full recompute of one case.

        Raises:
            NotFoundError: Case does not exist or is soft-deleted
            ConcurrencyConflict: Establishment is busy
        """
        case = await self.case_repo.get_by_id(case_id)
        if case is None or case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found")

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self.case_repo.get_by_id(case_id, for_update=True)
                if case is None or case.is_deleted:
                    raise NotFoundError(f"Case {case_id} not found")
                aggregates = await self.reconcile(case)

        LOGGER.info(
            "Case recomputed",
            extra={"case_id": str(case_id), "warnings": len(aggregates.warnings)},
        )
        return aggregates

    async def reconcile(
        self,
        case: CaseRecord,
        recovery_cost_charged: Optional[Decimal] = None,
    ) -> CaseAggregates:
        """Recompute ``case`` and refresh its establishment's cost fields.

        Args:
            case: Case loaded for update in the caller's unit of work
            recovery_cost_charged: New establishment cost charged, if it changes

        Returns:
            The aggregates now persisted on the case
        """
        transactions = await self.transaction_repo.list_for_case(case.id)
        aggregates = compute_case_aggregates(
            demand=case.demand,
            allocations=[txn.allocation for txn in transactions],
            applicable_sections=parse_statutory_basis(case.statutory_basis),
            recovery_cost_charged=case.recovery_cost_charged,
            recovery_cost_received=case.recovery_cost_received,
            context={"case_id": str(case.id), "establishment_code": case.establishment_code},
        )
        await self.case_repo.update(case, **aggregate_columns(aggregates))

        charged, received = await self.refresh_establishment_cost(
            case.establishment_code, recovery_cost_charged
        )
        return with_cost(aggregates, charged, received)

    async def refresh_establishment_cost(
        self,
        establishment_code: str,
        recovery_cost_charged: Optional[Decimal] = None,
    ) -> tuple[Decimal, Decimal]:
        """Re-derive cost received and replicate the cost fields.

        Cost received is the sum of the cost-only portion of every transaction
        of the establishment. The charged figure is taken from the
        establishment's cases unless a new value is given.

        Returns:
            (recovery_cost_charged, recovery_cost_received)
        """
        cases = await self.case_repo.list_by_establishment(
            establishment_code, include_deleted=True, for_update=True
        )
        received = quantize(
            await self.transaction_repo.sum_cost_for_establishment(establishment_code)
        )
        if recovery_cost_charged is not None:
            charged = quantize(recovery_cost_charged)
        elif cases:
            charged = quantize(cases[0].recovery_cost_charged or ZERO)
        else:
            charged = ZERO

        cost_outstanding = charged - received
        for sibling in cases:
            await self.case_repo.update(
                sibling,
                recovery_cost_charged=charged,
                recovery_cost_received=received,
                cost_outstanding=cost_outstanding,
                outstanding_with_cost=(sibling.outstanding_total or ZERO) + cost_outstanding,
            )

        LOGGER.debug(
            "Establishment recovery cost replicated",
            extra={
                "establishment_code": establishment_code,
                "cases": len(cases),
                "charged": str(charged),
                "received": str(received),
            },
        )
        return charged, received
