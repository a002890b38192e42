"""Case record service: intake, demand edits and the trash."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.database import transactional
from recovery_ledger.core.exceptions import DuplicateCaseError, NotFoundError, ValidationError
from recovery_ledger.core.locks import CaseLockRegistry, case_locks
from recovery_ledger.database.models import CaseRecord
from recovery_ledger.ledger.money import ZERO, amounts_from_json, amounts_to_json, to_amount
from recovery_ledger.ledger.reconciliation import CaseAggregates, compute_case_aggregates
from recovery_ledger.ledger.schema import (
    SUB_ACCOUNTS,
    FieldRole,
    ensure_operator_writable,
    get_sub_account,
    parse_statutory_basis,
)
from recovery_ledger.repositories.case_repository import CaseRepository
from recovery_ledger.repositories.transaction_repository import TransactionRepository
from recovery_ledger.schemas.cases import CaseCreate, CaseResponse
from recovery_ledger.services.reconciliation_service import (
    LedgerReconciliationService,
    stored_aggregates,
)
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Case fields an operator may edit directly
EDITABLE_FIELDS = frozenset({"establishment_name", "case_date", "period", "statutory_basis"})

# Columns produced only by reconciliation
COMPUTED_FIELDS = frozenset({
    "section_totals",
    "demand_total",
    "recovered_total",
    "outstanding_total",
    "recovery_cost_received",
    "cost_outstanding",
    "outstanding_with_cost",
})

LEDGER_FIELD_NAMES = frozenset(role.value for role in FieldRole)


def case_response(case: CaseRecord, aggregates: Optional[CaseAggregates] = None) -> CaseResponse:
    return CaseResponse(
        id=case.id,
        establishment_code=case.establishment_code,
        case_number=case.case_number,
        establishment_name=case.establishment_name,
        case_date=case.case_date,
        period=case.period,
        statutory_basis=case.statutory_basis,
        is_deleted=case.is_deleted,
        deleted_at=case.deleted_at,
        version=case.version,
        aggregates=aggregates or stored_aggregates(case),
    )


def validate_demand(demand: Mapping[str, Any]) -> Dict[str, Decimal]:
    """Check operator demand entries against the ledger schema.

    Raises:
        ValidationError: Unknown sub-account or non-numeric amount
    """
    ensure_operator_writable(FieldRole.DEMAND)
    values = {}
    for code, raw in demand.items():
        get_sub_account(code)
        values[code] = to_amount(raw, code)
    return values


class CaseService:
    """Service for case records."""

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

    async def create_case(self, data: CaseCreate) -> CaseResponse:
        """Open a case at demand intake.

        The new case takes the establishment's replicated recovery-cost
        figures (or sets them, when ``recovery_cost_charged`` is given) and
        gets its first recompute in the same unit of work.

        Raises:
            ValidationError: Unknown sub-account or bad amount in the demand
            DuplicateCaseError: Establishment already has this case number
        """
        demand = validate_demand(data.demand)
        charged = None
        if data.recovery_cost_charged is not None:
            charged = to_amount(data.recovery_cost_charged, "recovery_cost_charged")
            if charged < ZERO:
                raise ValidationError(f"Recovery cost charged cannot be negative: {charged}")

        async with self.locks.hold(data.establishment_code):
            async with transactional(self.session):
                existing = await self.case_repo.get_by_key(
                    data.establishment_code, data.case_number
                )
                if existing is not None:
                    raise DuplicateCaseError(
                        f"Establishment {data.establishment_code} already has case {data.case_number}"
                    )

                siblings = await self.case_repo.list_by_establishment(
                    data.establishment_code, include_deleted=True, for_update=True
                )
                inherited = siblings[0].recovery_cost_charged if siblings else ZERO

                case = await self.case_repo.create(
                    establishment_code=data.establishment_code,
                    case_number=data.case_number,
                    establishment_name=data.establishment_name,
                    case_date=data.case_date,
                    period=data.period,
                    statutory_basis=data.statutory_basis,
                    demand=amounts_to_json(demand),
                    recovered={},
                    outstanding={},
                    section_totals={},
                    demand_total=ZERO,
                    recovered_total=ZERO,
                    outstanding_total=ZERO,
                    recovery_cost_charged=charged if charged is not None else inherited,
                    recovery_cost_received=ZERO,
                    cost_outstanding=ZERO,
                    outstanding_with_cost=ZERO,
                    is_deleted=False,
                )
                aggregates = await self.reconciler.reconcile(case, recovery_cost_charged=charged)

        LOGGER.info(
            "Case created",
            extra={
                "case_id": str(case.id),
                "establishment_code": case.establishment_code,
                "case_number": case.case_number,
            },
        )
        return case_response(case, aggregates)

    async def get_case(self, case_id: UUID) -> CaseResponse:
        """Read a case with its last persisted aggregates."""
        case = await self.case_repo.get_by_id(case_id)
        if case is None or case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found")
        return case_response(case)

    async def update_demand(self, case_id: UUID, changes: Mapping[str, Any]) -> CaseResponse:
        """Apply an operator edit and recompute.

        ``demand`` entries are merged into the stored demand. Any attempt to
        write a computed ledger field is rejected.

        Raises:
            ValidationError: Computed or unknown field, unknown sub-account, or
                a statutory basis that drops a section holding recoveries
            NotFoundError: Case does not exist or is soft-deleted
        """
        fields, demand = self._split_changes(changes)

        case = await self.case_repo.get_by_id(case_id)
        if case is None or case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found")

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self.case_repo.get_by_id(case_id, for_update=True)
                if case is None or case.is_deleted:
                    raise NotFoundError(f"Case {case_id} not found")

                if "statutory_basis" in fields:
                    await self._check_basis_covers_recoveries(case, fields["statutory_basis"])
                if demand is not None:
                    merged = amounts_from_json(case.demand)
                    merged.update(demand)
                    fields["demand"] = amounts_to_json(merged)
                if fields:
                    await self.case_repo.update(case, **fields)
                aggregates = await self.reconciler.reconcile(case)

        LOGGER.info(
            "Case updated",
            extra={"case_id": str(case_id), "fields": sorted(fields)},
        )
        return case_response(case, aggregates)

    async def delete_case(self, case_id: UUID) -> CaseResponse:
        """Move a case to the trash. Its transactions are kept."""
        case = await self.case_repo.get_by_id(case_id)
        if case is None or case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found")

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self.case_repo.get_by_id(case_id, for_update=True)
                if case is None or case.is_deleted:
                    raise NotFoundError(f"Case {case_id} not found")
                await self.case_repo.update(
                    case, is_deleted=True, deleted_at=datetime.now(timezone.utc)
                )

        LOGGER.info("Case moved to trash", extra={"case_id": str(case_id)})
        return case_response(case)

    async def restore_case(self, case_id: UUID) -> CaseResponse:
        """Bring a case back from the trash and recompute it."""
        case = await self.case_repo.get_by_id(case_id)
        if case is None or not case.is_deleted:
            raise NotFoundError(f"Case {case_id} not found in trash")

        async with self.locks.hold(case.establishment_code):
            async with transactional(self.session):
                case = await self.case_repo.get_by_id(case_id, for_update=True)
                if case is None or not case.is_deleted:
                    raise NotFoundError(f"Case {case_id} not found in trash")
                await self.case_repo.update(case, is_deleted=False, deleted_at=None)
                aggregates = await self.reconciler.reconcile(case)

        LOGGER.info("Case restored", extra={"case_id": str(case_id)})
        return case_response(case, aggregates)

    async def _check_basis_covers_recoveries(
        self,
        case: CaseRecord,
        statutory_basis: Optional[str],
    ) -> None:
        """Reject a basis that would leave recovered money in a dropped section."""
        sections = parse_statutory_basis(statutory_basis)
        transactions = await self.transaction_repo.list_for_case(case.id)
        recovered = compute_case_aggregates(
            demand=None,
            allocations=[txn.allocation for txn in transactions],
            applicable_sections=sections,
            context={"case_id": str(case.id)},
        ).recovered
        for account in SUB_ACCOUNTS:
            if account.section not in sections and recovered[account.code] != ZERO:
                raise ValidationError(
                    f"Statutory basis '{statutory_basis or ''}' drops section "
                    f"{account.section.value}, but {account.code} has "
                    f"{recovered[account.code]} recovered",
                    section=account.section.value,
                    account=account.code,
                )

    @staticmethod
    def _split_changes(
        changes: Mapping[str, Any],
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Decimal]]]:
        fields: Dict[str, Any] = {}
        demand = None
        for key, value in changes.items():
            if key in LEDGER_FIELD_NAMES:
                ensure_operator_writable(FieldRole(key))
                if value is not None:
                    demand = validate_demand(value)
            elif key in COMPUTED_FIELDS:
                raise ValidationError(
                    f"Field '{key}' is computed by reconciliation and cannot be edited"
                )
            elif key in EDITABLE_FIELDS:
                fields[key] = value
            else:
                raise ValidationError(f"Unknown case field '{key}'")
        return fields, demand
