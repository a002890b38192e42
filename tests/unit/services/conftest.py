"""In-memory repositories for service tests.

They implement the subset of the SQLAlchemy repositories the services call,
so the services run their full unit-of-work logic against a mocked session.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_ledger.core.locks import CaseLockRegistry
from recovery_ledger.database.models import CaseRecord, RecoveryTransaction
from recovery_ledger.schemas.cases import CaseCreate
from recovery_ledger.schemas.recovery import TransactionCreate
from recovery_ledger.services.case_service import CaseService
from recovery_ledger.services.establishment_service import EstablishmentService
from recovery_ledger.services.recovery_service import RecoveryService


class InMemoryCaseRepository:
    def __init__(self):
        self.records: Dict[UUID, CaseRecord] = {}

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[CaseRecord]:
        return self.records.get(id)

    async def get_by_key(self, establishment_code: str, case_number: str) -> Optional[CaseRecord]:
        for case in self.records.values():
            if case.establishment_code == establishment_code and case.case_number == case_number:
                return case
        return None

    async def list_by_establishment(
        self,
        establishment_code: str,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> List[CaseRecord]:
        cases = [
            case for case in self.records.values()
            if case.establishment_code == establishment_code
            and (include_deleted or not case.is_deleted)
        ]
        return sorted(cases, key=lambda case: case.case_number)

    async def create(self, **kwargs) -> CaseRecord:
        case = CaseRecord(**kwargs)
        case.id = kwargs.get("id") or uuid4()
        case.version = 1
        self.records[case.id] = case
        return case

    async def update(self, instance: CaseRecord, **kwargs) -> CaseRecord:
        for key, value in kwargs.items():
            setattr(instance, key, value)
        return instance


class InMemoryTransactionRepository:
    def __init__(self, case_repo: InMemoryCaseRepository):
        self.case_repo = case_repo
        self.records: Dict[UUID, RecoveryTransaction] = {}

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[RecoveryTransaction]:
        return self.records.get(id)

    async def create(self, **kwargs) -> RecoveryTransaction:
        transaction = RecoveryTransaction(**kwargs)
        transaction.id = uuid4()
        self.records[transaction.id] = transaction
        return transaction

    async def update(self, instance: RecoveryTransaction, **kwargs) -> RecoveryTransaction:
        for key, value in kwargs.items():
            setattr(instance, key, value)
        return instance

    async def delete(self, instance: RecoveryTransaction) -> None:
        del self.records[instance.id]

    async def list_for_case(
        self,
        case_id: UUID,
        exclude_id: Optional[UUID] = None,
    ) -> List[RecoveryTransaction]:
        return [
            txn for txn in self.records.values()
            if txn.case_id == case_id and txn.id != exclude_id
        ]

    async def find_duplicate(
        self,
        reference_number: str,
        instrument_date: date,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[RecoveryTransaction]:
        for txn in self.records.values():
            if (
                txn.reference_number == reference_number
                and txn.instrument_date == instrument_date
                and txn.id != exclude_id
            ):
                return txn
        return None

    async def sum_cost_for_establishment(self, establishment_code: str) -> Decimal:
        total = Decimal("0")
        for txn in self.records.values():
            case = self.case_repo.records[txn.case_id]
            if case.establishment_code == establishment_code:
                total += txn.cost_amount
        return total


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def case_repo() -> InMemoryCaseRepository:
    return InMemoryCaseRepository()


@pytest.fixture
def transaction_repo(case_repo) -> InMemoryTransactionRepository:
    return InMemoryTransactionRepository(case_repo)


@pytest.fixture
def locks() -> CaseLockRegistry:
    return CaseLockRegistry(timeout_seconds=0.5)


@pytest.fixture
def case_service(mock_session, case_repo, transaction_repo, locks) -> CaseService:
    return CaseService(mock_session, case_repo, transaction_repo, locks)


@pytest.fixture
def recovery_service(mock_session, case_repo, transaction_repo, locks) -> RecoveryService:
    return RecoveryService(
        mock_session, case_repo, transaction_repo, locks, allow_over_recovery=False
    )


@pytest.fixture
def establishment_service(mock_session, case_repo, transaction_repo, locks) -> EstablishmentService:
    return EstablishmentService(mock_session, case_repo, transaction_repo, locks)


@pytest.fixture
def open_case(case_service):
    """Factory creating a case through the service."""

    async def _open_case(
        case_number: str = "RRC/001",
        establishment_code: str = "MH/BAN/12345",
        statutory_basis: Optional[str] = "7A",
        demand: Optional[Dict[str, str]] = None,
        recovery_cost_charged: Optional[str] = None,
    ):
        return await case_service.create_case(CaseCreate(
            establishment_code=establishment_code,
            case_number=case_number,
            establishment_name="Acme Textiles",
            statutory_basis=statutory_basis,
            demand=demand if demand is not None else {
                "7A_AC_1_EE": "100",
                "7A_AC_1_ER": "50",
                "7A_AC_10": "0",
            },
            recovery_cost_charged=recovery_cost_charged,
        ))

    return _open_case


@pytest.fixture
def make_payment():
    """Factory building transaction requests with sensible defaults."""

    def _make_payment(case_id: UUID, amount: str, **overrides) -> TransactionCreate:
        fields = {
            "case_id": case_id,
            "amount": amount,
            "transaction_date": date(2024, 3, 15),
            "transaction_type": "DD",
            "bank_name": "State Bank",
        }
        fields.update(overrides)
        return TransactionCreate(**fields)

    return _make_payment
