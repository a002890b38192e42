"""Unit tests for LedgerReconciliationService."""

from decimal import Decimal

import pytest

from recovery_ledger.services.reconciliation_service import LedgerReconciliationService

D = Decimal


@pytest.fixture
def reconciliation_service(mock_session, case_repo, transaction_repo, locks):
    return LedgerReconciliationService(mock_session, case_repo, transaction_repo, locks)


@pytest.mark.asyncio
async def test_recompute_is_idempotent(reconciliation_service, open_case, recovery_service, make_payment):
    case = await open_case()
    await recovery_service.submit_transaction(make_payment(case.id, "70"))

    first = await reconciliation_service.recompute(case.id)
    second = await reconciliation_service.recompute(case.id)

    assert first == second
    assert first.recovered_total == D("70.00")


@pytest.mark.asyncio
async def test_recompute_repairs_drifted_aggregates(reconciliation_service, open_case, case_repo):
    case = await open_case()
    stored = case_repo.records[case.id]
    stored.outstanding_total = D("999")
    stored.recovered = {"7A_AC_1_EE": "999"}

    aggregates = await reconciliation_service.recompute(case.id)

    assert aggregates.outstanding_total == D("150.00")
    assert stored.outstanding_total == D("150.00")
    assert stored.recovered["7A_AC_1_EE"] == "0.00"


@pytest.mark.asyncio
async def test_malformed_demand_reported_not_fatal(reconciliation_service, open_case, case_repo):
    case = await open_case()
    case_repo.records[case.id].demand = {"7A_AC_1_EE": "n/a", "7A_AC_1_ER": "50"}

    aggregates = await reconciliation_service.recompute(case.id)

    assert aggregates.demand_total == D("50.00")
    assert len(aggregates.warnings) == 1
    assert "7A_AC_1_EE" in aggregates.warnings[0]
