"""Unit tests for establishment aggregation."""

from decimal import Decimal
from types import SimpleNamespace

from recovery_ledger.ledger.aggregation import aggregate_establishment

D = Decimal


def make_case(outstanding_total, demand_total="0", recovered_total="0", deleted=False):
    charged, received = D("80"), D("30")
    return SimpleNamespace(
        is_deleted=deleted,
        demand_total=D(demand_total),
        recovered_total=D(recovered_total),
        outstanding_total=D(outstanding_total),
        recovery_cost_charged=charged,
        recovery_cost_received=received,
        cost_outstanding=charged - received,
        outstanding_with_cost=D(outstanding_total) + charged - received,
    )


def test_outstanding_with_cost_sums_per_case_figures():
    cases = [make_case("450", demand_total="600"), make_case("250", demand_total="300")]

    aggregate = aggregate_establishment("MH/12345", cases)

    assert aggregate.outstanding_total == D("700.00")
    assert aggregate.outstanding_with_cost_total == D("800.00")
    assert aggregate.cost_outstanding == D("50.00")
    assert aggregate.demand_total == D("900.00")
    assert aggregate.case_count == 2


def test_soft_deleted_cases_excluded():
    cases = [make_case("450"), make_case("250", deleted=True)]

    aggregate = aggregate_establishment("MH/12345", cases)

    assert aggregate.case_count == 1
    assert aggregate.outstanding_total == D("450.00")


def test_all_deleted_gives_zeros():
    aggregate = aggregate_establishment("MH/12345", [make_case("450", deleted=True)])

    assert aggregate.case_count == 0
    assert aggregate.outstanding_with_cost_total == D("0")
    assert aggregate.recovery_cost_charged == D("0")
