"""Unit tests for the pure reconciliation computation."""

from decimal import Decimal

from recovery_ledger.ledger.reconciliation import compute_case_aggregates
from recovery_ledger.ledger.schema import ACCOUNT_CODES, ALL_SECTIONS, Section

D = Decimal


def test_recovered_is_sum_of_allocations():
    aggregates = compute_case_aggregates(
        demand={"7A_AC_1_EE": "100", "7A_AC_10": "40"},
        allocations=[{"7A_AC_1_EE": "30"}, {"7A_AC_1_EE": "20", "7A_AC_10": "5"}],
        applicable_sections={Section.A},
    )

    assert aggregates.recovered["7A_AC_1_EE"] == D("50.00")
    assert aggregates.recovered["7A_AC_10"] == D("5.00")
    assert aggregates.outstanding["7A_AC_1_EE"] == D("50.00")
    assert aggregates.recovered_total == D("55.00")
    assert aggregates.outstanding_total == D("85.00")


def test_outstanding_is_signed():
    aggregates = compute_case_aggregates(
        demand={"7A_AC_1_EE": "10"},
        allocations=[{"7A_AC_1_EE": "25"}],
        applicable_sections={Section.A},
    )

    assert aggregates.outstanding["7A_AC_1_EE"] == D("-15.00")
    assert aggregates.outstanding_total == D("-15.00")


def test_grand_totals_cover_applicable_sections_only():
    aggregates = compute_case_aggregates(
        demand={"7A_AC_1_EE": "100", "14B_AC_1": "40", "7Q_AC_1": "10"},
        allocations=[],
        applicable_sections={Section.B, Section.C},
    )

    assert aggregates.section_totals["7A"].demand == D("100")
    assert aggregates.demand_total == D("50.00")
    assert aggregates.applicable_sections == [Section.B, Section.C]


def test_cost_fields():
    aggregates = compute_case_aggregates(
        demand={"7A_AC_1_EE": "450"},
        allocations=[],
        applicable_sections=ALL_SECTIONS,
        recovery_cost_charged="80",
        recovery_cost_received="30",
    )

    assert aggregates.cost_outstanding == D("50.00")
    assert aggregates.outstanding_with_cost == D("500.00")


def test_malformed_values_read_as_zero_with_warning():
    aggregates = compute_case_aggregates(
        demand={"7A_AC_1_EE": "abc", "7A_AC_10": "20", "bogus": "5"},
        allocations=[{"7A_AC_10": None}, "not-a-map"],
        applicable_sections={Section.A},
    )

    assert aggregates.demand["7A_AC_1_EE"] == D("0.00")
    assert aggregates.outstanding["7A_AC_10"] == D("20.00")
    assert len(aggregates.warnings) == 3


def test_recompute_is_idempotent():
    kwargs = dict(
        demand={code: "12.34" for code in ACCOUNT_CODES},
        allocations=[{"7A_AC_1_EE": "5"}, {"14B_AC_22": "1.11"}],
        applicable_sections=ALL_SECTIONS,
        recovery_cost_charged="10",
        recovery_cost_received="2.5",
    )

    assert compute_case_aggregates(**kwargs) == compute_case_aggregates(**kwargs)


def test_zero_demand_without_transactions():
    aggregates = compute_case_aggregates(
        demand=None, allocations=[], applicable_sections=ALL_SECTIONS
    )

    assert aggregates.demand_total == D("0")
    assert aggregates.outstanding_with_cost == D("0")
    assert aggregates.warnings == []
