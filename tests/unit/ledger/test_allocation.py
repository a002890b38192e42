"""Unit tests for the allocation engine."""

from decimal import Decimal

import pytest

from recovery_ledger.core.exceptions import ValidationError
from recovery_ledger.ledger.allocation import (
    propose_allocation,
    settle_remainder,
    validate_manual_allocation,
)
from recovery_ledger.ledger.schema import ACCOUNT_CODES, ALL_SECTIONS, Section

D = Decimal


class TestProposeAllocation:
    def test_fills_accounts_in_order(self):
        outstanding = {"7A_AC_1_EE": D("100"), "7A_AC_1_ER": D("50"), "7A_AC_10": D("0")}

        proposal = propose_allocation(outstanding, D("120"), {Section.A})

        assert proposal.allocation["7A_AC_1_EE"] == D("100")
        assert proposal.allocation["7A_AC_1_ER"] == D("20")
        assert proposal.allocation["7A_AC_10"] == D("0")
        assert proposal.unallocated_remainder == D("0")

    def test_every_account_present_in_vector(self):
        proposal = propose_allocation({}, D("0"), ALL_SECTIONS)

        assert set(proposal.allocation) == set(ACCOUNT_CODES)
        assert proposal.allocated_total == D("0")

    def test_overflow_returned_as_remainder(self):
        outstanding = {"7A_AC_1_EE": D("50"), "7A_AC_10": D("30")}

        proposal = propose_allocation(outstanding, D("100"), {Section.A})

        assert proposal.allocated_total == D("80")
        assert proposal.unallocated_remainder == D("20")

    def test_never_exceeds_outstanding(self):
        outstanding = {code: D("7.50") for code in ACCOUNT_CODES}

        proposal = propose_allocation(outstanding, D("1000"), ALL_SECTIONS)

        for code in ACCOUNT_CODES:
            assert proposal.allocation[code] <= outstanding[code]

    def test_skips_negative_and_zero_outstanding(self):
        outstanding = {"7A_AC_1_EE": D("-40"), "7A_AC_1_ER": D("0"), "7A_AC_10": D("25")}

        proposal = propose_allocation(outstanding, D("10"), {Section.A})

        assert proposal.allocation["7A_AC_1_EE"] == D("0")
        assert proposal.allocation["7A_AC_1_ER"] == D("0")
        assert proposal.allocation["7A_AC_10"] == D("10")

    def test_section_priority_a_then_c_then_b(self):
        outstanding = {"14B_AC_1": D("10"), "7Q_AC_1": D("10"), "7A_AC_22": D("10")}

        proposal = propose_allocation(outstanding, D("25"), ALL_SECTIONS)

        assert proposal.allocation["7A_AC_22"] == D("10")
        assert proposal.allocation["7Q_AC_1"] == D("10")
        assert proposal.allocation["14B_AC_1"] == D("5")

    def test_statutory_basis_restricts_sections(self):
        outstanding = {"7A_AC_1_EE": D("100"), "14B_AC_1": D("40")}

        proposal = propose_allocation(outstanding, D("30"), {Section.B})

        assert proposal.allocation["7A_AC_1_EE"] == D("0")
        assert proposal.allocation["14B_AC_1"] == D("30")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            propose_allocation({"7A_AC_1_EE": D("10")}, D("-1"), ALL_SECTIONS)


class TestValidateManualAllocation:
    def test_accepts_exact_sum(self):
        vector = validate_manual_allocation(
            {"7A_AC_1_EE": "60", "7A_AC_10": "40"}, D("100"), {Section.A}
        )

        assert vector["7A_AC_1_EE"] == D("60")
        assert vector["7A_AC_10"] == D("40")
        assert sum(vector.values()) == D("100")

    def test_accepts_amount_beyond_outstanding(self):
        # No per-account cap on manual overrides
        vector = validate_manual_allocation({"7A_AC_1_EE": "5000"}, D("5000"), {Section.A})

        assert vector["7A_AC_1_EE"] == D("5000")

    def test_rejects_off_by_one_paisa(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_manual_allocation({"7A_AC_1_EE": "99.99"}, D("100"), {Section.A})

        assert "0.01" in exc_info.value.message

    def test_cost_amount_counts_toward_sum(self):
        vector = validate_manual_allocation(
            {"7A_AC_1_EE": "70"}, D("100"), {Section.A}, cost_amount=D("30")
        )

        assert sum(vector.values()) == D("70")

    def test_rejects_non_applicable_section(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_manual_allocation({"14B_AC_1": "10"}, D("10"), {Section.A})

        assert exc_info.value.section == "14B"
        assert exc_info.value.account == "14B_AC_1"

    def test_zero_entry_in_non_applicable_section_allowed(self):
        vector = validate_manual_allocation(
            {"7A_AC_1_EE": "10", "14B_AC_1": "0"}, D("10"), {Section.A}
        )

        assert vector["14B_AC_1"] == D("0")

    def test_rejects_unknown_code(self):
        with pytest.raises(ValidationError):
            validate_manual_allocation({"7A_AC_5": "10"}, D("10"), ALL_SECTIONS)

    def test_rejects_sub_paisa_entries_instead_of_rounding(self):
        # 50.004 + 50.004 would round to exactly 100.00
        with pytest.raises(ValidationError) as exc_info:
            validate_manual_allocation(
                {"7A_AC_1_EE": 50.004, "7A_AC_1_ER": 50.004}, D("100.00"), ALL_SECTIONS
            )

        assert exc_info.value.account == "7A_AC_1_EE"

    def test_rejects_sub_paisa_amount(self):
        with pytest.raises(ValidationError):
            validate_manual_allocation({"7A_AC_1_EE": "100"}, D("100.004"), ALL_SECTIONS)

    def test_trailing_zeros_are_not_extra_precision(self):
        vector = validate_manual_allocation({"7A_AC_1_EE": "100.000"}, D("100"), ALL_SECTIONS)

        assert vector["7A_AC_1_EE"] == D("100.00")


class TestSettleRemainder:
    def test_no_remainder_passes_through(self):
        proposal = propose_allocation({"7A_AC_1_EE": D("50")}, D("20"), {Section.A})

        vector = settle_remainder(proposal, {Section.A}, allow_over_recovery=False)

        assert vector["7A_AC_1_EE"] == D("20")

    def test_remainder_rejected_by_default(self):
        proposal = propose_allocation({"7A_AC_1_EE": D("50")}, D("70"), {Section.A})

        with pytest.raises(ValidationError) as exc_info:
            settle_remainder(proposal, {Section.A}, allow_over_recovery=False)

        assert "20.00" in exc_info.value.message

    def test_remainder_credited_to_first_applicable_account(self):
        proposal = propose_allocation({"7Q_AC_1": D("50")}, D("70"), {Section.C, Section.B})

        vector = settle_remainder(proposal, {Section.C, Section.B}, allow_over_recovery=True)

        assert vector["7Q_AC_1"] == D("70")
        assert sum(vector.values()) == D("70")
