"""Unit tests for ledger amount parsing."""

from decimal import Decimal

import pytest

from recovery_ledger.core.exceptions import ValidationError
from recovery_ledger.ledger.money import coerce_amount, to_amount

D = Decimal


class TestToAmount:
    @pytest.mark.parametrize("value", ["100.004", 100.004, D("0.001")])
    def test_rejects_more_than_two_decimal_places(self, value):
        with pytest.raises(ValidationError) as exc_info:
            to_amount(value)

        assert "two decimal places" in exc_info.value.message

    @pytest.mark.parametrize("value, expected", [
        ("100", D("100.00")),
        ("12.5", D("12.50")),
        (12.34, D("12.34")),
        ("7.000", D("7.00")),
    ])
    def test_accepts_whole_paise(self, value, expected):
        assert to_amount(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "NaN"])
    def test_rejects_missing_or_non_numeric(self, value):
        with pytest.raises(ValidationError):
            to_amount(value, "demand")


class TestCoerceAmount:
    def test_stored_values_are_rounded_not_rejected(self):
        assert coerce_amount("10.005") == (D("10.01"), True)

    def test_unreadable_value_is_zero(self):
        assert coerce_amount("n/a") == (D("0.00"), False)

    def test_none_is_well_formed_zero(self):
        assert coerce_amount(None) == (D("0.00"), True)
