"""Decimal helpers for ledger amounts."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from recovery_ledger.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _parse(value: Any, field: str) -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be numeric, got {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return amount


def to_amount(value: Any, field: str = "amount") -> Decimal:
    """Convert request input into a two-place decimal.

    Amounts finer than one paisa are rejected, never rounded.

    Raises:
        ValidationError: The value is missing, non-numeric, not finite or
            has more than two decimal places
    """
    amount = _parse(value, field)
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} has more than two decimal places: {amount}")
    return quantize(amount)


def coerce_amount(value: Any) -> Tuple[Decimal, bool]:
    """Read a stored amount leniently.

    Returns:
        The amount (zero when unreadable) and whether the stored value was
        well formed. ``None`` counts as a well formed zero.
    """
    if value is None:
        return ZERO, True
    try:
        return quantize(_parse(value, "value")), True
    except ValidationError:
        return ZERO, False


def amounts_to_json(amounts: Mapping[str, Decimal]) -> Dict[str, str]:
    """Serialize an amount vector for a JSONB column."""
    return {code: str(quantize(amount)) for code, amount in amounts.items()}


def amounts_from_json(raw: Optional[Mapping[str, Any]]) -> Dict[str, Decimal]:
    """Parse a JSONB amount vector; unreadable entries become zero."""
    if not raw:
        return {}
    return {code: coerce_amount(value)[0] for code, value in raw.items()}
