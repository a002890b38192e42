"""Allocation engine.

Splits an incoming payment across sub-accounts. ``propose_allocation`` runs
the statutory waterfall; ``validate_manual_allocation`` checks an operator
supplied split. Neither touches storage.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from recovery_ledger.core.exceptions import ValidationError
from recovery_ledger.ledger.money import ZERO, to_amount
from recovery_ledger.ledger.schema import (
    ACCOUNT_CODES,
    Section,
    get_sub_account,
    waterfall_order,
)
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


def empty_vector() -> Dict[str, Decimal]:
    """Allocation vector with every sub-account at zero."""
    return {code: ZERO for code in ACCOUNT_CODES}


@dataclass
class AllocationProposal:
    """Result of a waterfall run.

    ``unallocated_remainder`` is the part of the amount no applicable
    sub-account had outstanding room for. The caller decides what to do with
    it; it is never dropped here.
    """

    allocation: Dict[str, Decimal] = field(default_factory=empty_vector)
    unallocated_remainder: Decimal = ZERO

    @property
    def allocated_total(self) -> Decimal:
        return sum(self.allocation.values(), ZERO)


def propose_allocation(
    outstanding: Mapping[str, Decimal],
    amount: Decimal,
    applicable_sections: Iterable[Section],
) -> AllocationProposal:
    """Fill outstanding balances in statutory priority order.

    Sections are visited A, C, B (skipping those outside the case's
    statutory basis); sub-accounts within a section in table order. Accounts
    with zero or negative outstanding receive nothing.

    Args:
        outstanding: Current outstanding balance per sub-account code
        amount: Payment amount to distribute
        applicable_sections: Sections named by the case's statutory basis

    Returns:
        AllocationProposal with every sub-account present in the vector

    Raises:
        ValidationError: If the amount is negative
    """
    amount = to_amount(amount)
    if amount < ZERO:
        raise ValidationError(f"Recovery amount cannot be negative: {amount}")

    proposal = AllocationProposal()
    remaining = amount

    for account in waterfall_order(applicable_sections):
        if remaining == ZERO:
            break
        room = max(to_amount(outstanding.get(account.code) or ZERO), ZERO)
        applied = min(remaining, room)
        if applied > ZERO:
            proposal.allocation[account.code] = applied
            remaining -= applied

    proposal.unallocated_remainder = remaining
    return proposal


def validate_manual_allocation(
    allocation: Mapping[str, object],
    amount: Decimal,
    applicable_sections: Iterable[Section],
    cost_amount: Optional[Decimal] = None,
) -> Dict[str, Decimal]:
    """Check an operator supplied allocation and return the full vector.

    Only two rules apply: the allocation plus the cost-only portion must
    equal the amount exactly, and no non-zero entry may target a section
    outside the statutory basis. Individual entries are not capped, so a
    manual split may drive an account's outstanding negative.

    Raises:
        ValidationError: Unknown code, non-applicable section, or sum mismatch
    """
    amount = to_amount(amount)
    if amount < ZERO:
        raise ValidationError(f"Recovery amount cannot be negative: {amount}")
    cost = to_amount(cost_amount, "cost_amount") if cost_amount is not None else ZERO
    if cost < ZERO:
        raise ValidationError(f"Recovery cost amount cannot be negative: {cost}")

    applicable = frozenset(applicable_sections)
    vector = empty_vector()

    for code, raw in allocation.items():
        account = get_sub_account(code)
        try:
            value = to_amount(raw, code)
        except ValidationError as e:
            raise ValidationError(e.message, section=account.section.value, account=code) from e
        if value != ZERO and account.section not in applicable:
            raise ValidationError(
                f"Sub-account {code} belongs to section {account.section.value}, "
                f"which is not part of this case's statutory basis",
                section=account.section.value,
                account=code,
            )
        vector[code] = value

    total = sum(vector.values(), ZERO) + cost
    if total != amount:
        difference = amount - total
        raise ValidationError(
            f"Allocation plus recovery cost ({total}) does not match the amount "
            f"({amount}); difference {difference}"
        )
    return vector


def settle_remainder(
    proposal: AllocationProposal,
    applicable_sections: Iterable[Section],
    allow_over_recovery: bool,
) -> Dict[str, Decimal]:
    """Resolve a proposal's unallocated remainder into a final vector.

    Raises:
        ValidationError: A remainder exists and over-recovery is not allowed
    """
    remainder = proposal.unallocated_remainder
    if remainder == ZERO:
        return dict(proposal.allocation)

    if not allow_over_recovery:
        raise ValidationError(
            f"Amount exceeds the outstanding balance by {remainder}; "
            "allocate it manually or enable over-recovery"
        )

    order = waterfall_order(applicable_sections)
    if not order:
        raise ValidationError("Case has no applicable sections to receive the remainder")

    target = order[0].code
    vector = dict(proposal.allocation)
    vector[target] = vector.get(target, ZERO) + remainder
    LOGGER.info(
        "Over-recovery credited to highest-priority sub-account",
        extra={"account": target, "remainder": str(remainder)},
    )
    return vector
