"""Ledger reconciliation.

Derives every recovered/outstanding figure of a case from its demand and the
allocation vectors of its current transactions. The computation is always a
full recompute and has no side effects beyond logging.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from recovery_ledger.core.exceptions import ConsistencyError
from recovery_ledger.ledger.money import ZERO, coerce_amount, quantize
from recovery_ledger.ledger.schema import (
    ACCOUNT_CODES,
    SUB_ACCOUNTS,
    SUB_ACCOUNTS_BY_CODE,
    Section,
)
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SectionTotals(BaseModel):
    demand: Decimal = ZERO
    recovered: Decimal = ZERO
    outstanding: Decimal = ZERO


class CaseAggregates(BaseModel):
    """Every derived figure of one case, as produced by a recompute."""

    applicable_sections: List[Section]
    demand: Dict[str, Decimal]
    recovered: Dict[str, Decimal]
    outstanding: Dict[str, Decimal]
    section_totals: Dict[str, SectionTotals] = Field(..., description="Subtotals keyed by section tag")
    demand_total: Decimal
    recovered_total: Decimal
    outstanding_total: Decimal
    recovery_cost_charged: Decimal
    recovery_cost_received: Decimal
    cost_outstanding: Decimal
    outstanding_with_cost: Decimal
    warnings: List[str] = Field(default_factory=list)


class _Reader:
    """Reads stored amounts, turning malformed entries into warnings."""

    def __init__(self, context: Optional[Mapping[str, Any]] = None):
        self.context = dict(context or {})
        self.issues: List[ConsistencyError] = []

    def amount(self, value: Any, field: str) -> Decimal:
        amount, ok = coerce_amount(value)
        if not ok:
            self.report(ConsistencyError(
                f"Non-numeric value {value!r} in {field} treated as zero",
                field=field,
                value=value,
            ))
        return amount

    def vector(self, raw: Any, field: str) -> Dict[str, Decimal]:
        values = {code: ZERO for code in ACCOUNT_CODES}
        if raw is None:
            return values
        if not isinstance(raw, Mapping):
            self.report(ConsistencyError(
                f"{field} is not a sub-account map; treated as all zero",
                field=field,
                value=raw,
            ))
            return values
        for code, value in raw.items():
            if code not in SUB_ACCOUNTS_BY_CODE:
                self.report(ConsistencyError(
                    f"Unknown sub-account {code!r} in {field} ignored",
                    field=f"{field}.{code}",
                    value=value,
                ))
                continue
            values[code] = self.amount(value, f"{field}.{code}")
        return values

    def report(self, issue: ConsistencyError) -> None:
        LOGGER.warning(
            issue.message,
            extra={**self.context, "field": issue.field, "value": repr(issue.value)},
        )
        self.issues.append(issue)


def compute_case_aggregates(
    demand: Optional[Mapping[str, Any]],
    allocations: Iterable[Optional[Mapping[str, Any]]],
    applicable_sections: Iterable[Section],
    recovery_cost_charged: Any = ZERO,
    recovery_cost_received: Any = ZERO,
    context: Optional[Mapping[str, Any]] = None,
) -> CaseAggregates:
    """Recompute a case's aggregates from scratch.

    Outstanding is ``demand - recovered`` per sub-account and is never
    clamped. Section subtotals cover all sections; grand totals cover only
    the applicable ones. Malformed stored values are read as zero and
    reported in ``warnings``.

    Args:
        demand: Stored demand per sub-account code
        allocations: Allocation vectors of every current transaction
        applicable_sections: Sections named by the case's statutory basis
        recovery_cost_charged: Establishment-scoped cost charged
        recovery_cost_received: Establishment-scoped cost received
        context: Extra fields for warning log records

    Returns:
        CaseAggregates
    """
    reader = _Reader(context)
    applicable = frozenset(applicable_sections)

    demand_vector = reader.vector(demand, "demand")
    recovered_vector = {code: ZERO for code in ACCOUNT_CODES}
    for index, allocation in enumerate(allocations):
        for code, value in reader.vector(allocation, f"allocation[{index}]").items():
            recovered_vector[code] += value

    outstanding_vector = {
        code: demand_vector[code] - recovered_vector[code] for code in ACCOUNT_CODES
    }

    section_totals = {section.value: SectionTotals() for section in Section}
    for account in SUB_ACCOUNTS:
        totals = section_totals[account.section.value]
        totals.demand += demand_vector[account.code]
        totals.recovered += recovered_vector[account.code]
        totals.outstanding += outstanding_vector[account.code]

    demand_total, recovered_total, outstanding_total = _grand_totals(section_totals, applicable)

    charged = reader.amount(recovery_cost_charged, "recovery_cost_charged")
    received = reader.amount(recovery_cost_received, "recovery_cost_received")
    cost_outstanding = charged - received

    return CaseAggregates(
        applicable_sections=[s for s in Section if s in applicable],
        demand={code: quantize(v) for code, v in demand_vector.items()},
        recovered={code: quantize(v) for code, v in recovered_vector.items()},
        outstanding={code: quantize(v) for code, v in outstanding_vector.items()},
        section_totals=section_totals,
        demand_total=quantize(demand_total),
        recovered_total=quantize(recovered_total),
        outstanding_total=quantize(outstanding_total),
        recovery_cost_charged=quantize(charged),
        recovery_cost_received=quantize(received),
        cost_outstanding=quantize(cost_outstanding),
        outstanding_with_cost=quantize(outstanding_total + cost_outstanding),
        warnings=[issue.message for issue in reader.issues],
    )


def _grand_totals(
    section_totals: Mapping[str, SectionTotals],
    applicable: Iterable[Section],
) -> Tuple[Decimal, Decimal, Decimal]:
    demand = recovered = outstanding = ZERO
    for section in applicable:
        totals = section_totals[section.value]
        demand += totals.demand
        recovered += totals.recovered
        outstanding += totals.outstanding
    return demand, recovered, outstanding


def with_cost(aggregates: CaseAggregates, charged: Decimal, received: Decimal) -> CaseAggregates:
    """Return ``aggregates`` with refreshed establishment cost figures."""
    cost_outstanding = quantize(charged - received)
    return aggregates.model_copy(update={
        "recovery_cost_charged": quantize(charged),
        "recovery_cost_received": quantize(received),
        "cost_outstanding": cost_outstanding,
        "outstanding_with_cost": quantize(aggregates.outstanding_total + cost_outstanding),
    })
