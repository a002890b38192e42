"""Read-time consolidation of an establishment's cases."""

from decimal import Decimal
from typing import Iterable, Protocol

from pydantic import BaseModel

from recovery_ledger.ledger.money import ZERO, quantize


class CaseTotals(Protocol):
    """Persisted grand totals of one case."""

    is_deleted: bool
    demand_total: Decimal
    recovered_total: Decimal
    outstanding_total: Decimal
    recovery_cost_charged: Decimal
    recovery_cost_received: Decimal
    cost_outstanding: Decimal
    outstanding_with_cost: Decimal


class EstablishmentAggregate(BaseModel):
    establishment_code: str
    case_count: int
    demand_total: Decimal
    recovered_total: Decimal
    outstanding_total: Decimal
    recovery_cost_charged: Decimal
    recovery_cost_received: Decimal
    cost_outstanding: Decimal
    outstanding_with_cost_total: Decimal


def aggregate_establishment(establishment_code: str, cases: Iterable[CaseTotals]) -> EstablishmentAggregate:
    """Sum the persisted totals of an establishment's live cases.

    The recovery-cost figures are replicated on every case, so they are
    reported once. ``outstanding_with_cost_total`` is the sum of each case's
    own outstanding-with-cost figure.
    """
    live = [case for case in cases if not case.is_deleted]

    demand = recovered = outstanding = with_cost = ZERO
    for case in live:
        demand += case.demand_total or ZERO
        recovered += case.recovered_total or ZERO
        outstanding += case.outstanding_total or ZERO
        with_cost += case.outstanding_with_cost or ZERO

    if live:
        first = live[0]
        charged = first.recovery_cost_charged or ZERO
        received = first.recovery_cost_received or ZERO
        cost_outstanding = first.cost_outstanding or ZERO
    else:
        charged = received = cost_outstanding = ZERO

    return EstablishmentAggregate(
        establishment_code=establishment_code,
        case_count=len(live),
        demand_total=quantize(demand),
        recovered_total=quantize(recovered),
        outstanding_total=quantize(outstanding),
        recovery_cost_charged=quantize(charged),
        recovery_cost_received=quantize(received),
        cost_outstanding=quantize(cost_outstanding),
        outstanding_with_cost_total=quantize(with_cost),
    )
