"""Case record request and response schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recovery_ledger.ledger.reconciliation import CaseAggregates


class CaseCreate(BaseModel):
    """Demand intake for a new case."""

    establishment_code: str = Field(..., min_length=1)
    case_number: str = Field(..., min_length=1)
    establishment_name: Optional[str] = None
    case_date: Optional[date] = None
    period: Optional[str] = None
    statutory_basis: Optional[str] = Field(
        None, description="U/S tag such as '7A' or '7A, 14B & 7Q'; empty applies all sections"
    )
    demand: Dict[str, Decimal] = Field(
        default_factory=dict, description="Demand per sub-account code"
    )
    recovery_cost_charged: Optional[Decimal] = Field(
        None, description="Establishment recovery cost; replaces the value on every sibling case"
    )


class CaseUpdate(BaseModel):
    """Operator edit of a case.

    Unknown fields are kept so computed ledger fields sent by a client are
    rejected by the service instead of silently dropped.
    """

    model_config = ConfigDict(extra="allow")

    establishment_name: Optional[str] = None
    case_date: Optional[date] = None
    period: Optional[str] = None
    statutory_basis: Optional[str] = None
    demand: Optional[Dict[str, Decimal]] = None


class CaseResponse(BaseModel):
    id: UUID
    establishment_code: str
    case_number: str
    establishment_name: Optional[str] = None
    case_date: Optional[date] = None
    period: Optional[str] = None
    statutory_basis: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    version: int
    aggregates: CaseAggregates
