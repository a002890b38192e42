"""Recovery transaction schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recovery_ledger.ledger.reconciliation import CaseAggregates


class TransactionType(str, Enum):
    DD = "DD"
    TRRN = "TRRN"


class AllocationMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class TransactionPayload(BaseModel):
    """Fields shared by transaction create and edit."""

    amount: Decimal = Field(..., description="Total amount received")
    cost_amount: Decimal = Field(
        Decimal("0"), description="Portion of the amount that is recovery cost only"
    )
    transaction_date: date = Field(..., description="Recovery date")
    instrument_date: Optional[date] = Field(None, description="DD/TRRN date")
    reference_number: Optional[str] = Field(None, description="DD/TRRN number")
    transaction_type: Optional[TransactionType] = None
    bank_name: Optional[str] = None
    remark: Optional[str] = None
    allocation: Optional[Dict[str, Decimal]] = Field(
        None,
        description="Manual allocation per sub-account; omitted to use the statutory waterfall",
    )
    allow_over_recovery: Optional[bool] = Field(
        None,
        description="Credit any excess to the highest-priority sub-account instead of rejecting",
    )


class TransactionCreate(TransactionPayload):
    case_id: UUID


class TransactionUpdate(TransactionPayload):
    pass


class TransactionResponse(BaseModel):
    id: UUID
    case_id: UUID
    amount: Decimal
    cost_amount: Decimal
    transaction_date: date
    instrument_date: Optional[date] = None
    reference_number: Optional[str] = None
    transaction_type: Optional[str] = None
    bank_name: Optional[str] = None
    remark: Optional[str] = None
    allocation: Dict[str, Decimal]
    allocation_mode: AllocationMode
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionResult(BaseModel):
    """A written transaction and the case aggregates it produced."""

    transaction: Optional[TransactionResponse] = None
    aggregates: CaseAggregates


class TransactionListResponse(BaseModel):
    case_id: UUID
    transactions: List[TransactionResponse]
    total: int


class AllocationPreviewRequest(BaseModel):
    amount: Decimal
    cost_amount: Decimal = Decimal("0")
    exclude_transaction_id: Optional[UUID] = Field(
        None, description="Transaction being edited; its allocation is left out of the balances"
    )


class AllocationPreview(BaseModel):
    case_id: UUID
    amount: Decimal
    cost_amount: Decimal
    allocation: Dict[str, Decimal]
    unallocated_remainder: Decimal
    outstanding: Dict[str, Decimal] = Field(
        ..., description="Outstanding balances the proposal was computed against"
    )
