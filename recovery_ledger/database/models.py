"""SQLAlchemy models for the case ledger tables."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recovery_ledger.core.database import Base

MONEY = Numeric(14, 2)


class CaseRecord(Base):
    """One recovery case: demand per sub-account plus derived aggregates.

    The ``recovered``, ``outstanding`` and ``section_totals`` maps and every
    ``*_total`` column are written only by the reconciliation service.
    """

    __tablename__ = "cases"
    __table_args__ = (
        UniqueConstraint("establishment_code", "case_number", name="uq_cases_establishment_case"),
        Index("ix_cases_establishment_code", "establishment_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    establishment_code: Mapped[str] = mapped_column(String, nullable=False)
    case_number: Mapped[str] = mapped_column(String, nullable=False)
    establishment_name: Mapped[str | None] = mapped_column(String, nullable=True)
    case_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    period: Mapped[str | None] = mapped_column(String, nullable=True)
    statutory_basis: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="U/S tag, e.g. '7A, 14B & 7Q'"
    )

    # Sub-account code -> decimal string
    demand: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    recovered: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    outstanding: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # Section tag -> {demand, recovered, outstanding}
    section_totals: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    demand_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    recovered_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    outstanding_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    # Establishment-scoped, replicated across the establishment's cases
    recovery_cost_charged: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    recovery_cost_received: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    cost_outstanding: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    outstanding_with_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    transactions: Mapped[list["RecoveryTransaction"]] = relationship(
        "RecoveryTransaction", back_populates="case", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}


class RecoveryTransaction(Base):
    """A payment received against a case and its allocation vector."""

    __tablename__ = "recovery_transactions"
    __table_args__ = (
        UniqueConstraint(
            "reference_number", "instrument_date", name="uq_recovery_transactions_reference"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cost_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    instrument_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String, nullable=True)  # DD | TRRN
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    allocation: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    allocation_mode: Mapped[str] = mapped_column(
        String, nullable=False, default="auto"
    )  # auto | manual

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    case: Mapped["CaseRecord"] = relationship("CaseRecord", back_populates="transactions")

    __mapper_args__ = {"eager_defaults": True}
