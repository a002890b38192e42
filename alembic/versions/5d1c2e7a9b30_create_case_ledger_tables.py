"""create case ledger tables

Revision ID: 5d1c2e7a9b30
Revises:
Create Date: 2026-10-19 09:12:41.208114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5d1c2e7a9b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('cases',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('establishment_code', sa.String(), nullable=False),
    sa.Column('case_number', sa.String(), nullable=False),
    sa.Column('establishment_name', sa.String(), nullable=True),
    sa.Column('case_date', sa.Date(), nullable=True),
    sa.Column('period', sa.String(), nullable=True),
    sa.Column('statutory_basis', sa.String(), nullable=True, comment="U/S tag, e.g. '7A, 14B & 7Q'"),
    sa.Column('demand', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('recovered', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('outstanding', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('section_totals', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('demand_total', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('recovered_total', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('outstanding_total', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('recovery_cost_charged', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('recovery_cost_received', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('cost_outstanding', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('outstanding_with_cost', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('is_deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('version', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('establishment_code', 'case_number', name='uq_cases_establishment_case')
    )
    op.create_index('ix_cases_establishment_code', 'cases', ['establishment_code'], unique=False)

    op.create_table('recovery_transactions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('cost_amount', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('transaction_date', sa.Date(), nullable=False),
    sa.Column('instrument_date', sa.Date(), nullable=True),
    sa.Column('reference_number', sa.String(), nullable=True),
    sa.Column('transaction_type', sa.String(), nullable=True),
    sa.Column('bank_name', sa.String(), nullable=True),
    sa.Column('remark', sa.Text(), nullable=True),
    sa.Column('allocation', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('allocation_mode', sa.String(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=True),
    sa.ForeignKeyConstraint(['case_id'], ['cases.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('reference_number', 'instrument_date', name='uq_recovery_transactions_reference')
    )
    op.create_index(op.f('ix_recovery_transactions_case_id'), 'recovery_transactions', ['case_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_recovery_transactions_case_id'), table_name='recovery_transactions')
    op.drop_table('recovery_transactions')
    op.drop_index('ix_cases_establishment_code', table_name='cases')
    op.drop_table('cases')
