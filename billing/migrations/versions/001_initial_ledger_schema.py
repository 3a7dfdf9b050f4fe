"""Initial ledger schema.

Revision ID: 001_initial_ledger_schema
Revises: None
Create Date: 2025-06-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None

STATUS_CODES = ('UNPAID', 'PARTIAL', 'PAID', 'OVERDUE', 'DUNNING', 'CANCELLED')


def _timestamps():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _status_code():
    return sa.Enum(*STATUS_CODES, name='statuscode', native_enum=False, length=20)


def upgrade() -> None:
    """Create ledger tables."""
    op.create_table(
        'members',
        *_timestamps(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'invoice_statuses',
        *_timestamps(),
        sa.Column('code', _status_code(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_overdue', sa.Boolean(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'invoices',
        *_timestamps(),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status_code', _status_code(), nullable=False),
        sa.Column('remarks', sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['status_code'], ['invoice_statuses.code'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
    )
    op.create_index('ix_invoices_member_id', 'invoices', ['member_id'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status_code', 'invoices', ['status_code'])
    op.create_index('idx_invoice_member_status', 'invoices', ['member_id', 'status_code'])

    op.create_table(
        'invoice_lines',
        *_timestamps(),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invoice_lines_invoice_id', 'invoice_lines', ['invoice_id'])

    op.create_table(
        'payment_import_batches',
        *_timestamps(),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=True),
        sa.Column('imported_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'payments',
        *_timestamps(),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payer_name', sa.String(255), nullable=True),
        sa.Column('method', sa.String(50), nullable=True),
        sa.Column('import_batch_id', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['import_batch_id'], ['payment_import_batches.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_member_id', 'payments', ['member_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('ix_payments_import_batch_id', 'payments', ['import_batch_id'])
    op.create_index('idx_payment_member_date', 'payments', ['member_id', 'payment_date'])

    op.create_table(
        'allocations',
        *_timestamps(),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', 'invoice_id', name='uq_allocation_payment_invoice'),
        sa.CheckConstraint('amount > 0', name='ck_allocation_amount_positive'),
    )
    op.create_index('ix_allocations_payment_id', 'allocations', ['payment_id'])
    op.create_index('ix_allocations_invoice_id', 'allocations', ['invoice_id'])

    op.create_table(
        'reminder_histories',
        *_timestamps(),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('reminded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            'method',
            sa.Enum('EMAIL', 'PHONE', 'LETTER', name='remindermethod', native_enum=False, length=20),
            nullable=False,
        ),
        sa.Column(
            'tone',
            sa.Enum('SOFT', 'NORMAL', 'STRONG', name='remindertone', native_enum=False, length=20),
            nullable=True,
        ),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('note', sa.String(1000), nullable=True),
        sa.Column('next_action_date', sa.Date(), nullable=True),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reminder_histories_invoice_id', 'reminder_histories', ['invoice_id'])

    op.create_table(
        'audit_logs',
        *_timestamps(),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(50), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(50), nullable=True),
        sa.Column('correlation_id', sa.String(100), nullable=True),
        sa.Column('summary', sa.String(500), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade() -> None:
    """Drop ledger tables."""
    op.drop_table('audit_logs')
    op.drop_table('reminder_histories')
    op.drop_table('allocations')
    op.drop_table('payments')
    op.drop_table('payment_import_batches')
    op.drop_table('invoice_lines')
    op.drop_table('invoices')
    op.drop_table('invoice_statuses')
    op.drop_table('members')
