"""create expense sync tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    ]


def upgrade():
    op.create_table(
        'sync_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category', sa.String(50), nullable=False, server_default='expenses'),
        sa.Column('kind', sa.Enum('sync', 'reprocess', name='syncjobkind'), nullable=False, server_default='sync'),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', name='syncjobstatus'), nullable=False, server_default='pending'),
        sa.Column('total_emails', sa.Integer(), nullable=True),
        sa.Column('processed_emails', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_emails', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transactions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('statements', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_emails', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_sync_jobs_user_id', 'sync_jobs', ['user_id'])
    op.create_index('ix_sync_jobs_status', 'sync_jobs', ['status'])

    op.create_table(
        'raw_emails',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category', sa.String(50), nullable=False, server_default='expenses'),
        sa.Column('provider', sa.String(30), nullable=False, server_default='gmail'),
        sa.Column('provider_message_id', sa.String(255), nullable=False),
        sa.Column('from_address', sa.String(512), nullable=False, server_default=''),
        sa.Column('subject', sa.Text(), nullable=False, server_default=''),
        sa.Column('body_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('body_html', sa.Text(), nullable=True),
        sa.Column('snippet', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'provider', 'provider_message_id', name='uq_raw_emails_user_provider_message'),
    )
    op.create_index('ix_raw_emails_user_id', 'raw_emails', ['user_id'])
    op.create_index('ix_raw_emails_processed', 'raw_emails', ['processed'])

    op.create_table(
        'statements',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('issuer', sa.String(50), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('total_due', sa.Numeric(14, 2), nullable=False),
        sa.Column('minimum_due', sa.Numeric(14, 2), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('source_email_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('raw_emails.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'issuer', 'period_start', 'period_end', name='uq_statements_user_issuer_period'),
    )
    op.create_index('ix_statements_user_id', 'statements', ['user_id'])

    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('dedupe_hash', sa.String(64), nullable=False),
        sa.Column('source_email_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('raw_emails.id', ondelete='SET NULL'), nullable=True),
        sa.Column('statement_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('statements.id', ondelete='SET NULL'), nullable=True),
        sa.Column('merchant', sa.String(255), nullable=False),
        sa.Column('merchant_raw', sa.String(512), nullable=False),
        sa.Column('vpa', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False, server_default='debited'),
        sa.Column('transaction_mode', sa.String(20), nullable=False, server_default='other'),
        sa.Column('card_last4', sa.String(4), nullable=True),
        sa.Column('card_name', sa.String(255), nullable=True),
        sa.Column('category', sa.String(100), nullable=False, server_default='uncategorized'),
        sa.Column('subcategory', sa.String(100), nullable=False, server_default='uncategorized'),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0'),
        sa.Column('categorization_method', sa.String(20), nullable=False, server_default='heuristic'),
        sa.Column('requires_review', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('category_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'dedupe_hash', name='uq_transactions_user_dedupe_hash'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_user_date', 'transactions', ['user_id', 'transaction_date'])

    op.create_table(
        'merchant_category_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('merchant', sa.String(255), nullable=False),
        sa.Column('merchant_key', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('subcategory', sa.String(100), nullable=False),
        sa.Column('category_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'merchant_key', name='uq_merchant_category_rules_user_merchant'),
    )
    op.create_index('ix_merchant_category_rules_user_id', 'merchant_category_rules', ['user_id'])


def downgrade():
    op.drop_index('ix_merchant_category_rules_user_id', table_name='merchant_category_rules')
    op.drop_table('merchant_category_rules')
    op.drop_index('ix_transactions_user_date', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_statements_user_id', table_name='statements')
    op.drop_table('statements')
    op.drop_index('ix_raw_emails_processed', table_name='raw_emails')
    op.drop_index('ix_raw_emails_user_id', table_name='raw_emails')
    op.drop_table('raw_emails')
    op.drop_index('ix_sync_jobs_status', table_name='sync_jobs')
    op.drop_index('ix_sync_jobs_user_id', table_name='sync_jobs')
    op.drop_table('sync_jobs')
    op.execute('DROP TYPE syncjobstatus')
    op.execute('DROP TYPE syncjobkind')
