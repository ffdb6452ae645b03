"""initial petty cash schema

Revision ID: b7e41c2a9d10
Revises:
Create Date: 2026-03-02 00:00:00.000000

Creates the complete petty cash schema:
- users, session_tokens, otps: identity and credentials
- categories, transactions, document_sequences: expenses and numbering
- balances, fund_transfers: the ledger and its credits
- audit_logs, user_activity_logs, login_activities: write-only trails

Money columns are integer cents (BIGINT). The ledger floor and the
received/spent invariants are enforced by CHECK constraints as well as by the
conditional UPDATEs in the services.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7e41c2a9d10'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),  # NULL -> OTP-only
        sa.Column('role', sa.String(length=32), nullable=False, server_default='employee'),
        sa.Column('approval_limit_cents', sa.BigInteger(), nullable=True),  # NULL -> unlimited
        sa.Column('department', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('failed_password_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_otp_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_failed_password_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('account_locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_otp_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('login_method', sa.String(length=16), nullable=False, server_default='password'),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    op.create_table(
        'otps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('code_hash', sa.String(length=64), nullable=False),  # SHA-256 hex, never the code
        sa.Column('otp_type', sa.String(length=32), nullable=False, server_default='login'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invalidated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_otps_user_id', 'otps', ['user_id'])
    op.create_index('ix_otps_user_type_active', 'otps', ['user_id', 'otp_type', 'is_used'])
    op.create_index('ix_otps_expires_at', 'otps', ['expires_at'])

    # ============================================================================
    # categories / clients / transactions / document_sequences
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('budget_limit_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('budget_limit_cents >= 0', name='ck_categories_budget_non_negative'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sa.UniqueConstraint('code', name='uq_categories_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('gst_number', sa.String(length=15), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('supply_type', sa.String(length=200), nullable=True),
        sa.Column('client_type', sa.String(length=32), nullable=False, server_default='vendor'),
        sa.Column('bank_name', sa.String(length=120), nullable=True),
        sa.Column('bank_account_number', sa.String(length=34), nullable=True),
        sa.Column('bank_ifsc_code', sa.String(length=11), nullable=True),
        sa.Column('bank_account_holder', sa.String(length=120), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gst_number', name='uq_clients_gst_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clients_name', 'clients', ['name'])

    # WHY both amount shapes: rows recorded before tax tracking carry only
    # amount_cents; every reader resolves coalesce(post_tax, amount, 0).
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('requested_by_user_id', sa.Integer(), nullable=True),
        sa.Column('submitted_by_user_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('vendor_name', sa.String(length=200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('pre_tax_amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('tax_amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('post_tax_amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('gst_applicable', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('account_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('escalated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('escalated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by_user_id', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('info_requested', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('info_request_comment', sa.Text(), nullable=True),
        sa.Column('info_requested_by_user_id', sa.Integer(), nullable=True),
        sa.Column('info_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resubmitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by_user_id', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(length=120), nullable=True),
        sa.Column('ledger_debited', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('invoice_path', sa.String(length=512), nullable=True),
        sa.Column('payment_proof_path', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'coalesce(post_tax_amount_cents, amount_cents, 0) >= 0',
            name='ck_transactions_amount_non_negative',
        ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['requested_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['submitted_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['escalated_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['rejected_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['info_requested_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['paid_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_transaction_number', 'transactions', ['transaction_number'], unique=True)
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_account_status', 'transactions', ['account_type', 'status'])
    op.create_index('ix_transactions_submitted_by', 'transactions', ['submitted_by_user_id'])
    op.create_index('ix_transactions_date', 'transactions', ['transaction_date'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'sequence_date', name='uq_doc_sequences_type_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    # ============================================================================
    # balances / fund_transfers
    # ============================================================================
    op.create_table(
        'balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_type', sa.String(length=32), nullable=False),
        sa.Column('current_balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_received_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_spent_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.CheckConstraint('current_balance_cents >= 0', name='ck_balances_non_negative'),
        sa.CheckConstraint('total_received_cents >= 0', name='ck_balances_received_non_negative'),
        sa.CheckConstraint('total_spent_cents >= 0', name='ck_balances_spent_non_negative'),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_type', name='uq_balances_account_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_balances_account_type', 'balances', ['account_type'])

    op.create_table(
        'fund_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_number', sa.String(length=32), nullable=False),
        sa.Column('transfer_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('initiated_by_user_id', sa.Integer(), nullable=False),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('reference', sa.String(length=120), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint('amount_cents > 0', name='ck_fund_transfers_amount_positive'),
        sa.ForeignKeyConstraint(['initiated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_fund_transfers_transfer_number', 'fund_transfers', ['transfer_number'], unique=True)
    op.create_index('ix_fund_transfers_type_status', 'fund_transfers', ['transfer_type', 'status'])

    # ============================================================================
    # audit trails (append-only)
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('target_model', sa.String(length=64), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='success'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_performed_by_user_id', 'audit_logs', ['performed_by_user_id'])
    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_model', 'target_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.create_table(
        'user_activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('target_user_id', sa.Integer(), nullable=True),
        sa.Column('target_user_name', sa.String(length=120), nullable=True),
        sa.Column('target_user_email', sa.String(length=255), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('performed_by_name', sa.String(length=120), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_activity_target', 'user_activity_logs', ['target_user_id', 'created_at'])

    op.create_table(
        'login_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('login_method', sa.String(length=16), nullable=False),
        sa.Column('login_status', sa.String(length=16), nullable=False),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_login_activities_user_time', 'login_activities', ['user_id', 'occurred_at'])
    op.create_index('ix_login_activities_status', 'login_activities', ['login_status'])


def downgrade():
    for table in (
        'login_activities',
        'user_activity_logs',
        'audit_logs',
        'fund_transfers',
        'balances',
        'document_sequences',
        'transactions',
        'clients',
        'categories',
        'otps',
        'session_tokens',
        'users',
    ):
        op.drop_table(table)
