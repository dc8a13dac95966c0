"""initial_schema

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 09:12:44.518203+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. reference tables (no FKs)
    op.create_table('entities',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('currencies',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('code', sa.String(length=3), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )
    op.create_table('categories',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_categories_active', 'categories', ['is_active'], unique=False)
    op.create_table('vendors',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('address', sa.String(length=500), nullable=True),
    sa.Column('gst_exemption', sa.Boolean(), nullable=False),
    sa.Column('bank_details', sa.Text(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_vendors_name', 'vendors', ['name'], unique=False)
    op.create_index('idx_vendors_active', 'vendors', ['is_active'], unique=False)
    op.create_table('payment_types',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('requires_reference', sa.Boolean(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )

    # 2. invoice profiles (FKs to every reference table)
    op.create_table('invoice_profiles',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('visible_to_all', sa.Boolean(), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('vendor_id', sa.UUID(), nullable=False),
    sa.Column('category_id', sa.UUID(), nullable=False),
    sa.Column('currency_id', sa.UUID(), nullable=False),
    sa.Column('billing_frequency', sa.String(length=20), nullable=True),
    sa.Column('billing_frequency_value', sa.Integer(), nullable=True),
    sa.Column('tds_applicable', sa.Boolean(), nullable=False),
    sa.Column('tds_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('tds_percentage IS NULL OR (tds_percentage >= 0 AND tds_percentage <= 100)', name='chk_profile_tds_percentage'),
    sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
    sa.ForeignKeyConstraint(['currency_id'], ['currencies.id'], ),
    sa.ForeignKeyConstraint(['entity_id'], ['entities.id'], ),
    sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_profiles_vendor', 'invoice_profiles', ['vendor_id'], unique=False)

    # 3. invoices + payments
    op.create_table('invoices',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('invoice_number', sa.String(length=100), nullable=False),
    sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('is_archived', sa.Boolean(), nullable=False),
    sa.Column('due_date', sa.Date(), nullable=True),
    sa.Column('tds_applicable', sa.Boolean(), nullable=False),
    sa.Column('tds_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.Column('tds_rounded', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('amount >= 0', name='chk_invoice_amount'),
    sa.CheckConstraint("status IN ('pending_approval','on_hold','unpaid','partial','paid','overdue','rejected')", name='chk_invoice_status'),
    sa.CheckConstraint('tds_percentage IS NULL OR (tds_percentage >= 0 AND tds_percentage <= 100)', name='chk_invoice_tds_percentage'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_invoices_status', 'invoices', ['status'], unique=False)
    op.create_table('payments',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('invoice_id', sa.UUID(), nullable=False),
    sa.Column('amount_paid', sa.Numeric(precision=15, scale=2), nullable=False),
    sa.Column('payment_date', sa.Date(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('payment_type_id', sa.UUID(), nullable=True),
    sa.Column('payment_reference', sa.String(length=100), nullable=True),
    sa.Column('tds_amount_applied', sa.Numeric(precision=15, scale=2), nullable=True),
    sa.Column('tds_rounded', sa.Boolean(), nullable=False),
    sa.Column('rejection_reason', sa.Text(), nullable=True),
    sa.Column('created_by', sa.UUID(), nullable=False),
    sa.Column('approved_by', sa.UUID(), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('amount_paid > 0', name='chk_payment_amount'),
    sa.CheckConstraint("status IN ('pending','approved','rejected')", name='chk_payment_status'),
    sa.CheckConstraint("status != 'approved' OR approved_at IS NOT NULL", name='chk_payment_approved_at'),
    sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
    sa.ForeignKeyConstraint(['payment_type_id'], ['payment_types.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_payments_invoice', 'payments', ['invoice_id'], unique=False)
    op.create_index('idx_payments_status', 'payments', ['status'], unique=False)
    op.create_index(
        'uq_payments_one_pending_per_invoice', 'payments', ['invoice_id'],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )

    # 4. master data requests (self-referencing resubmission chain)
    op.create_table('master_data_requests',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('entity_kind', sa.String(length=30), nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False),
    sa.Column('requester_id', sa.UUID(), nullable=False),
    sa.Column('reviewer_id', sa.UUID(), nullable=True),
    sa.Column('reviewed_at', sa.DateTime(), nullable=True),
    sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('rejection_reason', sa.Text(), nullable=True),
    sa.Column('admin_edits', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('admin_notes', sa.Text(), nullable=True),
    sa.Column('resubmission_count', sa.Integer(), nullable=False),
    sa.Column('previous_attempt_id', sa.UUID(), nullable=True),
    sa.Column('superseded_by_id', sa.UUID(), nullable=True),
    sa.Column('created_entity_id', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("entity_kind IN ('vendor','category','invoice_profile','payment_type')", name='chk_mdr_entity_kind'),
    sa.CheckConstraint("status IN ('draft','pending_approval','approved','rejected')", name='chk_mdr_status'),
    sa.CheckConstraint('resubmission_count >= 0 AND resubmission_count <= 2', name='chk_mdr_resubmission_count'),
    sa.CheckConstraint("status != 'approved' OR created_entity_id IS NOT NULL", name='chk_mdr_approved_has_entity'),
    sa.CheckConstraint("status != 'rejected' OR rejection_reason IS NOT NULL", name='chk_mdr_rejected_has_reason'),
    sa.ForeignKeyConstraint(['previous_attempt_id'], ['master_data_requests.id'], ),
    sa.ForeignKeyConstraint(['superseded_by_id'], ['master_data_requests.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_mdr_requester', 'master_data_requests', ['requester_id'], unique=False)
    op.create_index('idx_mdr_status', 'master_data_requests', ['status'], unique=False)
    op.create_index('idx_mdr_kind_status', 'master_data_requests', ['entity_kind', 'status'], unique=False)

    # 5. audit logs
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.UUID(), nullable=True),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('before_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('after_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('changed_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_actor', 'audit_logs', ['actor_id'], unique=False)
    op.create_index('idx_audit_created', 'audit_logs', [sa.text('created_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_index('idx_audit_created', table_name='audit_logs')
    op.drop_index('idx_audit_actor', table_name='audit_logs')
    op.drop_index('idx_audit_entity', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('idx_mdr_kind_status', table_name='master_data_requests')
    op.drop_index('idx_mdr_status', table_name='master_data_requests')
    op.drop_index('idx_mdr_requester', table_name='master_data_requests')
    op.drop_table('master_data_requests')
    op.drop_index('uq_payments_one_pending_per_invoice', table_name='payments')
    op.drop_index('idx_payments_status', table_name='payments')
    op.drop_index('idx_payments_invoice', table_name='payments')
    op.drop_table('payments')
    op.drop_index('idx_invoices_status', table_name='invoices')
    op.drop_table('invoices')
    op.drop_index('idx_profiles_vendor', table_name='invoice_profiles')
    op.drop_table('invoice_profiles')
    op.drop_table('payment_types')
    op.drop_index('idx_vendors_active', table_name='vendors')
    op.drop_index('idx_vendors_name', table_name='vendors')
    op.drop_table('vendors')
    op.drop_index('idx_categories_active', table_name='categories')
    op.drop_table('categories')
    op.drop_table('currencies')
    op.drop_table('entities')
