"""initial sales schema

Revision ID: s0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the complete sales distribution schema:
- branches, areas, users: organization and actors
- product_categories, products: catalog
- stocks, stock_movements: per-branch stock ledger and its audit trail
- sales_transactions, sales_transaction_items: field sales with approval lifecycle
- visits: field visits with approval lifecycle
- targets: revenue / quantity goals per branch or agent
- commissions: optional, only written while COMMISSIONS_ENABLED is set
- document_sequences: daily reference number counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return columns


def upgrade():
    # ============================================================================
    # Organization
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_branches_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'areas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'code', name='uq_areas_branch_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_areas_branch_id', 'areas', ['branch_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=64), nullable=True),
        # super_admin | branch_admin | sales
        sa.Column('role', sa.String(length=32), nullable=False, server_default='sales'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])
    op.create_index('ix_users_branch_role', 'users', ['branch_id', 'role'])

    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'product_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_product_categories_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(15, 2), nullable=False),
        sa.Column('cost', sa.Numeric(15, 2), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=False, server_default='pack'),
        sa.Column('items_per_carton', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('lifecycle_state', sa.String(length=16), nullable=False, server_default='active'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['product_categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_products_code'),
        sa.UniqueConstraint('barcode', name='uq_products_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_lifecycle_state', 'products', ['lifecycle_state'])
    op.create_index('ix_products_category_active', 'products', ['category_id', 'is_active'])

    # ============================================================================
    # Stock ledger
    # ============================================================================
    # quantity is never negative; version_id backs optimistic locking where
    # SELECT ... FOR UPDATE is not available (SQLite).
    op.create_table(
        'stocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_stocks_product_branch'),
        sa.CheckConstraint('quantity >= 0', name='ck_stocks_quantity_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stocks_product_id', 'stocks', ['product_id'])
    op.create_index('ix_stocks_branch_id', 'stocks', ['branch_id'])
    op.create_index('ix_stocks_branch_quantity', 'stocks', ['branch_id', 'quantity'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        # from_branch_id: stock left; to_branch_id: stock arrived; both for transfers
        sa.Column('from_branch_id', sa.Integer(), nullable=True),
        sa.Column('to_branch_id', sa.Integer(), nullable=True),
        # in | out | transfer | adjustment | sale | return
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_number', name='uq_stock_movements_reference'),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_from_branch_id', 'stock_movements', ['from_branch_id'])
    op.create_index('ix_stock_movements_to_branch_id', 'stock_movements', ['to_branch_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])

    # ============================================================================
    # Sales transactions
    # ============================================================================
    op.create_table(
        'sales_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=64), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sales_id', sa.Integer(), nullable=False),
        sa.Column('area_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('latitude', sa.String(length=32), nullable=True),
        sa.Column('longitude', sa.String(length=32), nullable=True),
        sa.Column('proof_photo', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('discount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        # Deprecated; NULL unless TAX_ENABLED
        sa.Column('tax', sa.Numeric(15, 2), nullable=True),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        # pending | approved | cancelled
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('lifecycle_state', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['sales_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['area_id'], ['areas.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number', name='uq_sales_transactions_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_transactions_transaction_date', 'sales_transactions', ['transaction_date'])
    op.create_index('ix_sales_transactions_branch_id', 'sales_transactions', ['branch_id'])
    op.create_index('ix_sales_transactions_sales_id', 'sales_transactions', ['sales_id'])
    op.create_index('ix_sales_transactions_area_id', 'sales_transactions', ['area_id'])
    op.create_index('ix_sales_transactions_status', 'sales_transactions', ['status'])
    op.create_index('ix_sales_transactions_lifecycle_state', 'sales_transactions', ['lifecycle_state'])
    op.create_index('ix_sales_transactions_branch_status_date', 'sales_transactions',
                    ['branch_id', 'status', 'transaction_date'])
    op.create_index('ix_sales_transactions_sales_date', 'sales_transactions', ['sales_id', 'transaction_date'])

    op.create_table(
        'sales_transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sales_transaction_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(15, 2), nullable=False),
        sa.Column('discount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.ForeignKeyConstraint(['sales_transaction_id'], ['sales_transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sales_transaction_id', 'line_number', name='uq_sales_items_txn_line'),
        sa.CheckConstraint('quantity > 0', name='ck_sales_items_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_transaction_items_sales_transaction_id', 'sales_transaction_items',
                    ['sales_transaction_id'])
    op.create_index('ix_sales_transaction_items_product_id', 'sales_transaction_items', ['product_id'])

    op.create_table(
        'commissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sales_transaction_id', sa.Integer(), nullable=False),
        sa.Column('sales_id', sa.Integer(), nullable=False),
        sa.Column('transaction_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('commission_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(15, 2), nullable=False),
        # pending | approved | paid
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['sales_transaction_id'], ['sales_transactions.id'], ),
        sa.ForeignKeyConstraint(['sales_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sales_transaction_id', name='uq_commissions_transaction'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_commissions_sales_transaction_id', 'commissions', ['sales_transaction_id'])
    op.create_index('ix_commissions_sales_id', 'commissions', ['sales_id'])
    op.create_index('ix_commissions_status', 'commissions', ['status'])

    # ============================================================================
    # Visits
    # ============================================================================
    op.create_table(
        'visits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visit_number', sa.String(length=64), nullable=False),
        sa.Column('visit_date', sa.Date(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sales_id', sa.Integer(), nullable=False),
        sa.Column('area_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('visit_type', sa.String(length=16), nullable=False, server_default='routine'),
        # pending | approved | rejected
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('purpose', sa.Text(), nullable=True),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('latitude', sa.String(length=32), nullable=True),
        sa.Column('longitude', sa.String(length=32), nullable=True),
        sa.Column('photo', sa.String(length=255), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('lifecycle_state', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['sales_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['area_id'], ['areas.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['rejected_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('visit_number', name='uq_visits_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_visits_visit_date', 'visits', ['visit_date'])
    op.create_index('ix_visits_branch_id', 'visits', ['branch_id'])
    op.create_index('ix_visits_sales_id', 'visits', ['sales_id'])
    op.create_index('ix_visits_area_id', 'visits', ['area_id'])
    op.create_index('ix_visits_status', 'visits', ['status'])
    op.create_index('ix_visits_lifecycle_state', 'visits', ['lifecycle_state'])
    op.create_index('ix_visits_branch_status_date', 'visits', ['branch_id', 'status', 'visit_date'])

    # ============================================================================
    # Targets
    # ============================================================================
    # Revenue targets carry amount, quantity targets carry quantity (never both).
    op.create_table(
        'targets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('period_type', sa.String(length=16), nullable=False, server_default='monthly'),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_targets_branch_id', 'targets', ['branch_id'])
    op.create_index('ix_targets_user_id', 'targets', ['user_id'])
    op.create_index('ix_targets_branch_period', 'targets', ['branch_id', 'year', 'month'])
    op.create_index('ix_targets_user_period', 'targets', ['user_id', 'year', 'month'])

    # ============================================================================
    # Reference numbers: {PREFIX}-{YYYYMMDD}-{NNNN}
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefix', 'sequence_date', name='uq_doc_sequences_prefix_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_prefix', 'document_sequences', ['prefix'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('document_sequences')
    op.drop_table('targets')
    op.drop_table('visits')
    op.drop_table('commissions')
    op.drop_table('sales_transaction_items')
    op.drop_table('sales_transactions')
    op.drop_table('stock_movements')
    op.drop_table('stocks')
    op.drop_table('products')
    op.drop_table('product_categories')
    op.drop_table('users')
    op.drop_table('areas')
    op.drop_table('branches')
