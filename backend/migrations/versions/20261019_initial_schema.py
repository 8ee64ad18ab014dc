"""Initial schema: catalog, stock ledger, approvals, sales, expenses

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. product_categories and products (live stock snapshot, soft delete, version_id)
2. restock_records and damage_records
3. stock_movements (single-table per movement_type, version_id)
4. sales, sale_payments, sale_audits
5. expense_categories, expenses and deposits
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None

QUANTITY = sa.Numeric(14, 3)
UNIT_MONEY = sa.Numeric(14, 4)
MONEY = sa.Numeric(14, 2)


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('product_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'name', name='uq_product_categories_account_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_categories_account_id', 'product_categories', ['account_id'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity_box', QUANTITY, nullable=False),
        sa.Column('quantity_kg', QUANTITY, nullable=False),
        sa.Column('box_to_kg_ratio', QUANTITY, nullable=False),
        sa.Column('cost_per_box', UNIT_MONEY, nullable=False),
        sa.Column('cost_per_kg', UNIT_MONEY, nullable=False),
        sa.Column('price_per_box', UNIT_MONEY, nullable=False),
        sa.Column('price_per_kg', UNIT_MONEY, nullable=False),
        sa.Column('profit_per_box', UNIT_MONEY, nullable=False),
        sa.Column('profit_per_kg', UNIT_MONEY, nullable=False),
        sa.Column('low_stock_threshold', QUANTITY, nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('days_left', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['product_categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_account_id', 'products', ['account_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_account_name', 'products', ['account_id', 'name'])
    op.create_index('ix_products_account_deleted', 'products', ['account_id', 'deleted_at'])

    # ==========================================================================
    # 2. RESTOCK / DAMAGE RECORDS
    # ==========================================================================
    op.create_table('restock_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('boxes_added', QUANTITY, nullable=False),
        sa.Column('kg_added', QUANTITY, nullable=False),
        sa.Column('total_cost', MONEY, nullable=False),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('performed_by', sa.String(length=120), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_restock_records_account_id', 'restock_records', ['account_id'])
    op.create_index('ix_restock_records_product_id', 'restock_records', ['product_id'])
    op.create_index('ix_restock_records_recorded_at', 'restock_records', ['recorded_at'])
    op.create_index('ix_restocks_account_product_recorded', 'restock_records', ['account_id', 'product_id', 'recorded_at'])

    op.create_table('damage_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('damaged_boxes', QUANTITY, nullable=False),
        sa.Column('damaged_kg', QUANTITY, nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('loss_value', MONEY, nullable=False),
        sa.Column('damage_approval', sa.String(length=16), nullable=False),
        sa.Column('reported_by', sa.String(length=120), nullable=True),
        sa.Column('approved_by', sa.String(length=120), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_damage_records_account_id', 'damage_records', ['account_id'])
    op.create_index('ix_damage_records_product_id', 'damage_records', ['product_id'])
    op.create_index('ix_damage_records_damage_approval', 'damage_records', ['damage_approval'])
    op.create_index('ix_damage_records_recorded_at', 'damage_records', ['recorded_at'])
    op.create_index('ix_damages_account_product_recorded', 'damage_records', ['account_id', 'product_id', 'recorded_at'])
    op.create_index('ix_damages_account_approval', 'damage_records', ['account_id', 'damage_approval'])

    # ==========================================================================
    # 3. STOCK MOVEMENTS (append-only ledger)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('box_change', QUANTITY, nullable=False),
        sa.Column('kg_change', QUANTITY, nullable=False),
        sa.Column('field_changed', sa.String(length=64), nullable=True),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('performed_by', sa.String(length=120), nullable=True),
        sa.Column('decided_by', sa.String(length=120), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('restock_id', sa.Integer(), nullable=True),
        sa.Column('damage_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['restock_id'], ['restock_records.id']),
        sa.ForeignKeyConstraint(['damage_id'], ['damage_records.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_movements_account_id', 'stock_movements', ['account_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_status', 'stock_movements', ['status'])
    op.create_index('ix_stock_movements_damage_id', 'stock_movements', ['damage_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_movements_account_product_created', 'stock_movements', ['account_id', 'product_id', 'created_at'])
    op.create_index('ix_movements_account_status', 'stock_movements', ['account_id', 'status'])

    # ==========================================================================
    # 4. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('client_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=64), nullable=True),
        sa.Column('boxes_quantity', QUANTITY, nullable=False),
        sa.Column('kg_quantity', QUANTITY, nullable=False),
        sa.Column('box_price', UNIT_MONEY, nullable=False),
        sa.Column('kg_price', UNIT_MONEY, nullable=False),
        sa.Column('profit_per_box', UNIT_MONEY, nullable=False),
        sa.Column('profit_per_kg', UNIT_MONEY, nullable=False),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('amount_paid', MONEY, nullable=False),
        sa.Column('remaining_amount', MONEY, nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sold_by', sa.String(length=120), nullable=True),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_account_id', 'sales', ['account_id'])
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])
    op.create_index('ix_sales_sold_at', 'sales', ['sold_at'])
    op.create_index('ix_sales_account_sold_at', 'sales', ['account_id', 'sold_at'])
    op.create_index('ix_sales_account_client_status', 'sales', ['account_id', 'client_id', 'payment_status'])

    op.create_table('sale_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('received_by', sa.String(length=120), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_payments_account_id', 'sale_payments', ['account_id'])
    op.create_index('ix_sale_payments_sale_id', 'sale_payments', ['sale_id'])
    op.create_index('ix_sale_payments_client_id', 'sale_payments', ['client_id'])
    op.create_index('ix_sale_payments_paid_at', 'sale_payments', ['paid_at'])

    op.create_table('sale_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('audit_type', sa.String(length=16), nullable=False),
        sa.Column('boxes_before', QUANTITY, nullable=True),
        sa.Column('boxes_after', QUANTITY, nullable=True),
        sa.Column('kg_before', QUANTITY, nullable=True),
        sa.Column('kg_after', QUANTITY, nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('approval_status', sa.String(length=16), nullable=False),
        sa.Column('requested_by', sa.String(length=120), nullable=True),
        sa.Column('decided_by', sa.String(length=120), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_audits_account_id', 'sale_audits', ['account_id'])
    op.create_index('ix_sale_audits_sale_id', 'sale_audits', ['sale_id'])
    op.create_index('ix_sale_audits_approval_status', 'sale_audits', ['approval_status'])
    op.create_index('ix_sale_audits_account_status', 'sale_audits', ['account_id', 'approval_status'])

    # ==========================================================================
    # 5. EXPENSE CATEGORIES / EXPENSES / DEPOSITS
    # ==========================================================================
    op.create_table('expense_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('budget', MONEY, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'name', name='uq_expense_categories_account_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_expense_categories_account_id', 'expense_categories', ['account_id'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('spent_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_expenses_account_id', 'expenses', ['account_id'])
    op.create_index('ix_expenses_account_spent_at', 'expenses', ['account_id', 'spent_at'])

    op.create_table('deposits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=64), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('bank_name', sa.String(length=120), nullable=True),
        sa.Column('reference', sa.String(length=120), nullable=True),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('deposited_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_deposits_account_id', 'deposits', ['account_id'])
    op.create_index('ix_deposits_account_deposited_at', 'deposits', ['account_id', 'deposited_at'])


def downgrade():
    op.drop_table('deposits')
    op.drop_table('expenses')
    op.drop_table('expense_categories')
    op.drop_table('sale_audits')
    op.drop_table('sale_payments')
    op.drop_table('sales')
    op.drop_table('stock_movements')
    op.drop_table('damage_records')
    op.drop_table('restock_records')
    op.drop_table('products')
    op.drop_table('product_categories')
