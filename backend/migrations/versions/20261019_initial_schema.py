"""Initial schema: customers, bookings, cylinder/stove units, lending records

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. customers (payment_history JSON ledger, unique phone per owner)
2. bookings (delivery x payment state, stock_shortfall)
3. cylinder_units and stove_units (one row per physical unit)
4. lending_records (RETURNED stove history, swept after retention)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('book_id', sa.String(length=16), nullable=True),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('subsidy', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('cylinders', sa.Integer(), nullable=False),
        sa.Column('cylinder_type', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_history', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_key', 'phone', name='uq_customers_owner_phone'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customers_owner_key', 'customers', ['owner_key'])
    op.create_index('ix_customers_owner_book_id', 'customers', ['owner_key', 'book_id'])
    op.create_index('ix_customers_owner_category', 'customers', ['owner_key', 'category'])

    # ==========================================================================
    # 2. BOOKINGS
    # ==========================================================================
    op.create_table('bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('cylinders', sa.Integer(), nullable=False),
        sa.Column('cylinder_type', sa.String(length=16), nullable=False),
        sa.Column('dsc_code', sa.String(length=4), nullable=False),
        sa.Column('service_type', sa.String(length=16), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('payment_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('empty_cylinder_received', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stock_shortfall', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bookings_owner_key', 'bookings', ['owner_key'])
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_owner_status', 'bookings', ['owner_key', 'status'])
    op.create_index('ix_bookings_owner_payment', 'bookings', ['owner_key', 'payment_status'])
    op.create_index('ix_bookings_owner_delivery_date', 'bookings', ['owner_key', 'delivery_date'])

    # ==========================================================================
    # 3. UNITS
    # ==========================================================================
    op.create_table('cylinder_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sa.String(length=64), nullable=False),
        sa.Column('cylinder_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_cylinder_units_owner_key', 'cylinder_units', ['owner_key'])
    op.create_index('ix_cylinder_units_owner_type_status', 'cylinder_units', ['owner_key', 'cylinder_type', 'status'])

    op.create_table('stove_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sa.String(length=64), nullable=False),
        sa.Column('model', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('borrower_customer_id', sa.Integer(), nullable=True),
        sa.Column('borrower_name', sa.String(length=128), nullable=True),
        sa.Column('borrower_phone', sa.String(length=32), nullable=True),
        sa.Column('borrower_address', sa.String(length=255), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('lent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stove_units_owner_key', 'stove_units', ['owner_key'])
    op.create_index('ix_stove_units_owner_model_status', 'stove_units', ['owner_key', 'model', 'status'])

    # ==========================================================================
    # 4. LENDING RECORDS
    # ==========================================================================
    op.create_table('lending_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sa.String(length=64), nullable=False),
        sa.Column('stove_id', sa.Integer(), nullable=False),
        sa.Column('stove_model', sa.String(length=64), nullable=False),
        sa.Column('borrower_customer_id', sa.Integer(), nullable=True),
        sa.Column('borrower_name', sa.String(length=128), nullable=True),
        sa.Column('borrower_phone', sa.String(length=32), nullable=True),
        sa.Column('borrower_address', sa.String(length=255), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('lent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_lending_records_owner_key', 'lending_records', ['owner_key'])
    op.create_index('ix_lending_records_stove_id', 'lending_records', ['stove_id'])
    op.create_index('ix_lending_records_owner_status_returned', 'lending_records', ['owner_key', 'status', 'returned_at'])


def downgrade():
    op.drop_table('lending_records')
    op.drop_table('stove_units')
    op.drop_table('cylinder_units')
    op.drop_table('bookings')
    op.drop_table('customers')
