"""Initial schema - companies, users, catalog, invoices, payments and stock ledger

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

invoice_status = sa.Enum('DRAFT', 'SENT', 'PAID', 'CANCELLED', 'VOID', name='invoice_status')
payment_status = sa.Enum('UNPAID', 'PARTIALLY_PAID', 'PAID', name='payment_status')
payment_method = sa.Enum(
    'CASH', 'CREDIT_CARD', 'DEBIT_CARD', 'BANK_TRANSFER', 'PSE', 'NEQUI', 'DAVIPLATA', 'OTHER',
    name='payment_method'
)
movement_type = sa.Enum('PURCHASE', 'SALE', 'ADJUSTMENT', 'TRANSFER', 'RETURN', 'DAMAGED', name='movement_type')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', UUID, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('nit', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('max_invoices_month', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('nit'),
    )
    op.create_index('ix_companies_id', 'companies', ['id'])
    op.create_index('ix_companies_name', 'companies', ['name'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', UUID, nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'user_companies',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('company_id', UUID, sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'company_id', name='uq_user_company'),
    )

    op.create_table(
        'customers',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('document', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])

    op.create_table(
        'products',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('price_sale', sa.Numeric(15, 2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_product_tenant_sku'),
        sa.CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])

    op.create_table(
        'invoices',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('customer_id', UUID, sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('number', sa.String(length=50), nullable=False),
        sa.Column('status', invoice_status, nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax', sa.Numeric(15, 2), nullable=False),
        sa.Column('discount', sa.Numeric(15, 2), nullable=False),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'number', name='uq_invoice_tenant_number'),
        sa.CheckConstraint(
            'subtotal >= 0 AND tax >= 0 AND discount >= 0 AND total >= 0',
            name='ck_invoice_amounts_non_negative'
        ),
    )
    op.create_index('ix_invoices_tenant_id', 'invoices', ['tenant_id'])
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])

    op.create_table(
        'invoice_items',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('invoice_id', UUID, sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('discount', sa.Numeric(15, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax', sa.Numeric(15, 2), nullable=False),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_item_quantity_positive'),
        sa.CheckConstraint(
            'unit_price >= 0 AND discount >= 0 AND total >= 0',
            name='ck_invoice_item_amounts_non_negative'
        ),
    )
    op.create_index('ix_invoice_items_tenant_id', 'invoice_items', ['tenant_id'])
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])

    op.create_table(
        'invoice_sequences',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('current_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', name='uq_invoice_sequence_tenant'),
    )
    op.create_index('ix_invoice_sequences_tenant_id', 'invoice_sequences', ['tenant_id'])

    op.create_table(
        'payments',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('invoice_id', UUID, sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('method', payment_method, nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
    )
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', UUID, nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('invoice_id', UUID, sa.ForeignKey('invoices.id'), nullable=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('type', movement_type, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_movements_tenant_id', 'stock_movements', ['tenant_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_invoice_id', 'stock_movements', ['invoice_id'])


def downgrade() -> None:
    op.drop_table('stock_movements')
    op.drop_table('payments')
    op.drop_table('invoice_sequences')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('products')
    op.drop_table('customers')
    op.drop_table('user_companies')
    op.drop_table('users')
    op.drop_table('companies')

    bind = op.get_bind()
    for enum_type in (movement_type, payment_method, payment_status, invoice_status):
        enum_type.drop(bind, checkfirst=True)
