from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('code', sa.String(20), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('street', sa.String(100), nullable=True),
        sa.Column('city', sa.String(50), nullable=True),
        sa.Column('state', sa.String(50), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('country', sa.String(50), nullable=False, server_default='USA'),
        sa.Column('payment_terms', sa.String(20), nullable=False, server_default='net_30'),
        sa.Column('credit_limit', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_id', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active', index=True),
        sa.Column('rating', sa.Numeric(2, 1), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('credit_limit >= 0', name='ck_supplier_credit_limit_non_negative'),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('slug', sa.String(60), nullable=False, unique=True, index=True),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('parent_id', sa.Integer, sa.ForeignKey('categories.id'), nullable=True, index=True),
        sa.Column('level', sa.Integer, nullable=False, server_default='0', index=True),
        sa.Column('path', sa.String(500), nullable=False, server_default='', index=True),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active', index=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('level >= 0', name='ck_category_level_non_negative'),
    )
    op.create_index('ix_categories_parent_sort', 'categories', ['parent_id', 'sort_order'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('sku', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('barcode', sa.String(64), nullable=True, unique=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer, nullable=False, server_default='5'),
        sa.Column('category_id', sa.Integer, sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('supplier_id', sa.Integer, sa.ForeignKey('suppliers.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active', index=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('quantity >= 0', name='ck_product_quantity_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
        sa.CheckConstraint('low_stock_threshold >= 0', name='ck_product_low_stock_non_negative'),
    )

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('previous_quantity', sa.Integer, nullable=False),
        sa.Column('new_quantity', sa.Integer, nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('reason', sa.String(200), nullable=False),
        sa.Column('reference', sa.String(50), nullable=True),
        sa.Column('supplier_id', sa.Integer, sa.ForeignKey('suppliers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('performed_by', sa.String(100), nullable=False),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
        sa.CheckConstraint('quantity <> 0', name='ck_transaction_quantity_non_zero'),
        sa.CheckConstraint('unit_cost IS NULL OR unit_cost >= 0', name='ck_transaction_unit_cost_non_negative'),
    )
    op.create_index('ix_inventory_transactions_product_created', 'inventory_transactions', ['product_id', 'created_at'])
    op.create_index('ix_inventory_transactions_type_created', 'inventory_transactions', ['type', 'created_at'])
    op.create_index('ix_inventory_transactions_user_created', 'inventory_transactions', ['performed_by', 'created_at'])

def downgrade():
    op.drop_table('inventory_transactions')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('suppliers')
