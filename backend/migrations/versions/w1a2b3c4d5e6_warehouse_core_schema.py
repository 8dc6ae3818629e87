"""warehouse core schema

Revision ID: w1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete warehouse schema from scratch:
- warehouses, users: tenancy root and actor attribution
- products, locations, containers: master data addressed by scanner codes
- stock: additive quantity rows per product/location/container
- documents, document_lines, document_sequences: PZ/WZ/MM/INV_ADJ lifecycle
- inventory_counts, inventory_count_locations, inventory_lines: physical counts
- audit_logs: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'w1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # warehouses / users
    # ============================================================================
    op.create_table(
        'warehouses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_warehouses_code', 'warehouses', ['code'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='WAREHOUSE'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # products / locations / containers
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('ean', sa.String(length=13), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='szt'),
        sa.Column('price_cents', sa.Integer(), nullable=True),  # pass-through only
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_ean', 'products', ['ean'])
    op.create_index('ix_products_active', 'products', ['is_active'])

    # Location status: ACTIVE, BLOCKED, COUNTING (COUNTING = inventory lock)
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=32), nullable=False),
        sa.Column('zone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('block_reason', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_warehouse_id', 'locations', ['warehouse_id'])
    op.create_index('ix_locations_warehouse_status', 'locations', ['warehouse_id', 'status'])

    op.create_table(
        'containers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_containers_location_id', 'containers', ['location_id'])

    # ============================================================================
    # stock: additive rows; on-hand = SUM(qty) per (product, location)
    # ============================================================================
    op.create_table(
        'stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('container_id', sa.Integer(), nullable=True),  # NULL = unassigned
        sa.Column('qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.CheckConstraint('qty >= 0', name='ck_stock_qty_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['container_id'], ['containers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_product_location', 'stock', ['product_id', 'location_id'])
    op.create_index('ix_stock_location', 'stock', ['location_id'])
    op.create_index('ix_stock_container_id', 'stock', ['container_id'])

    # ============================================================================
    # documents
    # ============================================================================
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('reference_no', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('confirmed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['confirmed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_documents_warehouse_id', 'documents', ['warehouse_id'])
    op.create_index('ix_documents_created_by_user_id', 'documents', ['created_by_user_id'])
    op.create_index('ix_documents_type_status', 'documents', ['type', 'status'])
    op.create_index('ix_documents_warehouse_created', 'documents', ['warehouse_id', 'created_at'])

    op.create_table(
        'document_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('scanned_by_user_id', sa.Integer(), nullable=True),
        _timestamp('scanned_at'),
        sa.CheckConstraint('qty > 0', name='ck_document_lines_qty_positive'),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['scanned_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_lines_document_id', 'document_lines', ['document_id'])
    op.create_index('ix_document_lines_product_id', 'document_lines', ['product_id'])

    # Atomic numbering: TYPE/YEAR/NNNN
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=16), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'year', name='uq_doc_sequences_type_year'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # inventory counts
    # ============================================================================
    op.create_table(
        'inventory_counts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_counts_warehouse_id', 'inventory_counts', ['warehouse_id'])
    op.create_index('ix_inventory_counts_status', 'inventory_counts', ['status'])
    op.create_index('ix_inventory_counts_warehouse_status', 'inventory_counts', ['warehouse_id', 'status'])

    op.create_table(
        'inventory_count_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_count_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['inventory_count_id'], ['inventory_counts.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('inventory_count_id', 'location_id', name='uq_inventory_count_locations'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_count_locations_inventory_count_id',
                    'inventory_count_locations', ['inventory_count_id'])

    # system_qty frozen at first submission; difference computed, never stored
    op.create_table(
        'inventory_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_count_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('system_qty', sa.Integer(), nullable=False),
        sa.Column('counted_qty', sa.Integer(), nullable=False),
        sa.Column('counted_by_user_id', sa.Integer(), nullable=True),
        _timestamp('counted_at'),
        sa.CheckConstraint('counted_qty >= 0', name='ck_inventory_lines_counted_non_negative'),
        sa.ForeignKeyConstraint(['inventory_count_id'], ['inventory_counts.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['counted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('inventory_count_id', 'location_id', 'product_id',
                            name='uq_inventory_lines_count_location_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_lines_inventory_count_id', 'inventory_lines', ['inventory_count_id'])
    op.create_index('ix_inventory_lines_location_id', 'inventory_lines', ['location_id'])

    # ============================================================================
    # audit_logs: append-only
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=True),
        sa.Column('container_id', sa.Integer(), nullable=True),
        sa.Column('document_id', sa.Integer(), nullable=True),
        sa.Column('inventory_count_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['container_id'], ['containers.id'], ),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_from_location_id', 'audit_logs', ['from_location_id'])
    op.create_index('ix_audit_logs_to_location_id', 'audit_logs', ['to_location_id'])
    op.create_index('ix_audit_logs_document_id', 'audit_logs', ['document_id'])
    op.create_index('ix_audit_logs_inventory_count_id', 'audit_logs', ['inventory_count_id'])
    op.create_index('ix_audit_logs_action_created', 'audit_logs', ['action', 'created_at'])
    op.create_index('ix_audit_logs_product_created', 'audit_logs', ['product_id', 'created_at'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('audit_logs')
    op.drop_table('inventory_lines')
    op.drop_table('inventory_count_locations')
    op.drop_table('inventory_counts')
    op.drop_table('document_sequences')
    op.drop_table('document_lines')
    op.drop_table('documents')
    op.drop_table('stock')
    op.drop_table('containers')
    op.drop_table('locations')
    op.drop_table('products')
    op.drop_table('users')
    op.drop_table('warehouses')
