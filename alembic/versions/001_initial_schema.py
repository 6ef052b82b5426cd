"""Initial schema - products, offer mirrors, orders, sync jobs, cursors and webhook events

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('title', sa.String(500)),
        sa.Column('description', sa.Text()),
        sa.Column('category_id', sa.String(100)),
        sa.Column('price', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
    )
    op.create_index('ix_products_updated_at', 'products', ['updated_at'])
    op.create_index('ix_products_status', 'products', ['status'])

    op.create_table(
        'offer_mirrors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('external_offer_id', sa.String(100), nullable=True),
        sa.Column('title', sa.String(500)),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3)),
        sa.Column('publication_status', sa.String(20), nullable=False),
        sa.Column('remote_revision', sa.String(100)),
        sa.Column('remote_updated_at', sa.DateTime()),
        sa.Column('last_synced_at', sa.DateTime()),
        sa.Column('sync_status', sa.String(20), nullable=False),
        sa.Column('sync_error', sa.Text()),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index('ix_offer_mirrors_product_id', 'offer_mirrors', ['product_id'], unique=True)
    op.create_index('ix_offer_mirrors_external_offer_id', 'offer_mirrors', ['external_offer_id'], unique=True)
    op.create_index('ix_offer_mirrors_last_synced_at', 'offer_mirrors', ['last_synced_at'])
    op.create_index('ix_offer_mirrors_sync_status', 'offer_mirrors', ['sync_status'])

    op.create_table(
        'marketplace_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('external_order_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('buyer_email', sa.String(255)),
        sa.Column('buyer_login', sa.String(255)),
        sa.Column('total_amount', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3)),
        sa.Column('ordered_at', sa.DateTime()),
        sa.Column('stock_applied', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_marketplace_orders_external_order_id', 'marketplace_orders', ['external_order_id'], unique=True)
    op.create_index('ix_marketplace_orders_status', 'marketplace_orders', ['status'])

    op.create_table(
        'marketplace_order_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('marketplace_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_offer_id', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2)),
    )
    op.create_index('ix_marketplace_order_lines_order_id', 'marketplace_order_lines', ['order_id'])
    op.create_index('ix_marketplace_order_lines_external_offer_id', 'marketplace_order_lines', ['external_offer_id'])

    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_type', sa.String(32), nullable=False),
        sa.Column('direction', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('total_items', sa.Integer(), nullable=False),
        sa.Column('processed_items', sa.Integer(), nullable=False),
        sa.Column('successful_items', sa.Integer(), nullable=False),
        sa.Column('failed_items', sa.Integer(), nullable=False),
        sa.Column('needs_review_items', sa.Integer(), nullable=False),
        sa.Column('errors', sa.JSON(), nullable=False),
        sa.Column('conflicts', sa.JSON(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('offer_id', sa.Integer(), sa.ForeignKey('offer_mirrors.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sync_jobs_id', 'sync_jobs', ['id'])
    op.create_index('ix_sync_jobs_job_type', 'sync_jobs', ['job_type'])
    op.create_index('ix_sync_jobs_status', 'sync_jobs', ['status'])
    op.create_index('ix_sync_jobs_product_id', 'sync_jobs', ['product_id'])
    op.create_index('ix_sync_jobs_offer_id', 'sync_jobs', ['offer_id'])

    op.create_table(
        'sync_cursors',
        sa.Column('strategy', sa.String(32), primary_key=True),
        sa.Column('cursor', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('external_event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_webhook_events_external_event_id', 'webhook_events', ['external_event_id'], unique=True)
    op.create_index('ix_webhook_events_event_type', 'webhook_events', ['event_type'])
    op.create_index('ix_webhook_events_processed', 'webhook_events', ['processed'])


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_table('sync_cursors')
    op.drop_table('sync_jobs')
    op.drop_table('marketplace_order_lines')
    op.drop_table('marketplace_orders')
    op.drop_table('offer_mirrors')
    op.drop_table('products')
