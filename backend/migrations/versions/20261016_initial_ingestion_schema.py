"""Initial ingestion schema: restaurants, clients, orders, menus, sync leases, event log

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16

This migration adds:
1. Restaurants, clients and client addresses
2. Orders with items, item options, taxes, coupons and billing details
3. Menu tree (menus, categories, items, sizes) and shared option groups/options
4. Menu sync leases (one live sync per menu)
5. Ingestion event log
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261016_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False))
    return cols


def upgrade():
    # ==========================================================================
    # 1. RESTAURANTS / CLIENTS
    # ==========================================================================
    op.create_table('restaurants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('restaurant_key', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_key', name='uq_restaurants_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('restaurants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_restaurants_external_id'), ['external_id'], unique=False)

    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('marketing_consent', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', name='uq_clients_external_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.create_index('ix_clients_email', ['email'], unique=False)
        batch_op.create_index('ix_clients_phone', ['phone'], unique=False)

    op.create_table('client_addresses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('full_address', sa.String(length=512), nullable=True),
        sa.Column('street', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('zipcode', sa.String(length=32), nullable=True),
        sa.Column('bloc', sa.String(length=64), nullable=True),
        sa.Column('floor', sa.String(length=64), nullable=True),
        sa.Column('apartment', sa.String(length=64), nullable=True),
        sa.Column('intercom', sa.String(length=64), nullable=True),
        sa.Column('latitude', sa.String(length=32), nullable=True),
        sa.Column('longitude', sa.String(length=32), nullable=True),
        sa.Column('delivery_zone', sa.String(length=128), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'full_address', name='uq_client_addresses_client_full'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('client_addresses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_client_addresses_client_id'), ['client_id'], unique=False)

    # ==========================================================================
    # 2. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_order_id', sa.BigInteger(), nullable=False),
        sa.Column('pos_system_id', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('restaurant_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='accepted'),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('source', sa.String(length=64), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='USD'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sub_total_price_cents', sa.Integer(), nullable=True),
        sa.Column('tax_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_type', sa.String(length=8), nullable=True),
        sa.Column('tax_name', sa.String(length=64), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('fulfill_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('for_later', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('pin_skipped', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('delivery_fee_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_address', sa.String(length=512), nullable=True),
        sa.Column('delivery_latitude', sa.String(length=32), nullable=True),
        sa.Column('delivery_longitude', sa.String(length=32), nullable=True),
        sa.Column('delivery_zone', sa.String(length=128), nullable=True),
        sa.Column('outside_delivery_area', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('tip_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('raw_payload', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_order_id', 'pos_system_id', name='uq_orders_external_pos'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_external_order_id'), ['external_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_restaurant_id'), ['restaurant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_client_id'), ['client_id'], unique=False)
        batch_op.create_index('ix_orders_status', ['status'], unique=False)
        batch_op.create_index('ix_orders_created', ['created_at'], unique=False)
        batch_op.create_index('ix_orders_fulfill', ['fulfill_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('parent_external_id', sa.BigInteger(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='item'),
        sa.Column('type_id', sa.BigInteger(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('tax_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_type', sa.String(length=8), nullable=True),
        sa.Column('item_discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cart_discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cart_discount_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('kitchen_internal_name', sa.String(length=255), nullable=True),
        sa.Column('coupon', sa.String(length=64), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)

    op.create_table('order_item_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('group_name', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='option'),
        sa.Column('type_id', sa.BigInteger(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kitchen_internal_name', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_item_options', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_item_options_order_item_id'), ['order_item_id'], unique=False)

    op.create_table('order_taxes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=True),
        sa.Column('rate', sa.Float(), nullable=True),
        sa.Column('value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_taxes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_taxes_order_id'), ['order_id'], unique=False)

    op.create_table('order_coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('coupon_code', sa.String(length=64), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_coupons', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_coupons_order_id'), ['order_id'], unique=False)

    op.create_table('billing_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('cui', sa.String(length=64), nullable=True),
        sa.Column('reg_com', sa.String(length=64), nullable=True),
        sa.Column('person_name', sa.String(length=255), nullable=True),
        sa.Column('person_type', sa.String(length=64), nullable=True),
        sa.Column('document_type', sa.String(length=64), nullable=True),
        sa.Column('document_number', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('region', sa.String(length=128), nullable=True),
        sa.Column('sector', sa.String(length=128), nullable=True),
        sa.Column('country_code', sa.String(length=8), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', name='uq_billing_details_order'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 3. MENU TREE
    # ==========================================================================
    op.create_table('menus',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=False),
        sa.Column('restaurant_external_id', sa.BigInteger(), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', name='uq_menus_external_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menus', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_menus_restaurant_external_id'), ['restaurant_external_id'], unique=False)

    op.create_table('menu_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('menu_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['menu_id'], ['menus.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menu_categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_menu_categories_menu_id'), ['menu_id'], unique=False)
        batch_op.create_index('ix_menu_categories_menu_sort', ['menu_id', 'sort_order'], unique=False)

    op.create_table('menu_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kitchen_internal_name', sa.String(length=255), nullable=True),
        sa.Column('tags_blob', sa.Text(), nullable=True),
        sa.Column('order_types_blob', sa.Text(), nullable=True),
        sa.Column('allergens_blob', sa.Text(), nullable=True),
        sa.Column('nutritional_values_blob', sa.Text(), nullable=True),
        sa.Column('extras_blob', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['category_id'], ['menu_categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menu_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_menu_items_category_id'), ['category_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_menu_items_external_id'), ['external_id'], unique=False)
        batch_op.create_index('ix_menu_items_category_sort', ['category_id', 'sort_order'], unique=False)

    op.create_table('menu_item_sizes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['item_id'], ['menu_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menu_item_sizes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_menu_item_sizes_item_id'), ['item_id'], unique=False)

    op.create_table('menu_option_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('required', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('allow_quantity', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('force_min', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('force_max', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(updated=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', name='uq_menu_option_groups_external_id'),
        sqlite_autoincrement=True
    )

    op.create_table('menu_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('option_group_id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('kitchen_internal_name', sa.String(length=255), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['option_group_id'], ['menu_option_groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menu_options', schema=None) as batch_op:
        batch_op.create_index('ix_menu_options_group_sort', ['option_group_id', 'sort_order'], unique=False)

    op.create_table('menu_item_option_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('size_id', sa.Integer(), nullable=True),
        sa.Column('option_group_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['menu_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['size_id'], ['menu_item_sizes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['option_group_id'], ['menu_option_groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('menu_item_option_groups', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_menu_item_option_groups_item_id'), ['item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_menu_item_option_groups_size_id'), ['size_id'], unique=False)
        batch_op.create_index('ix_menu_item_option_groups_group', ['option_group_id'], unique=False)

    # ==========================================================================
    # 4. MENU SYNC LEASES
    # ==========================================================================
    op.create_table('menu_sync_leases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lock_key', sa.String(length=128), nullable=False),
        sa.Column('owner_token', sa.String(length=64), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=True),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lock_key', name='uq_menu_sync_leases_key'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. INGESTION EVENT LOG
    # ==========================================================================
    op.create_table('ingestion_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('ingestion_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ingestion_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_ingestion_events_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_ingestion_events_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_ingestion_events_type_created', ['event_type', 'created_at'], unique=False)


def downgrade():
    for table in (
        'ingestion_events',
        'menu_sync_leases',
        'menu_item_option_groups',
        'menu_options',
        'menu_option_groups',
        'menu_item_sizes',
        'menu_items',
        'menu_categories',
        'menus',
        'billing_details',
        'order_coupons',
        'order_taxes',
        'order_item_options',
        'order_items',
        'orders',
        'client_addresses',
        'clients',
        'restaurants',
    ):
        op.drop_table(table)
