
from alembic import op
import sqlalchemy as sa

revision = "20261019120000"
down_revision = None

def upgrade():
    op.create_table(
        'stores',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=36), index=True, nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('store_id', sa.String(length=36), sa.ForeignKey('stores.id'), index=True, nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='XOF'),
        sa.Column('has_digital', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('customer', sa.JSON(), nullable=True),
        sa.Column('payment_provider', sa.String(length=64), nullable=True),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True, index=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(length=36), sa.ForeignKey('orders.id'), index=True, nullable=False),
        sa.Column('store_id', sa.String(length=36), index=True, nullable=False),
        sa.Column('payment_provider', sa.String(length=64), nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('payment_provider', 'provider_transaction_id', name='uq_payment_transactions_provider_tx'),
    )
    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='received', index=True),
        sa.Column('transaction_id', sa.Text(), nullable=True, index=True),
        sa.Column('payment_status', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('related_order_id', sa.String(length=36), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='customer'),
        sa.Column('created_from_order', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=36), index=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=255), nullable=True),
        sa.Column('dedupe_key', sa.String(length=255), nullable=True, unique=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'platform_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('whatsapp_sender_number', sa.String(length=32), nullable=True),
        sa.Column('whatsapp_api_url', sa.String(length=255), nullable=True),
        sa.Column('whatsapp_waba_id', sa.String(length=64), nullable=True),
        sa.Column('whatsapp_template_customer', sa.Text(), nullable=True),
        sa.Column('whatsapp_template_seller', sa.Text(), nullable=True),
    )

def downgrade():
    op.drop_table('platform_settings')
    op.drop_table('notifications')
    op.drop_table('accounts')
    op.drop_table('webhook_logs')
    op.drop_table('payment_transactions')
    op.drop_table('orders')
    op.drop_table('stores')
