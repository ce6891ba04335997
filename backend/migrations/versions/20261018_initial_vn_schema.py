"""initial schema with VN order workflow

Revision ID: vn0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the DealerDesk schema from scratch:
- users, user_roles (one role per user, CHECK constrained), session_tokens
- security_events: append-only audit of denials and admin actions
- vn_orders: order + stage_completion_dates JSON, status CHECK constrained
- vn_order_documents: stage documents with an explicit stage
- vn_order_history: append-only change trail
- order_number_sequences: per-year VN-<year>-<n> allocation
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'vn0001_initial'
down_revision = None
branch_labels = None
depends_on = None


ROLES = (
    'sys_admin', 'director', 'cdv', 'commercial', 'magasin',
    'apv', 'ged', 'adv', 'livraison', 'immatriculation',
)

STAGES = (
    'INSCRIPTION', 'PROFORMA', 'COMMANDE', 'VALIDATION', 'ACCUSÉ',
    'FACTURATION', 'ARRIVAGE', 'CARTE_JAUNE', 'LIVRAISON', 'DOSSIER_DAIRA',
)

LOCATIONS = ('PARC1', 'PARC2', 'SHOWROOM')

DOCUMENT_TYPES = (
    'PROFORMA_INVOICE', 'CUSTOMER_ID', 'PURCHASE_ORDER',
    'DELIVERY_NOTE', 'FINAL_INVOICE', 'OTHER',
)


def _in_list(column, values):
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # users / user_roles / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_user_roles_user'),
        sa.CheckConstraint(_in_list('role', ROLES), name='ck_user_roles_role'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role', 'user_roles', ['role'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # security_events: append-only
    # ============================================================================
    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_user_type', 'security_events', ['user_id', 'event_type'])
    op.create_index('ix_security_events_occurred', 'security_events', ['occurred_at'])

    # ============================================================================
    # vn_orders
    # ============================================================================
    op.create_table(
        'vn_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_name', sa.String(length=128), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_id_number', sa.String(length=18), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('vehicle_brand', sa.String(length=64), nullable=False),
        sa.Column('vehicle_model', sa.String(length=64), nullable=False),
        sa.Column('vehicle_year', sa.Integer(), nullable=True),
        sa.Column('vehicle_vin', sa.String(length=32), nullable=True),
        sa.Column('vehicle_color', sa.String(length=32), nullable=True),
        sa.Column('vehicle_avaries', sa.Text(), nullable=True),
        sa.Column('vehicle_features', sa.JSON(), nullable=True),
        sa.Column('total_price', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('advance_payment', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('remaining_balance', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('trop_percu', sa.Numeric(14, 2), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('payment_status', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='INSCRIPTION'),
        sa.Column('location', sa.String(length=16), nullable=False, server_default='PARC1'),
        sa.Column('stage_completion_dates', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(_in_list('status', STAGES), name='ck_vn_orders_status'),
        sa.CheckConstraint(_in_list('location', LOCATIONS), name='ck_vn_orders_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_vn_orders_order_number', 'vn_orders', ['order_number'], unique=True)
    op.create_index('ix_vn_orders_status', 'vn_orders', ['status'])
    op.create_index('ix_vn_orders_vehicle_vin', 'vn_orders', ['vehicle_vin'])
    op.create_index('ix_vn_orders_created_by', 'vn_orders', ['created_by'])
    op.create_index('ix_vn_orders_status_created', 'vn_orders', ['status', 'created_at'])

    op.create_table(
        'vn_order_documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('stage', sa.String(length=32), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('document_name', sa.String(length=255), nullable=False),
        sa.Column('document_url', sa.Text(), nullable=False),
        sa.Column('uploaded_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['order_id'], ['vn_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['uploaded_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(_in_list('stage', STAGES), name='ck_vn_order_documents_stage'),
        sa.CheckConstraint(_in_list('document_type', DOCUMENT_TYPES), name='ck_vn_order_documents_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_vn_order_documents_order_id', 'vn_order_documents', ['order_id'])
    op.create_index('ix_vn_order_documents_order_stage', 'vn_order_documents', ['order_id', 'stage'])

    op.create_table(
        'vn_order_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['order_id'], ['vn_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_vn_order_history_order_id', 'vn_order_history', ['order_id'])
    op.create_index('ix_vn_order_history_user_id', 'vn_order_history', ['user_id'])
    op.create_index('ix_vn_order_history_order_created', 'vn_order_history', ['order_id', 'created_at'])

    op.create_table(
        'order_number_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('year', name='uq_order_number_sequences_year'),
        sqlite_autoincrement=True
    )


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('order_number_sequences')
    op.drop_table('vn_order_history')
    op.drop_table('vn_order_documents')
    op.drop_table('vn_orders')
    op.drop_table('security_events')
    op.drop_table('session_tokens')
    op.drop_table('user_roles')
    op.drop_table('users')
