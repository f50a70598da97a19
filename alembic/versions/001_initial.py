"""Booking schema: tenants, staff, holds, bookings, idempotency and deposits

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEXES = [
    ('ix_booking_holds_tenant_id', 'booking_holds', ['tenant_id']),
    ('ix_booking_holds_expires_at', 'booking_holds', ['expires_at']),
    ('ix_bookings_tenant_id', 'bookings', ['tenant_id']),
    ('ix_bookings_booking_time', 'bookings', ['booking_time']),
    ('ix_deposit_intents_tenant_id', 'deposit_intents', ['tenant_id']),
    ('ix_holidays_tenant_date', 'holidays', ['tenant_id', 'holiday_date']),
]


def pk() -> sa.Column:
    return sa.Column('id', sa.Uuid(), primary_key=True)


def tenant_fk(nullable: bool = False, unique: bool = False) -> sa.Column:
    return sa.Column('tenant_id', sa.Uuid(), sa.ForeignKey('tenants.id'), nullable=nullable, unique=unique)


def created() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())


def stamps() -> List[sa.Column]:
    return [created(), sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now())]


def upgrade() -> None:
    op.create_table(
        'tenants',
        pk(),
        sa.Column('slug', sa.String(100), unique=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(50), server_default='America/New_York'),
        sa.Column('currency', sa.String(3), server_default='USD'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('primary_color', sa.String(20)),
        sa.Column('secondary_color', sa.String(20)),
        *stamps(),
    )

    op.create_table(
        'users',
        pk(),
        tenant_fk(nullable=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('phone', sa.String(20)),
        sa.Column('role', sa.Enum('SUPER_ADMIN', 'RESTAURANT_ADMIN', 'HOST', 'STAFF_VIEWER', name='userrole')),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('refresh_token', sa.String(500)),
        sa.Column('last_login', sa.DateTime()),
        *stamps(),
    )

    op.create_table(
        'restaurant_settings',
        pk(),
        tenant_fk(unique=True),
        sa.Column('hours_json', sa.JSON()),
        sa.Column('approval_mode', sa.String(20), server_default='auto'),
        sa.Column('max_party_size', sa.Integer(), server_default='20'),
        sa.Column('reservation_slot_minutes', sa.Integer(), server_default='30'),
        sa.Column('default_duration_minutes', sa.Integer(), server_default='120'),
        sa.Column('buffer_minutes', sa.Integer(), server_default='10'),
        sa.Column('pacing_cap', sa.Integer(), server_default='0'),
        sa.Column('average_cover_cents', sa.Integer(), server_default='4500'),
        sa.Column('policies_json', sa.JSON()),
        sa.Column('escalation_number', sa.String(20)),
        sa.Column('address', sa.Text()),
        sa.Column('city', sa.String(100)),
        sa.Column('state', sa.String(50)),
        sa.Column('zip_code', sa.String(20)),
        *stamps(),
    )

    op.create_table(
        'deposit_policies',
        pk(),
        tenant_fk(unique=True),
        sa.Column('enabled', sa.Boolean(), server_default=sa.false()),
        sa.Column('default_amount', sa.Numeric(10, 2), server_default='25'),
        sa.Column('large_party_threshold', sa.Integer(), server_default='6'),
        sa.Column('large_party_amount', sa.Numeric(10, 2)),
        sa.Column('description', sa.Text()),
        sa.Column('show_policy_label', sa.Boolean(), server_default=sa.false()),
        *stamps(),
    )

    op.create_table(
        'restaurant_tables',
        pk(),
        tenant_fk(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.true()),
        created(),
    )

    op.create_table(
        'holidays',
        pk(),
        tenant_fk(),
        sa.Column('holiday_date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(255)),
    )

    op.create_table(
        'staff_contacts',
        pk(),
        tenant_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('role', sa.String(50)),
        sa.Column('notify_on_reservation', sa.Boolean(), server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        created(),
    )

    op.create_table(
        'booking_holds',
        pk(),
        tenant_fk(),
        sa.Column('table_id', sa.Uuid(), sa.ForeignKey('restaurant_tables.id')),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('booking_time', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), server_default='120'),
        sa.Column('session_id', sa.String(64)),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        created(),
    )

    op.create_table(
        'bookings',
        pk(),
        tenant_fk(),
        # One booking per hold; the unique index backs confirm replays
        sa.Column('hold_id', sa.Uuid(), unique=True),
        sa.Column('table_id', sa.Uuid(), sa.ForeignKey('restaurant_tables.id')),
        sa.Column('guest_name', sa.String(255), nullable=False),
        sa.Column('guest_first_name', sa.String(100)),
        sa.Column('guest_last_name', sa.String(100)),
        sa.Column('guest_email', sa.String(255), nullable=False),
        sa.Column('guest_phone', sa.String(20)),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('booking_time', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), server_default='120'),
        sa.Column('special_requests', sa.Text()),
        sa.Column('source', sa.String(50), server_default='website'),
        sa.Column('status', sa.String(50), server_default='pending'),
        sa.Column('confirmation_code', sa.String(20)),
        sa.Column('deposit_required', sa.Boolean(), server_default=sa.false()),
        sa.Column('deposit_amount_cents', sa.Integer(), server_default='0'),
        sa.Column('deposit_paid', sa.Boolean(), server_default=sa.false()),
        sa.Column('payment_intent_id', sa.String(255)),
        sa.Column('confirmation_sent', sa.DateTime()),
        sa.Column('reminder_sent', sa.DateTime()),
        *stamps(),
    )

    op.create_table(
        'idempotency_records',
        pk(),
        tenant_fk(),
        sa.Column('scope', sa.String(50), nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('request_hash', sa.String(64), nullable=False),
        sa.Column('status_code', sa.Integer(), server_default='200'),
        sa.Column('response_json', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(64)),
        created(),
        sa.UniqueConstraint('tenant_id', 'scope', 'idempotency_key', name='uq_idempotency_scope_key'),
    )

    op.create_table(
        'deposit_intents',
        pk(),
        tenant_fk(),
        sa.Column('payment_intent_id', sa.String(255), unique=True, nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), server_default='usd'),
        sa.Column('email', sa.String(255)),
        sa.Column('description', sa.Text()),
        sa.Column('provider', sa.String(50), server_default='stripe'),
        sa.Column('status', sa.String(50), server_default='requires_payment_method'),
        *stamps(),
    )

    op.create_table(
        'audit_logs',
        pk(),
        tenant_fk(nullable=True),
        sa.Column('actor_id', sa.Uuid()),
        sa.Column('actor_type', sa.String(50)),
        sa.Column('actor_name', sa.String(255)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50)),
        sa.Column('resource_id', sa.Uuid()),
        sa.Column('data_json', sa.JSON()),
        sa.Column('request_id', sa.String(64)),
        created(),
    )

    for name, table, columns in INDEXES:
        op.create_index(name, table, columns)


def downgrade() -> None:
    for name, table, _ in reversed(INDEXES):
        op.drop_index(name, table_name=table)

    for table in (
        'audit_logs', 'deposit_intents', 'idempotency_records', 'bookings',
        'booking_holds', 'staff_contacts', 'holidays', 'restaurant_tables',
        'deposit_policies', 'restaurant_settings', 'users', 'tenants',
    ):
        op.drop_table(table)
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
