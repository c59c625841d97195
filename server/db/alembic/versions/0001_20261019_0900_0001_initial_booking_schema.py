"""Initial booking engine schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    # Create agents table
    op.create_table('agents',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('business_name', sa.String(length=255), nullable=False),
        sa.Column('business_email', sa.String(length=255), nullable=False),
        sa.Column('commission_rate', sa.Float(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('commission_rate >= 0 AND commission_rate <= 50', name='ck_agent_commission_range'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_agents_business_email'), 'agents', ['business_email'], unique=True)

    # Create tours table
    op.create_table('tours',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('max_group_size', sa.Integer(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('duration_nights', sa.Integer(), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('child_price', sa.Integer(), nullable=True),
        sa.Column('infant_price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('deposit_enabled', sa.Boolean(), nullable=False),
        sa.Column('deposit_percentage', sa.Float(), nullable=False),
        sa.Column('free_cancellation_days', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('max_group_size > 0', name='ck_tour_max_group_size_positive'),
        sa.CheckConstraint('base_price >= 0', name='ck_tour_base_price_non_negative'),
        sa.CheckConstraint('duration_nights >= 0', name='ck_tour_duration_nights_non_negative'),
        sa.CheckConstraint('free_cancellation_days >= 0', name='ck_tour_free_cancellation_non_negative'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tours_agent_id'), 'tours', ['agent_id'], unique=False)
    op.create_index(op.f('ix_tours_title'), 'tours', ['title'], unique=False)
    op.create_index(op.f('ix_tours_slug'), 'tours', ['slug'], unique=True)
    op.create_index(op.f('ix_tours_status'), 'tours', ['status'], unique=False)

    # Create pricing_configs table
    op.create_table('pricing_configs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('child_discount_percent', sa.Float(), nullable=False),
        sa.Column('child_min_age', sa.Integer(), nullable=False),
        sa.Column('child_max_age', sa.Integer(), nullable=False),
        sa.Column('infant_max_age', sa.Integer(), nullable=False),
        sa.Column('infant_price', sa.Integer(), nullable=True),
        sa.Column('service_fee_percent', sa.Float(), nullable=False),
        sa.Column('service_fee_fixed', sa.Integer(), nullable=True),
        sa.Column('deposit_percent', sa.Float(), nullable=True),
        sa.Column('deposit_minimum', sa.Integer(), nullable=True),
        sa.Column('group_discount_threshold', sa.Integer(), nullable=True),
        sa.Column('group_discount_percent', sa.Float(), nullable=True),
        sa.Column('early_bird_days', sa.Integer(), nullable=True),
        sa.Column('early_bird_percent', sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('child_discount_percent BETWEEN 0 AND 100', name='ck_pricing_child_discount_range'),
        sa.CheckConstraint('service_fee_percent BETWEEN 0 AND 100', name='ck_pricing_service_fee_range'),
        sa.CheckConstraint('infant_max_age < child_max_age', name='ck_pricing_age_bands_ordered'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id')
    )

    # Create accommodation_options table
    op.create_table('accommodation_options',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('price_per_night', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price_per_night >= 0', name='ck_accommodation_price_non_negative'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_accommodation_options_tour_id'), 'accommodation_options', ['tour_id'], unique=False)

    # Create activity_addons table
    op.create_table('activity_addons',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('child_price', sa.Integer(), nullable=True),
        sa.Column('price_type', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_addon_price_non_negative'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_activity_addons_tour_id'), 'activity_addons', ['tour_id'], unique=False)

    # Create tour_availability table
    op.create_table('tour_availability',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('spots_available', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'spots_available IS NULL OR spots_available >= 0',
            name='ck_tour_availability_spots_non_negative'
        ),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'date', name='uq_tour_availability_tour_date')
    )
    op.create_index(op.f('ix_tour_availability_tour_id'), 'tour_availability', ['tour_id'], unique=False)
    op.create_index(op.f('ix_tour_availability_date'), 'tour_availability', ['date'], unique=False)

    # Create holds table
    op.create_table('holds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('infants', sa.Integer(), nullable=False),
        sa.Column('spots_held', sa.Integer(), nullable=False),
        sa.Column('selected_accommodation_ids', sa.JSON(), nullable=False),
        sa.Column('selected_addon_ids', sa.JSON(), nullable=False),
        sa.Column('quoted_on', sa.Date(), nullable=False),
        sa.Column('quoted_total', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('spots_held > 0', name='ck_hold_spots_positive'),
        sa.CheckConstraint('adults >= 1', name='ck_hold_adults_positive'),
        sa.CheckConstraint('end_date >= start_date', name='ck_hold_date_range'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holds_tour_id'), 'holds', ['tour_id'], unique=False)
    op.create_index(op.f('ix_holds_user_id'), 'holds', ['user_id'], unique=False)
    op.create_index(op.f('ix_holds_start_date'), 'holds', ['start_date'], unique=False)
    op.create_index(op.f('ix_holds_end_date'), 'holds', ['end_date'], unique=False)
    op.create_index(op.f('ix_holds_expires_at'), 'holds', ['expires_at'], unique=False)
    op.create_index(op.f('ix_holds_status'), 'holds', ['status'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reference', sa.String(length=32), nullable=False),
        sa.Column('hold_id', sa.Uuid(), nullable=True),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('contact_name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('contact_phone', sa.String(length=64), nullable=True),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False),
        sa.Column('children', sa.Integer(), nullable=False),
        sa.Column('infants', sa.Integer(), nullable=False),
        sa.Column('selected_accommodation_ids', sa.JSON(), nullable=False),
        sa.Column('selected_addon_ids', sa.JSON(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('base_amount', sa.Integer(), nullable=False),
        sa.Column('accommodation_amount', sa.Integer(), nullable=False),
        sa.Column('activities_amount', sa.Integer(), nullable=False),
        sa.Column('tax_amount', sa.Integer(), nullable=False),
        sa.Column('discount_amount', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('deposit_amount', sa.Integer(), nullable=False),
        sa.Column('platform_commission', sa.Integer(), nullable=False),
        sa.Column('agent_earnings', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_due_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('adults >= 1', name='ck_booking_adults_positive'),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('end_date >= start_date', name='ck_booking_date_range'),
        sa.CheckConstraint('length(reference) > 0', name='ck_booking_reference_not_empty'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_id')
    )
    op.create_index(op.f('ix_bookings_reference'), 'bookings', ['reference'], unique=True)
    op.create_index(op.f('ix_bookings_tour_id'), 'bookings', ['tour_id'], unique=False)
    op.create_index(op.f('ix_bookings_agent_id'), 'bookings', ['agent_id'], unique=False)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_start_date'), 'bookings', ['start_date'], unique=False)
    op.create_index(op.f('ix_bookings_end_date'), 'bookings', ['end_date'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_due_at'), 'bookings', ['payment_due_at'], unique=False)

    # Create payments table
    op.create_table('payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('merchant_reference', sa.String(length=64), nullable=False),
        sa.Column('gateway_tracking_id', sa.String(length=128), nullable=True),
        sa.Column('confirmation_code', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_merchant_reference'), 'payments', ['merchant_reference'], unique=True)
    op.create_index(op.f('ix_payments_gateway_tracking_id'), 'payments', ['gateway_tracking_id'], unique=True)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)

    # Create agent_earnings table
    op.create_table('agent_earnings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('payment_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'type', name='uq_agent_earning_booking_type')
    )
    op.create_index(op.f('ix_agent_earnings_agent_id'), 'agent_earnings', ['agent_id'], unique=False)
    op.create_index(op.f('ix_agent_earnings_booking_id'), 'agent_earnings', ['booking_id'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('method', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code BETWEEN 100 AND 599', name='ck_idempotency_status_code_valid'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'method', name='uq_idempotency_key_method')
    )
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_method'), 'idempotency_records', ['method'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('agent_earnings')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('holds')
    op.drop_table('tour_availability')
    op.drop_table('activity_addons')
    op.drop_table('accommodation_options')
    op.drop_table('pricing_configs')
    op.drop_table('tours')
    op.drop_table('agents')
