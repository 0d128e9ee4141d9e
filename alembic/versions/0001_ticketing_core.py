"""ticketing core: events, tickets, ticket transitions

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

EVENT_STATUSES = ('active', 'archived', 'deleted')
TICKET_STATUSES = ('pending', 'valid', 'used', 'canceled', 'refunded')

big_id = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')

# tickets creates the postgres type, ticket_transitions reuses it
existing_ticket_status = sa.Enum(*TICKET_STATUSES, name='ticket_status').with_variant(
    postgresql.ENUM(*TICKET_STATUSES, name='ticket_status', create_type=False), 'postgresql'
)


def upgrade():
    op.create_table(
        'events',
        sa.Column('id', big_id, primary_key=True, autoincrement=True),
        sa.Column('organizer_id', sa.BigInteger(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('venue', sa.String(), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('earlybird_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('regular_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('vip_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('vvip_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('at_the_gate_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.Enum(*EVENT_STATUSES, name='event_status'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_events_id', 'events', ['id'])
    op.create_index('ix_events_organizer_id', 'events', ['organizer_id'])
    op.create_index('ix_events_location', 'events', ['location'])
    op.create_index('ix_events_status', 'events', ['status'])

    op.create_table(
        'tickets',
        sa.Column('id', big_id, primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.BigInteger(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('buyer_name', sa.String(), nullable=False),
        sa.Column('buyer_email', sa.String(), nullable=True),
        sa.Column('buyer_phone', sa.String(), nullable=False),
        sa.Column('ticket_type', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.Enum(*TICKET_STATUSES, name='ticket_status'), nullable=False),
        sa.Column('qr_code', sa.String(), nullable=True),
        sa.Column('payment_provider', sa.String(), nullable=False),
        sa.Column('mpesa_merchant_request_id', sa.String(), nullable=True),
        sa.Column('mpesa_checkout_request_id', sa.String(), nullable=False),
        sa.Column('mpesa_result_code', sa.Integer(), nullable=True),
        sa.Column('payment_callback', sa.JSON(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_by', sa.BigInteger(), nullable=True),
        sa.Column('last_modified_by', sa.String(), nullable=True),
        sa.Column('last_modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('price >= 0', name='check_ticket_price_non_negative'),
    )
    op.create_index('ix_tickets_id', 'tickets', ['id'])
    op.create_index('ix_tickets_event_id', 'tickets', ['event_id'])
    op.create_index('ix_tickets_buyer_email', 'tickets', ['buyer_email'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_qr_code', 'tickets', ['qr_code'], unique=True)
    op.create_index('ix_tickets_mpesa_merchant_request_id', 'tickets', ['mpesa_merchant_request_id'])
    op.create_index('ix_tickets_mpesa_checkout_request_id', 'tickets', ['mpesa_checkout_request_id'], unique=True)

    op.create_table(
        'ticket_transitions',
        sa.Column('id', big_id, primary_key=True, autoincrement=True),
        sa.Column('ticket_id', sa.BigInteger(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('from_status', existing_ticket_status, nullable=True),
        sa.Column('to_status', existing_ticket_status, nullable=False),
        sa.Column('actor', sa.String(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_ticket_transitions_id', 'ticket_transitions', ['id'])
    op.create_index('ix_ticket_transitions_ticket_id', 'ticket_transitions', ['ticket_id'])


def downgrade():
    op.drop_table('ticket_transitions')
    op.drop_table('tickets')
    op.drop_table('events')
    sa.Enum(name='ticket_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='event_status').drop(op.get_bind(), checkfirst=True)
