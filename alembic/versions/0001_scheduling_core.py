"""Scheduling core - operating hours, agent qualifications, booking locks, appointments.

Revision ID: 0001_scheduling_core
Revises:
Create Date: 2026-10-19

Creates:
- operating_hours (one row per organization/service)
- agent_qualifications
- booking_locks (row-lock targets for the booking transaction)
- appointments
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_scheduling_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # operating_hours
    # ==========================================================================
    op.create_table(
        'operating_hours',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=True),
        sa.Column('weekdays', sa.JSON(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('slot_granularity_minutes', sa.Integer(), server_default=sa.text('30'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'service_id', name='uq_operating_hours_org_service'),
        sa.CheckConstraint('start_time < end_time', name='ck_operating_hours_window'),
        sa.CheckConstraint('slot_granularity_minutes > 0', name='ck_operating_hours_granularity'),
    )
    op.create_index('idx_operating_hours_org', 'operating_hours', ['organization_id'])

    # ==========================================================================
    # agent_qualifications
    # ==========================================================================
    op.create_table(
        'agent_qualifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('country_code', sa.String(3), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'agent_id', 'organization_id', 'country_code', 'service_id',
            name='uq_agent_qualification',
        ),
    )
    op.create_index(
        'idx_agent_qualifications_lookup',
        'agent_qualifications',
        ['organization_id', 'country_code', 'is_active'],
    )

    # ==========================================================================
    # booking_locks
    # ==========================================================================
    op.create_table(
        'booking_locks',
        sa.Column('lock_key', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('lock_key'),
    )

    # ==========================================================================
    # appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('country_code', sa.String(3), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=True),
        sa.Column('request_id', sa.Uuid(), nullable=True),
        sa.Column('attendee_id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('replaced_by_id', sa.Uuid(), nullable=True),
        sa.Column('rescheduled_from_id', sa.Uuid(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['replaced_by_id'], ['appointments.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['rescheduled_from_id'], ['appointments.id'], ondelete='SET NULL'),
        sa.CheckConstraint('start_time < end_time', name='ck_appointments_window'),
        sa.CheckConstraint('duration_minutes > 0', name='ck_appointments_duration'),
    )
    op.create_index('idx_appointments_agent_start', 'appointments', ['agent_id', 'start_time'])
    op.create_index('idx_appointments_org_date', 'appointments', ['organization_id', 'date'])
    op.create_index('idx_appointments_org_status', 'appointments', ['organization_id', 'status'])
    op.create_index('idx_appointments_attendee', 'appointments', ['attendee_id'])


def downgrade() -> None:
    op.drop_index('idx_appointments_attendee', table_name='appointments')
    op.drop_index('idx_appointments_org_status', table_name='appointments')
    op.drop_index('idx_appointments_org_date', table_name='appointments')
    op.drop_index('idx_appointments_agent_start', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('booking_locks')
    op.drop_index('idx_agent_qualifications_lookup', table_name='agent_qualifications')
    op.drop_table('agent_qualifications')
    op.drop_index('idx_operating_hours_org', table_name='operating_hours')
    op.drop_table('operating_hours')
