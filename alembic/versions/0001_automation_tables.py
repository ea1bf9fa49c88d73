"""Automation tables - customers, appointments, requests, settings and dispatch ledger

Revision ID: 0001_automation_tables
Revises:
Create Date: 2026-10-19

The partial unique index on `automation_dispatches` allows any number of
failed attempts but at most one `sent` row per (workflow type, subject).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_automation_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the automation schema."""

    # ==========================================================================
    # Customers / artists
    # ==========================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('email_unsubscribed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_customers_email', 'customers', ['email'])
    op.create_index('idx_customers_last_activity', 'customers', ['last_activity_at'])

    op.create_table(
        'artists',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # Appointments / service requests
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('artist_id', sa.Uuid(), sa.ForeignKey('artists.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('appointment_type', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_appointments_status_start', 'appointments', ['status', 'start_time'])
    op.create_index('idx_appointments_status_end', 'appointments', ['status', 'end_time'])
    op.create_index('idx_appointments_customer', 'appointments', ['customer_id'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('contact_email', sa.String(320), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('placement', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('tracking_token', sa.String(64), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_service_requests_status_created', 'service_requests', ['status', 'created_at'])

    # ==========================================================================
    # Automation settings / dispatch ledger
    # ==========================================================================
    op.create_table(
        'automation_settings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workflow_type', sa.String(50), nullable=False, unique=True),
        sa.Column('enabled', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('timing_hours', sa.Integer(), nullable=True),
        sa.Column('timing_minutes', sa.Integer(), nullable=True),
        sa.Column('business_hours_only', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'automation_dispatches',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workflow_type', sa.String(50), nullable=False),
        sa.Column('subject_kind', sa.String(20), nullable=False),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('recipient', sa.String(320), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('trigger_source', sa.String(20), server_default=sa.text("'scheduler'"), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('sent', 'failed')", name='chk_automation_dispatch_status'),
    )
    op.create_index(
        'uq_automation_dispatch_sent',
        'automation_dispatches',
        ['workflow_type', 'subject_kind', 'subject_id'],
        unique=True,
        postgresql_where=sa.text("status = 'sent'"),
        sqlite_where=sa.text("status = 'sent'"),
    )
    op.create_index(
        'idx_automation_dispatch_subject',
        'automation_dispatches',
        ['workflow_type', 'subject_kind', 'subject_id'],
    )
    op.create_index('idx_automation_dispatch_customer', 'automation_dispatches', ['customer_id'])
    op.create_index('idx_automation_dispatch_attempted', 'automation_dispatches', ['attempted_at'])


def downgrade() -> None:
    op.drop_table('automation_dispatches')
    op.drop_table('automation_settings')
    op.drop_table('service_requests')
    op.drop_table('appointments')
    op.drop_table('artists')
    op.drop_table('customers')
