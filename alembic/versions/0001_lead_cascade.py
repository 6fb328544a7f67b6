"""Lead cascade tables

Revision ID: 0001_lead_cascade
Revises:
Create Date: 2026-10-19

Consultants, clients and leads, the append-only cascade assignment chain,
the lead automation config (rotation order + SLA), in-app notifications and
the background job queue.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_lead_cascade'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create lead cascade tables."""

    # ==========================================================================
    # Consultants
    # ==========================================================================
    op.create_table(
        'consultants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('whatsapp_instance', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_consultants_active', 'consultants', ['is_active'])

    # ==========================================================================
    # Clients & leads
    # ==========================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column(
            'current_owner_id', sa.Uuid(),
            sa.ForeignKey('consultants.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_clients_owner', 'clients', ['current_owner_id'])

    op.create_table(
        'leads',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'client_id', sa.Uuid(),
            sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column(
            'assigned_to_id', sa.Uuid(),
            sa.ForeignKey('consultants.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_leads_client', 'leads', ['client_id', 'created_at'])

    # ==========================================================================
    # Cascade assignments (append-only)
    # ==========================================================================
    op.create_table(
        'cascade_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'client_id', sa.Uuid(),
            sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'lead_id', sa.Uuid(),
            sa.ForeignKey('leads.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('consultant_id', sa.Uuid(), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(30), server_default='Active', nullable=False),
        sa.Column('sla_hours', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('client_id', 'sequence', name='uq_cascade_client_sequence'),
        sa.CheckConstraint('sequence >= 1', name='ck_cascade_sequence_positive'),
    )
    # One ACTIVE row per (client, consultant)
    op.create_index(
        'uq_cascade_active_consultant', 'cascade_assignments', ['client_id', 'consultant_id'],
        unique=True,
        postgresql_where=sa.text("status = 'Active'"),
        sqlite_where=sa.text("status = 'Active'"),
    )
    # At most one COMPLETED row per client
    op.create_index(
        'uq_cascade_completed_client', 'cascade_assignments', ['client_id'],
        unique=True,
        postgresql_where=sa.text("status = 'Completed'"),
        sqlite_where=sa.text("status = 'Completed'"),
    )
    op.create_index('idx_cascade_status_expires', 'cascade_assignments', ['status', 'expires_at'])
    op.create_index('idx_cascade_consultant_status', 'cascade_assignments', ['consultant_id', 'status'])

    # ==========================================================================
    # Automation config (rotation order + SLA)
    # ==========================================================================
    op.create_table(
        'lead_automation_config',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column(
            'rotation_order',
            sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
            nullable=False,
        ),
        sa.Column('rotation_version', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('sla_hours', sa.Integer(), server_default=sa.text('24'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ==========================================================================
    # Notifications (in-app)
    # ==========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'consultant_id', sa.Uuid(),
            sa.ForeignKey('consultants.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(20), server_default='normal', nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=True),
        sa.Column('lead_id', sa.Uuid(), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'idx_notif_consultant_unread', 'notifications', ['consultant_id', 'read_at', 'created_at']
    )

    # ==========================================================================
    # Background jobs
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column(
            'payload',
            sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
            nullable=False,
        ),
        sa.Column('run_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default=sa.text('3'), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
    )
    op.create_index(
        'idx_jobs_pending', 'jobs', ['status', 'run_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'uq_job_idempotency', 'jobs', ['idempotency_key'], unique=True,
        postgresql_where=sa.text('idempotency_key IS NOT NULL'),
        sqlite_where=sa.text('idempotency_key IS NOT NULL'),
    )


def downgrade() -> None:
    """Drop lead cascade tables."""
    op.drop_index('uq_job_idempotency', table_name='jobs')
    op.drop_index('idx_jobs_pending', table_name='jobs')
    op.drop_table('jobs')
    op.drop_table('notifications')
    op.drop_table('lead_automation_config')
    op.drop_index('idx_cascade_consultant_status', table_name='cascade_assignments')
    op.drop_index('idx_cascade_status_expires', table_name='cascade_assignments')
    op.drop_index('uq_cascade_completed_client', table_name='cascade_assignments')
    op.drop_index('uq_cascade_active_consultant', table_name='cascade_assignments')
    op.drop_table('cascade_assignments')
    op.drop_table('leads')
    op.drop_table('clients')
    op.drop_table('consultants')
