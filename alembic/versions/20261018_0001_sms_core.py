"""sms core tables

Revision ID: 20261018_0001
Revises: 
Create Date: 2026-10-18 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261018_0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'sms_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('plugin_name', sa.String(length=120), nullable=False, server_default='SMS Manager'),
        sa.Column('default_provider_handle', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('default_sender_id_handle', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('enable_analytics', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('analytics_limit', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('analytics_retention', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('auto_trim_analytics', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enable_logs', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('logs_limit', sa.Integer(), nullable=False, server_default='10000'),
        sa.Column('logs_retention', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('auto_trim_logs', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('items_per_page', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('refresh_interval_secs', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('log_level', sa.String(length=16), nullable=False, server_default='error'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_sms_settings_id', 'sms_settings', ['id'])

    op.create_table(
        'sms_providers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('handle', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('settings_json', sa.Text(), nullable=False, server_default='{}'),
        *_timestamps(),
        sa.UniqueConstraint('handle', name='uq_sms_providers_handle'),
    )
    op.create_index('ix_sms_providers_id', 'sms_providers', ['id'])
    op.create_index('ix_sms_providers_handle', 'sms_providers', ['handle'])
    op.create_index('ix_sms_providers_type', 'sms_providers', ['type'])
    op.create_index('ix_sms_providers_created_at', 'sms_providers', ['created_at'])
    op.create_index('ix_sms_providers_enabled_sort', 'sms_providers', ['enabled', 'sort_order'])

    op.create_table(
        'sms_sender_ids',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('handle', sa.String(length=64), nullable=False),
        sa.Column('provider_handle', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('sender_value', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_development', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('handle', name='uq_sms_sender_ids_handle'),
    )
    op.create_index('ix_sms_sender_ids_id', 'sms_sender_ids', ['id'])
    op.create_index('ix_sms_sender_ids_handle', 'sms_sender_ids', ['handle'])
    op.create_index('ix_sms_sender_ids_provider_handle', 'sms_sender_ids', ['provider_handle'])
    op.create_index('ix_sms_sender_ids_created_at', 'sms_sender_ids', ['created_at'])
    op.create_index('ix_sms_sender_ids_provider_enabled', 'sms_sender_ids', ['provider_handle', 'enabled'])

    op.create_table(
        'sms_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_handle', sa.String(length=64), nullable=True),
        sa.Column('sender_handle', sa.String(length=64), nullable=True),
        sa.Column('recipient', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('language', sa.String(length=8), nullable=False, server_default='en'),
        sa.Column('message_length', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('provider_message_id', sa.String(length=120), nullable=True),
        sa.Column('provider_response', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('source_plugin', sa.String(length=120), nullable=True),
        sa.Column('source_reference_id', sa.String(length=120), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_sms_logs_id', 'sms_logs', ['id'])
    op.create_index('ix_sms_logs_provider_handle', 'sms_logs', ['provider_handle'])
    op.create_index('ix_sms_logs_sender_handle', 'sms_logs', ['sender_handle'])
    op.create_index('ix_sms_logs_recipient', 'sms_logs', ['recipient'])
    op.create_index('ix_sms_logs_status', 'sms_logs', ['status'])
    op.create_index('ix_sms_logs_source_plugin', 'sms_logs', ['source_plugin'])
    op.create_index('ix_sms_logs_created_at', 'sms_logs', ['created_at'])
    op.create_index('ix_sms_logs_status_created', 'sms_logs', ['status', 'created_at'])
    op.create_index('ix_sms_logs_provider_created', 'sms_logs', ['provider_handle', 'created_at'])

    op.create_table(
        'sms_analytics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('provider_handle', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('sender_handle', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('source_plugin', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('total_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_delivered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_pending', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_characters', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_messages', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('english_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('arabic_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('other_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('date', 'provider_handle', 'sender_handle', 'source_plugin', name='uq_sms_analytics_bucket'),
    )
    op.create_index('ix_sms_analytics_id', 'sms_analytics', ['id'])
    op.create_index('ix_sms_analytics_date', 'sms_analytics', ['date'])

    op.create_table(
        'sms_job_claims',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_key', sa.String(length=160), nullable=False),
        sa.Column('job_name', sa.String(length=64), nullable=False),
        sa.Column('run_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('job_key', name='uq_sms_job_claims_job_key'),
    )
    op.create_index('ix_sms_job_claims_id', 'sms_job_claims', ['id'])
    op.create_index('ix_sms_job_claims_job_name', 'sms_job_claims', ['job_name'])
    op.create_index('ix_sms_job_claims_run_at', 'sms_job_claims', ['run_at'])


def downgrade() -> None:
    op.drop_table('sms_job_claims')
    op.drop_table('sms_analytics')
    op.drop_table('sms_logs')
    op.drop_table('sms_sender_ids')
    op.drop_table('sms_providers')
    op.drop_table('sms_settings')
