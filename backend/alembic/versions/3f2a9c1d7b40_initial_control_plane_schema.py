"""initial_control_plane_schema

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

org_role = sa.Enum('OWNER', 'ADMIN', 'MEMBER', name='orgrole')
instance_kind = sa.Enum('MICROVM', 'CONTAINER', name='instancekind')
instance_status = sa.Enum(
    'PROVISIONING', 'RUNNING', 'STOPPED', 'TERMINATING', 'FAILED', name='instancestatus'
)
metric_type = sa.Enum(
    'CPU_USAGE', 'MEMORY_USAGE', 'DISK_USAGE', 'NETWORK_IN', 'NETWORK_OUT', 'RESPONSE_TIME',
    name='metrictype'
)
event_type = sa.Enum(
    'INSTANCE_PROVISIONING', 'INSTANCE_RUNNING', 'INSTANCE_STARTED', 'INSTANCE_STOPPED',
    'INSTANCE_RESTARTED', 'INSTANCE_FAILED', 'INSTANCE_DELETED', 'COMMAND_EXECUTED',
    'COMMAND_TIMED_OUT', 'SNAPSHOT_CREATED', 'SNAPSHOT_RESTORED', 'SNAPSHOT_DELETED',
    name='eventtype'
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)
    op.create_index('ix_organizations_created_at', 'organizations', ['created_at'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_projects_organization_id', 'projects', ['organization_id'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    op.create_table(
        'workspaces',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_workspaces_project_id', 'workspaces', ['project_id'])
    op.create_index('ix_workspaces_created_at', 'workspaces', ['created_at'])

    op.create_table(
        'organization_members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('role', org_role, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_org_member'),
    )
    op.create_index('ix_organization_members_organization_id', 'organization_members', ['organization_id'])
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])
    op.create_index('ix_organization_members_created_at', 'organization_members', ['created_at'])

    op.create_table(
        'instances',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('kind', instance_kind, nullable=False),
        sa.Column('image', sa.String(255), nullable=False),
        sa.Column('memory_mb', sa.Integer(), nullable=False),
        sa.Column('cpu_count', sa.Integer(), nullable=False),
        sa.Column('disk_mb', sa.Integer(), nullable=False),
        sa.Column('vnc_enabled', sa.Boolean(), nullable=False),
        sa.Column('environment', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('status', instance_status, nullable=False),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('backend_ref', sa.String(128), nullable=True),
        sa.Column('source_snapshot_id', sa.Uuid(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_instances_workspace_id', 'instances', ['workspace_id'])
    op.create_index('ix_instances_user_id', 'instances', ['user_id'])
    op.create_index('ix_instances_status', 'instances', ['status'])
    op.create_index('ix_instances_created_at', 'instances', ['created_at'])

    op.create_table(
        'snapshots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('source_instance_id', sa.Uuid(), nullable=False),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('storage_locator', sa.String(512), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('kind', instance_kind, nullable=False),
        sa.Column('image', sa.String(255), nullable=False),
        sa.Column('memory_mb', sa.Integer(), nullable=False),
        sa.Column('cpu_count', sa.Integer(), nullable=False),
        sa.Column('disk_mb', sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_snapshots_source_instance_id', 'snapshots', ['source_instance_id'])
    op.create_index('ix_snapshots_workspace_id', 'snapshots', ['workspace_id'])
    op.create_index('ix_snapshots_created_at', 'snapshots', ['created_at'])

    op.create_table(
        'templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('snapshot_id', sa.Uuid(), nullable=True),
        sa.Column('kind', instance_kind, nullable=False),
        sa.Column('image', sa.String(255), nullable=False),
        sa.Column('memory_mb', sa.Integer(), nullable=False),
        sa.Column('cpu_count', sa.Integer(), nullable=False),
        sa.Column('disk_mb', sa.Integer(), nullable=False),
        sa.Column('environment', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_templates_organization_id', 'templates', ['organization_id'])
    op.create_index('ix_templates_snapshot_id', 'templates', ['snapshot_id'])
    op.create_index('ix_templates_created_at', 'templates', ['created_at'])

    op.create_table(
        'metric_samples',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('instance_id', sa.Uuid(), nullable=False),
        sa.Column('metric_type', metric_type, nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_metric_samples_instance_id', 'metric_samples', ['instance_id'])
    op.create_index('ix_metric_samples_metric_type', 'metric_samples', ['metric_type'])
    op.create_index('ix_metric_samples_instance_timestamp', 'metric_samples', ['instance_id', 'timestamp'])

    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('instance_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', event_type, nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('extra_data', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_event_logs_instance_id', 'event_logs', ['instance_id'])
    op.create_index('ix_event_logs_event_type', 'event_logs', ['event_type'])
    op.create_index('ix_event_logs_created_at', 'event_logs', ['created_at'])

    op.create_table(
        'tombstones',
        sa.Column('entity_type', sa.String(20), primary_key=True),
        sa.Column('entity_id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_tombstones_organization_id', 'tombstones', ['organization_id'])


def downgrade() -> None:
    for table in (
        'tombstones', 'event_logs', 'metric_samples', 'templates', 'snapshots',
        'instances', 'organization_members', 'workspaces', 'projects', 'organizations',
    ):
        op.drop_table(table)
    for enum in (event_type, metric_type, instance_status, instance_kind, org_role):
        enum.drop(op.get_bind(), checkfirst=True)
