"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

role_enum = sa.Enum('ADMIN', 'MANAGER', 'CLIENT', name='role')
service_status_enum = sa.Enum('ACTIVE', 'PAUSED', 'COMPLETED', 'CANCELLED', name='servicestatus')
task_status_enum = sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', name='taskstatus')
request_status_enum = sa.Enum('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED', name='requeststatus')
request_priority_enum = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='requestpriority')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_external_id', 'users', ['external_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'client_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('business_name', sa.String(255), nullable=True),
        sa.Column('phone_number', sa.String(50), nullable=True),
        sa.Column('work_hours', sa.String(255), nullable=True),
        sa.Column('logo_url', sa.String(1000), nullable=True),
        sa.Column('custom_font', sa.String(255), nullable=True),
        sa.Column('brand_color1', sa.String(32), nullable=True),
        sa.Column('brand_color2', sa.String(32), nullable=True),
        sa.Column('brand_color3', sa.String(32), nullable=True),
        sa.Column('brand_color4', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'social_media_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('client_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(100), nullable=False),
        sa.Column('url', sa.String(1000), nullable=False),
    )
    op.create_index('ix_social_media_profiles_profile_id', 'social_media_profiles', ['profile_id'])

    op.create_table(
        'service_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    for table in ('template_tasks', 'template_milestones'):
        op.create_table(
            table,
            sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column('template_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('service_templates.id', ondelete='CASCADE'), nullable=False),
            sa.Column('title', sa.String(500), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        )
        op.create_index(f'ix_{table}_template_id', table, ['template_id'])

    op.create_table(
        'form_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('fields', postgresql.JSONB, nullable=False),
        sa.Column('is_template', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'service_template_forms',
        sa.Column('template_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('service_templates.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('form_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('form_templates.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('template_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('service_templates.id'), nullable=False),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', service_status_enum, nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_services_template_id', 'services', ['template_id'])
    op.create_index('ix_services_client_id', 'services', ['client_id'])

    op.create_table(
        'service_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('template_task_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('template_tasks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', task_status_enum, nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_service_tasks_service_id', 'service_tasks', ['service_id'])

    op.create_table(
        'service_milestones',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('template_milestone_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('template_milestones.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('achieved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('achieved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_service_milestones_service_id', 'service_milestones', ['service_id'])

    op.create_table(
        'assigned_forms',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('form_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('form_templates.id'), nullable=False),
        sa.Column('required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('service_id', 'form_id', name='uq_assigned_form_service_form'),
    )
    op.create_index('ix_assigned_forms_service_id', 'assigned_forms', ['service_id'])
    op.create_index('ix_assigned_forms_form_id', 'assigned_forms', ['form_id'])

    op.create_table(
        'form_submissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('form_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('form_templates.id'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('data', postgresql.JSONB, nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_form_submissions_form_id', 'form_submissions', ['form_id'])
    op.create_index('ix_form_submissions_user_id', 'form_submissions', ['user_id'])

    op.create_table(
        'service_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', request_status_enum, nullable=False),
        sa.Column('priority', request_priority_enum, nullable=False),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_service_requests_client_id', 'service_requests', ['client_id'])
    op.create_index('ix_service_requests_service_id', 'service_requests', ['service_id'])
    op.create_index('ix_service_requests_status_priority', 'service_requests', ['status', 'priority'])


def downgrade() -> None:
    op.drop_table('service_requests')
    op.drop_table('form_submissions')
    op.drop_table('assigned_forms')
    op.drop_table('service_milestones')
    op.drop_table('service_tasks')
    op.drop_table('services')
    op.drop_table('service_template_forms')
    op.drop_table('form_templates')
    op.drop_table('template_milestones')
    op.drop_table('template_tasks')
    op.drop_table('service_templates')
    op.drop_table('social_media_profiles')
    op.drop_table('client_profiles')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in (request_priority_enum, request_status_enum, task_status_enum, service_status_enum, role_enum):
        enum.drop(bind, checkfirst=True)
