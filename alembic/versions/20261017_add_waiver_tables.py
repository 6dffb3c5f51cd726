"""add waiver templates, versions, merge fields, membership links and signed waivers

Revision ID: 20261017_add_waivers
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261017_add_waivers'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'waiver_templates',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=120), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('requires_guardian', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('guardian_age_threshold', sa.Integer(), server_default='16', nullable=False),
        sa.Column('current_version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_waiver_templates_organization_id', 'waiver_templates', ['organization_id'])

    op.create_table(
        'waiver_template_versions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('template_id', sa.String(), sa.ForeignKey('waiver_templates.id'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('content_snapshot', sa.Text(), nullable=False),
        sa.Column('requires_guardian', sa.Boolean(), nullable=False),
        sa.Column('guardian_age_threshold', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('template_id', 'version', name='uq_waiver_template_version'),
    )
    op.create_index('ix_waiver_template_versions_template_id', 'waiver_template_versions', ['template_id'])

    op.create_table(
        'waiver_merge_fields',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('key', sa.String(length=50), nullable=False),
        sa.Column('label', sa.String(length=100), nullable=False),
        sa.Column('default_value', sa.String(length=500), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('organization_id', 'key', name='uq_merge_field_org_key'),
    )
    op.create_index('ix_waiver_merge_fields_organization_id', 'waiver_merge_fields', ['organization_id'])

    op.create_table(
        'membership_waivers',
        sa.Column('membership_plan_id', sa.String(), primary_key=True),
        sa.Column('waiver_template_id', sa.String(), sa.ForeignKey('waiver_templates.id'), primary_key=True),
        sa.Column('is_required', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'signed_waivers',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('waiver_template_id', sa.String(), sa.ForeignKey('waiver_templates.id'), nullable=False),
        sa.Column('template_version_used', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.String(), nullable=False),
        sa.Column('member_membership_id', sa.String(), nullable=True),
        sa.Column('signature_data_url', sa.Text(), nullable=False),
        sa.Column('signed_by_name', sa.String(length=100), nullable=False),
        sa.Column('signed_by_relationship', sa.String(length=20), server_default='self', nullable=False),
        sa.Column('signed_by_email', sa.String(), nullable=True),
        sa.Column('member_first_name', sa.String(), nullable=False),
        sa.Column('member_last_name', sa.String(), nullable=False),
        sa.Column('member_email', sa.String(), nullable=False),
        sa.Column('member_date_of_birth', sa.Date(), nullable=True),
        sa.Column('member_age_at_signing', sa.Integer(), nullable=True),
        sa.Column('rendered_content', sa.Text(), nullable=False),
        sa.Column('organization_name', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_signed_waivers_organization_id', 'signed_waivers', ['organization_id'])
    op.create_index('ix_signed_waivers_member', 'signed_waivers', ['member_id'])


def downgrade():
    op.drop_index('ix_signed_waivers_member', table_name='signed_waivers')
    op.drop_index('ix_signed_waivers_organization_id', table_name='signed_waivers')
    op.drop_table('signed_waivers')
    op.drop_table('membership_waivers')
    op.drop_index('ix_waiver_merge_fields_organization_id', table_name='waiver_merge_fields')
    op.drop_table('waiver_merge_fields')
    op.drop_index('ix_waiver_template_versions_template_id', table_name='waiver_template_versions')
    op.drop_table('waiver_template_versions')
    op.drop_index('ix_waiver_templates_organization_id', table_name='waiver_templates')
    op.drop_table('waiver_templates')
