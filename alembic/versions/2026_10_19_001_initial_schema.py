"""Initial schema: organizations, users, tenants, isolation, billing and audit

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_initial_schema'
down_revision = None

plan_name = sa.Enum('BASIC', 'PROFESSIONAL', 'ENTERPRISE', name='planname')
# Second reference to the same type must not re-create it
plan_name_existing = postgresql.ENUM('BASIC', 'PROFESSIONAL', 'ENTERPRISE', name='planname', create_type=False)


def upgrade():
    # Organizations
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('domain', sa.String(255), nullable=True),
        sa.Column('industry', sa.String(100), nullable=True),
        sa.Column('size', sa.Enum('SMALL', 'MEDIUM', 'LARGE', 'ENTERPRISE', name='organizationsize'), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='organizationstatus'), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'])
    op.create_index('ix_organizations_status', 'organizations', ['status'])

    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'MANAGER', 'USER', name='userrole'), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='userstatus'), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('password_changed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_status', 'users', ['status'])

    # Organization memberships
    op.create_table(
        'organization_memberships',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'MANAGER', 'MEMBER', name='membershiprole'), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_membership_org_user'),
    )
    op.create_index('ix_organization_memberships_organization_id', 'organization_memberships', ['organization_id'])
    op.create_index('ix_organization_memberships_user_id', 'organization_memberships', ['user_id'])

    # Password reset tokens
    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_password_reset_tokens_user_id', 'password_reset_tokens', ['user_id'])
    op.create_index('ix_password_reset_tokens_token_hash', 'password_reset_tokens', ['token_hash'], unique=True)

    # Tenants
    op.create_table(
        'tenants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('domain', sa.String(100), nullable=False),
        sa.Column('subdomain', sa.String(50), nullable=True, unique=True),
        sa.Column('plan', plan_name, nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', 'SUSPENDED', name='tenantstatus'), nullable=False),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('suspension_reason', sa.String(500), nullable=True),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('reactivated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tenants_domain', 'tenants', ['domain'], unique=True)
    op.create_index('ix_tenants_name', 'tenants', ['name'])
    op.create_index('ix_tenants_status', 'tenants', ['status'])
    op.create_index('ix_tenants_organization_id', 'tenants', ['organization_id'])

    # Tenant isolation policies
    op.create_table(
        'tenant_isolation_policies',
        sa.Column('tenant_id', sa.Uuid(), sa.ForeignKey('tenants.id'), primary_key=True),
        sa.Column('encryption_required', sa.Boolean(), nullable=False),
        sa.Column('encryption_key_id', sa.String(64), nullable=False),
        sa.Column('retention_period_days', sa.Integer(), nullable=False),
        sa.Column('backup_retention_days', sa.Integer(), nullable=False),
        sa.Column('data_residency', sa.String(50), nullable=False),
        sa.Column('anonymization_required', sa.Boolean(), nullable=False),
        sa.Column('cross_tenant_access', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    # Subscriptions
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('current_for_organization_id', sa.Uuid(), nullable=True, unique=True),
        sa.Column('plan', plan_name_existing, nullable=False),
        sa.Column('billing_cycle', sa.Enum('MONTHLY', 'YEARLY', name='billingcycle'), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'SUSPENDED', 'CANCELLED', name='subscriptionstatus'), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('limits', sa.JSON(), nullable=False),
        sa.Column('trial_period_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('next_billing_date', sa.DateTime(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subscriptions_organization_id', 'subscriptions', ['organization_id'])
    op.create_index('ix_subscriptions_plan', 'subscriptions', ['plan'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    # Invoices
    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('subscription_id', sa.Uuid(), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax', sa.Numeric(10, 2), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'PAID', 'FAILED', name='invoicestatus'), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('failure_reason', sa.String(500), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_invoices_subscription_id', 'invoices', ['subscription_id'])
    op.create_index('ix_invoices_organization_id', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_created_at', 'invoices', ['created_at'])

    # Usage records
    op.create_table(
        'usage_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.Uuid(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('metric', sa.String(50), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('billing_period', sa.String(7), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_usage_records_organization_id', 'usage_records', ['organization_id'])
    op.create_index('ix_usage_records_metric', 'usage_records', ['metric'])
    op.create_index('ix_usage_records_billing_period', 'usage_records', ['billing_period'])

    # Audit events (append-only)
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('risk_level', sa.Enum('LOW', 'MEDIUM', 'HIGH', name='risklevel'), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_events_action', 'audit_events', ['action'])
    op.create_index('ix_audit_events_tenant_id', 'audit_events', ['tenant_id'])
    op.create_index('ix_audit_events_user_id', 'audit_events', ['user_id'])
    op.create_index('ix_audit_events_risk_level', 'audit_events', ['risk_level'])
    op.create_index('ix_audit_events_created_at', 'audit_events', ['created_at'])


def downgrade():
    op.drop_table('audit_events')
    op.drop_table('usage_records')
    op.drop_table('invoices')
    op.drop_table('subscriptions')
    op.drop_table('tenant_isolation_policies')
    op.drop_table('tenants')
    op.drop_table('password_reset_tokens')
    op.drop_table('organization_memberships')
    op.drop_table('users')
    op.drop_table('organizations')

    bind = op.get_bind()
    for enum_name in (
        'risklevel', 'invoicestatus', 'subscriptionstatus', 'billingcycle', 'tenantstatus',
        'membershiprole', 'userstatus', 'userrole', 'organizationstatus', 'organizationsize', 'planname',
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
