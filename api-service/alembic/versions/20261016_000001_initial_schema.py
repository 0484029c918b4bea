"""
Initial schema for BizDesk: permissions, companies, roles, accounts,
memberships and invitation codes

Revision ID: 000001_initial
Revises: 
Create Date: 2026-10-16 09:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '000001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # permissions
    op.create_table(
        'permissions',
        *_base_columns(),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('module', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'], unique=True)
    op.create_index('ix_permissions_category', 'permissions', ['category'])
    op.create_index('ix_permission_category_module', 'permissions', ['category', 'module'])

    # companies (owner FK added once accounts exists)
    op.create_table(
        'companies',
        *_base_columns(),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index('ix_companies_name', 'companies', ['name'], unique=True)
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])
    op.create_index('ix_companies_owner_id', 'companies', ['owner_id'])

    # accounts
    op.create_table(
        'accounts',
        *_base_columns(),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('hashed_password', sa.String(length=128), nullable=True),
        sa.Column('first_name', sa.String(length=80), nullable=True),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('email', sa.String(length=254), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('bank_account', sa.String(length=16), nullable=True),
        sa.Column('discord_id', sa.String(length=32), nullable=True),
        sa.Column('discord_username', sa.String(length=64), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('system_role', sa.String(length=20), nullable=False, server_default='user'),
        sa.Column('company_validated', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('account_family_id', sa.String(length=64), nullable=True),
        sa.Column(
            'current_company_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('companies.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('advances', sa.Float(), nullable=False, server_default='0'),
        sa.Column('bonuses', sa.Float(), nullable=False, server_default='0'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_accounts_username', 'accounts', ['username'], unique=True)
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)
    op.create_index('ix_accounts_discord_id', 'accounts', ['discord_id'], unique=True)
    op.create_index('ix_accounts_account_family_id', 'accounts', ['account_family_id'])
    op.create_index('ix_accounts_current_company_id', 'accounts', ['current_company_id'])
    op.create_index('ix_accounts_is_active', 'accounts', ['is_active'])
    op.create_index('ix_accounts_last_login_at', 'accounts', ['last_login_at'])
    op.create_index('ix_account_family_active', 'accounts', ['account_family_id', 'is_active'])

    op.create_foreign_key(
        'fk_companies_owner_id_accounts', 'companies', 'accounts',
        ['owner_id'], ['id'], ondelete='SET NULL',
    )

    # roles
    op.create_table(
        'roles',
        *_base_columns(),
        sa.Column('name', sa.String(length=80), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_overrides', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('salary_norm', sa.Float(), nullable=False, server_default='0'),
        sa.Column('salary_cap', sa.Float(), nullable=False, server_default='0'),
        sa.Column('contract_type', sa.String(length=20), nullable=False, server_default='CDI'),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.UniqueConstraint('company_id', 'name', name='uq_roles_company_name'),
    )
    op.create_index('ix_roles_company_id', 'roles', ['company_id'])

    op.create_table(
        'role_permissions',
        sa.Column('role_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # company_memberships
    op.create_table(
        'company_memberships',
        *_base_columns(),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('roles.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('account_id', 'company_id', name='uq_membership_account_company'),
    )
    op.create_index('ix_company_memberships_account_id', 'company_memberships', ['account_id'])
    op.create_index('ix_company_memberships_company_id', 'company_memberships', ['company_id'])
    op.create_index('ix_company_memberships_role_id', 'company_memberships', ['role_id'])
    op.create_index('ix_membership_company_active', 'company_memberships', ['company_id', 'is_active'])

    # invitation_codes
    op.create_table(
        'invitation_codes',
        *_base_columns(),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('max_uses IS NULL OR max_uses >= 1', name='ck_invitation_codes_max_uses_positive'),
        sa.CheckConstraint('max_uses IS NULL OR current_uses <= max_uses', name='ck_invitation_codes_uses_within_max'),
    )
    op.create_index('ix_invitation_codes_code', 'invitation_codes', ['code'], unique=True)
    op.create_index('ix_invitation_codes_company_id', 'invitation_codes', ['company_id'])
    op.create_index('ix_invitation_codes_is_active', 'invitation_codes', ['is_active'])
    op.create_index('ix_invitation_codes_expires_at', 'invitation_codes', ['expires_at'])
    op.create_index('ix_invitation_codes_company_active', 'invitation_codes', ['company_id', 'is_active'])

    op.create_table(
        'invitation_code_usages',
        *_base_columns(),
        sa.Column('invitation_code_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('invitation_codes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
    )
    op.create_index('ix_invitation_code_usages_invitation_code_id', 'invitation_code_usages', ['invitation_code_id'])
    op.create_index('ix_invitation_code_usages_account_id', 'invitation_code_usages', ['account_id'])


def downgrade() -> None:
    op.drop_table('invitation_code_usages')
    op.drop_table('invitation_codes')
    op.drop_table('company_memberships')
    op.drop_table('role_permissions')
    op.drop_table('roles')
    op.drop_constraint('fk_companies_owner_id_accounts', 'companies', type_='foreignkey')
    op.drop_table('accounts')
    op.drop_table('companies')
    op.drop_table('permissions')
