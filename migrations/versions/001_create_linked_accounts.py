"""create linked accounts

Revision ID: 001_create_linked_accounts
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_linked_accounts'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'linked_accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('external_account_id', sa.String(length=12), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('role_arn', sa.String(length=2048), nullable=False),
        # AES ciphertext of the confirmation secret (sqlalchemy-utils StringEncryptedType)
        sa.Column('external_id', sa.String(length=1224), nullable=True),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'VERIFIED', 'FAILED', 'DISABLED', name='verification_state', native_enum=False, length=16),
            nullable=False,
            server_default='PENDING',
        ),
        sa.Column('last_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_linked_accounts')),
    )
    op.create_index(op.f('ix_linked_accounts_external_account_id'), 'linked_accounts', ['external_account_id'], unique=True)
    op.create_index(op.f('ix_linked_accounts_status'), 'linked_accounts', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_linked_accounts_status'), table_name='linked_accounts')
    op.drop_index(op.f('ix_linked_accounts_external_account_id'), table_name='linked_accounts')
    op.drop_table('linked_accounts')
