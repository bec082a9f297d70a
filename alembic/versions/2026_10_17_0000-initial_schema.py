"""initial schema

Revision ID: 2026_10_17_0000
Revises:
Create Date: 2026-10-17 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_17_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, credit ledger, generations and usage log tables."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('plan', sa.String(20), nullable=False, server_default='free'),
        sa.Column('credits_remaining', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits_remaining >= 0', name='ck_credits_non_negative'),
        sa.CheckConstraint("plan IN ('free', 'starter', 'pro')", name='ck_profile_plan'),
    )

    # ========================================================================
    # Create credit_ledger_entries table
    # ========================================================================
    op.create_table(
        'credit_ledger_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount > 0', name='ck_ledger_amount_positive'),
        sa.CheckConstraint("kind IN ('debit', 'refund')", name='ck_ledger_kind'),
        sa.UniqueConstraint('request_id', 'kind', name='uq_ledger_request_kind'),
        sa.ForeignKeyConstraint(['account_id'], ['profiles.id'], name='fk_ledger_profile', ondelete='CASCADE'),
    )

    op.create_index('ix_credit_ledger_entries_account_id', 'credit_ledger_entries', ['account_id'])
    op.create_index('idx_ledger_created_at', 'credit_ledger_entries', ['created_at'])

    # ========================================================================
    # Create generations table
    # ========================================================================
    op.create_table(
        'generations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('property_id', sa.String(255), nullable=True),
        sa.Column('original_image_url', sa.Text(), nullable=False),
        sa.Column('generated_image_url', sa.Text(), nullable=False),
        sa.Column('prompt_used', sa.Text(), nullable=False),
        sa.Column('generation_mode', sa.String(50), nullable=False),
        sa.Column('is_compressed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('status', sa.String(20), nullable=False, server_default='succeeded'),
        sa.Column('result_uri', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint("status IN ('pending', 'succeeded', 'failed')", name='ck_generation_status'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_generations_profile', ondelete='CASCADE'),
    )

    op.create_index('ix_generations_user_id', 'generations', ['user_id'])
    op.create_index('idx_generations_user_mode', 'generations', ['user_id', 'generation_mode'])
    op.create_index('idx_generations_generated_url', 'generations', ['generated_image_url'])
    op.create_index(
        'idx_generations_request_id',
        'generations',
        ['request_id'],
        postgresql_where=sa.text('request_id IS NOT NULL'),
    )
    op.create_index('idx_generations_created_at', 'generations', ['created_at'])

    # ========================================================================
    # Create api_usage_logs table
    # ========================================================================
    op.create_table(
        'api_usage_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('endpoint', sa.String(100), nullable=False),
        sa.Column('model', sa.String(100), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('latency_ms', sa.Integer(), nullable=False),
        sa.Column('input_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('output_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('credits_charged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('estimated_cost_usd', sa.Numeric(10, 4), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('ix_api_usage_logs_user_id', 'api_usage_logs', ['user_id'])
    op.create_index('idx_usage_logs_endpoint_created', 'api_usage_logs', ['endpoint', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('api_usage_logs')
    op.drop_table('generations')
    op.drop_table('credit_ledger_entries')
    op.drop_table('profiles')
