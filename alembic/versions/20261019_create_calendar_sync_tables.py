"""Create calendar integration, sync ledger and feed token tables

Revision ID: 3f1a7c52e9b0
Revises:
Create Date: 2026-10-19

calendar_integrations holds one OAuth connection per (owner, provider).
calendar_event_syncs tracks the external event of every synced entity and
is removed together with its integration. calendar_feed_tokens stores
SHA-256 digests of feed subscription tokens.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from calsync.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3f1a7c52e9b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('calendar_integrations',
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False, server_default='google'),
        sa.Column('account_email', sa.String(length=255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scopes', sa.Text(), nullable=True),
        sa.Column('calendar_id', sa.String(length=255), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_integrations_owner_id', ['owner_id'], unique=False)
        batch_op.create_index('ix_calendar_integrations_owner_provider', ['owner_id', 'provider'], unique=True)

    op.create_table('calendar_event_syncs',
        sa.Column('integration_id', GUID(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=False),
        sa.Column('external_event_id', sa.String(length=1024), nullable=True),
        sa.Column('calendar_id', sa.String(length=255), nullable=True),
        sa.Column('content_hash', sa.String(length=64), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='synced'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_event_syncs', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_event_syncs_entity', ['integration_id', 'entity_type', 'entity_id'], unique=True)
        batch_op.create_index('ix_calendar_event_syncs_status', ['status'], unique=False)

    op.create_table('calendar_feed_tokens',
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('token_prefix', sa.String(length=8), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_feed_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_feed_tokens_owner_id', ['owner_id'], unique=False)
        batch_op.create_index('ix_calendar_feed_tokens_hash', ['token_hash'], unique=True)


def downgrade() -> None:
    with op.batch_alter_table('calendar_feed_tokens', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_feed_tokens_hash')
        batch_op.drop_index('ix_calendar_feed_tokens_owner_id')
    op.drop_table('calendar_feed_tokens')

    with op.batch_alter_table('calendar_event_syncs', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_event_syncs_status')
        batch_op.drop_index('ix_calendar_event_syncs_entity')
    op.drop_table('calendar_event_syncs')

    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_integrations_owner_provider')
        batch_op.drop_index('ix_calendar_integrations_owner_id')
    op.drop_table('calendar_integrations')
