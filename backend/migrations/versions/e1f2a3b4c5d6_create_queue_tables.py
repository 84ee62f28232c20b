"""Create users, queue_entries and calls tables

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_ENTRY = sa.text("status IN ('waiting', 'connected')")
ACTIVE_CALL = sa.text("status = 'active'")


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('skills', sa.JSON(), nullable=True),
        sa.Column('customer_value', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'queue_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_callback', sa.Boolean(), nullable=False),
        sa.Column('callback_phone', sa.String(length=50), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('estimated_handle_time', sa.Integer(), nullable=True),
        sa.Column('customer_value', sa.Integer(), nullable=True),
        sa.Column('skills_required', sa.JSON(), nullable=True),
        sa.Column('preferred_agent_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
    )
    op.create_index('ix_queue_entries_user_id', 'queue_entries', ['user_id'])
    op.create_index('ix_queue_entries_status', 'queue_entries', ['status'])
    op.create_index('uq_queue_entries_active_user', 'queue_entries', ['user_id'], unique=True,
                    sqlite_where=ACTIVE_ENTRY, postgresql_where=ACTIVE_ENTRY)

    op.create_table(
        'calls',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('representative_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('queue_entry_id', sa.Integer(), sa.ForeignKey('queue_entries.id'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_calls_customer_id', 'calls', ['customer_id'])
    op.create_index('ix_calls_representative_id', 'calls', ['representative_id'])
    op.create_index('uq_calls_active_representative', 'calls', ['representative_id'], unique=True,
                    sqlite_where=ACTIVE_CALL, postgresql_where=ACTIVE_CALL)


def downgrade():
    op.drop_table('calls')
    op.drop_table('queue_entries')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
