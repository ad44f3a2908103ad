"""create user, timer, time_entry and xp_history tables

Revision ID: 3c9d2f71a0b4
Revises:
Create Date: 2025-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9d2f71a0b4'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_WHERE = "status IN ('RUNNING', 'PAUSED')"


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'timer',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('segment_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recorded_elapsed_ms', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_paused_ms', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('project_id', sa.String(length=64), nullable=True),
        sa.Column('task_id', sa.String(length=64), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('billable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_timer_user_id', 'timer', ['user_id'])
    op.create_index('ix_timer_project_id', 'timer', ['project_id'])
    op.create_index('ix_timer_task_id', 'timer', ['task_id'])
    # One RUNNING/PAUSED timer per user
    op.create_index(
        'uq_timer_one_active_per_user', 'timer', ['user_id'], unique=True,
        sqlite_where=sa.text(ACTIVE_WHERE),
        postgresql_where=sa.text(ACTIVE_WHERE),
    )

    op.create_table(
        'time_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('timer_id', sa.String(length=32), sa.ForeignKey('timer.id'), nullable=False, unique=True),
        sa.Column('project_id', sa.String(length=64), nullable=True),
        sa.Column('task_id', sa.String(length=64), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('billable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_time_entry_user_id', 'time_entry', ['user_id'])

    op.create_table(
        'xp_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('xp_earned', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('timer_id', sa.String(length=32), sa.ForeignKey('timer.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('timer_id', 'action', name='uq_xp_history_timer_action'),
    )
    op.create_index('ix_xp_history_user_id', 'xp_history', ['user_id'])


def downgrade():
    op.drop_index('ix_xp_history_user_id', table_name='xp_history')
    op.drop_table('xp_history')
    op.drop_index('ix_time_entry_user_id', table_name='time_entry')
    op.drop_table('time_entry')
    op.drop_index('uq_timer_one_active_per_user', table_name='timer')
    op.drop_index('ix_timer_task_id', table_name='timer')
    op.drop_index('ix_timer_project_id', table_name='timer')
    op.drop_index('ix_timer_user_id', table_name='timer')
    op.drop_table('timer')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
