"""Placement test schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SESSION_CONDITION = sa.text("status = 'in_progress'")


def upgrade():
    # Create question bank table
    op.create_table(
        'placement_question',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('rubric', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('difficulty', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0')
    )
    op.create_index('ix_placement_question_level', 'placement_question', ['level'])
    op.create_index('idx_placement_question_level_order', 'placement_question', ['level', 'sort_order'])

    # Create sessions table
    op.create_table(
        'placement_test_session',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('question_ids', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('earned_points', sa.Integer(), nullable=True),
        sa.Column('max_score', sa.Integer(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True)
    )
    op.create_index('ix_placement_test_session_user_id', 'placement_test_session', ['user_id'])
    op.create_index('ix_placement_test_session_status', 'placement_test_session', ['status'])
    op.create_index('idx_placement_session_user_level', 'placement_test_session', ['user_id', 'level'])
    # At most one in-progress session per user and level
    op.create_index(
        'uq_placement_session_active',
        'placement_test_session',
        ['user_id', 'level'],
        unique=True,
        sqlite_where=ACTIVE_SESSION_CONDITION,
        postgresql_where=ACTIVE_SESSION_CONDITION
    )

    # Create answers table
    op.create_table(
        'placement_test_answer',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(64),
                  sa.ForeignKey('placement_test_session.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.String(64), nullable=False),
        sa.Column('answer', sa.Text(), nullable=False),
        sa.Column('answered_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_placement_answer_session_question')
    )
    op.create_index('ix_placement_test_answer_session_id', 'placement_test_answer', ['session_id'])

    # Create level attempts table
    op.create_table(
        'placement_level_attempt',
        sa.Column('id', sa.String(80), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(64), sa.ForeignKey('placement_test_session.id'),
                  nullable=False, unique=True),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('earned_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('percentage', sa.Integer(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('attempted_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'level', 'attempt_number', name='uq_placement_attempt_number')
    )
    op.create_index('idx_placement_attempt_user_level', 'placement_level_attempt', ['user_id', 'level'])

    # Create user progress table
    op.create_table(
        'placement_user_progress',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('current_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('highest_passed_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_passed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_score', sa.Float(), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )


def downgrade():
    op.drop_table('placement_user_progress')
    op.drop_table('placement_level_attempt')
    op.drop_table('placement_test_answer')
    op.drop_table('placement_test_session')
    op.drop_table('placement_question')
