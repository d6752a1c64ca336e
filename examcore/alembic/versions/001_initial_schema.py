"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create assessment_definitions table
    op.create_table(
        'assessment_definitions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('category', sa.String(100), nullable=False, server_default='general'),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('passing_score_percent', sa.Float(), nullable=False, server_default='60'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )
    # Titles are unique among non-deleted definitions
    op.create_index(
        'uq_assessment_definitions_live_title',
        'assessment_definitions',
        ['title'],
        unique=True,
        sqlite_where=sa.text('is_deleted = 0'),
        postgresql_where=sa.text('is_deleted = false')
    )

    # Create assessment_question_refs table
    op.create_table(
        'assessment_question_refs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('definition_id', sa.String(36),
                  sa.ForeignKey('assessment_definitions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.UniqueConstraint('definition_id', 'question_id', 'kind',
                            name='uq_assessment_question_refs_identity')
    )
    op.create_index('idx_question_refs_definition_position', 'assessment_question_refs',
                    ['definition_id', 'position'])

    # Create question_contents table
    op.create_table(
        'question_contents',
        sa.Column('kind', sa.String(20), primary_key=True),
        sa.Column('question_id', sa.String(255), primary_key=True),
        sa.Column('payload', sa.Text(), nullable=False)
    )

    # Create assessment_sessions table
    op.create_table(
        'assessment_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('definition_id', sa.String(36), sa.ForeignKey('assessment_definitions.id'), nullable=False),
        sa.Column('state', sa.String(20), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('elapsed_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('segment_started_at', sa.DateTime(), nullable=True),
        sa.Column('last_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_score', sa.Integer(), nullable=False),
        sa.Column('passing_score_percent', sa.Float(), nullable=False),
        sa.Column('default_category', sa.String(100), nullable=False, server_default='general'),
        sa.Column('questions', sa.Text(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )
    op.create_index('idx_sessions_user_definition', 'assessment_sessions', ['user_id', 'definition_id'])
    op.create_index('ix_assessment_sessions_state', 'assessment_sessions', ['state'])

    # Create session_answers table
    op.create_table(
        'session_answers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(36),
                  sa.ForeignKey('assessment_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_ref_id', sa.String(36), nullable=False),
        sa.Column('raw_answer', sa.Text(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answered_at', sa.DateTime(), nullable=False),
        sa.Column('grading_status', sa.String(20), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.UniqueConstraint('session_id', 'question_ref_id', name='uq_session_answers_question')
    )

    # Create assessment_results table
    op.create_table(
        'assessment_results',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('session_id', sa.String(36), sa.ForeignKey('assessment_sessions.id'),
                  nullable=False, unique=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('definition_id', sa.String(36), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('max_score', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Integer(), nullable=False),
        sa.Column('graded_percentage', sa.Integer(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False),
        sa.Column('time_clamped', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_pending_grading', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=False),
        sa.Column('category_scores', sa.Text(), nullable=False),
        sa.Column('question_results', sa.Text(), nullable=False)
    )
    op.create_index('ix_assessment_results_user_id', 'assessment_results', ['user_id'])


def downgrade():
    op.drop_table('assessment_results')
    op.drop_table('session_answers')
    op.drop_table('assessment_sessions')
    op.drop_table('question_contents')
    op.drop_table('assessment_question_refs')
    op.drop_table('assessment_definitions')
