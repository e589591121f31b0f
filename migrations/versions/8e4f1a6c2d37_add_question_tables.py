"""add question tables

Revision ID: 8e4f1a6c2d37
Revises: 5c2a9e71b0d4
Create Date: 2026-10-19 16:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8e4f1a6c2d37'
down_revision = '5c2a9e71b0d4'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='freetext'),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('options', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('scoring_type', sa.String(length=16), nullable=False, server_default='all_equal'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'question_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('competition_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('trophy_id', sa.Integer(), nullable=True),
        sa.Column('player_trophy_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['question_id'], ['question.id']),
        sa.ForeignKeyConstraint(['competition_id'], ['competition.id']),
        sa.ForeignKeyConstraint(['trophy_id'], ['trophy.id']),
        sa.ForeignKeyConstraint(['player_trophy_id'], ['reward_player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('question_id', 'competition_id', name='uq_question_usage_question_competition'),
    )
    op.create_index('ix_question_usage_question_id', 'question_usage', ['question_id'])
    op.create_index('ix_question_usage_competition_id', 'question_usage', ['competition_id'])

    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('usage_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('normalized', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reviewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('answered_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['usage_id'], ['question_usage.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('usage_id', 'user_id', name='uq_answer_usage_user'),
    )
    op.create_index('ix_answer_usage_id', 'answer', ['usage_id'])


def downgrade():
    op.drop_index('ix_answer_usage_id', table_name='answer')
    op.drop_table('answer')
    op.drop_index('ix_question_usage_competition_id', table_name='question_usage')
    op.drop_index('ix_question_usage_question_id', table_name='question_usage')
    op.drop_table('question_usage')
    op.drop_table('question')
