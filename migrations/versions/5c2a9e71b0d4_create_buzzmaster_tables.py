"""create buzzmaster tables

Revision ID: 5c2a9e71b0d4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e71b0d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('avatar_key', sa.String(length=16), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_external_id', 'user', ['external_id'], unique=True)

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=6), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)

    op.create_table(
        'room_membership',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'user_id', name='uq_room_membership_room_user'),
    )
    op.create_index('ix_room_membership_room_id', 'room_membership', ['room_id'])
    op.create_index('ix_room_membership_user_id', 'room_membership', ['user_id'])

    op.create_table(
        'competition',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_competition_room_id', 'competition', ['room_id'])

    op.create_table(
        'trophy',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_key', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'reward_player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='FOOTBALLER'),
        sa.Column('image_key', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'trophy_win',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('trophy_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('won_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['trophy_id'], ['trophy.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'trophy_id', name='uq_trophy_win_user_trophy'),
    )
    op.create_index('ix_trophy_win_user_id', 'trophy_win', ['user_id'])

    op.create_table(
        'user_player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('revealed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('acquired_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['player_id'], ['reward_player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'player_id', name='uq_user_player_user_player'),
    )
    op.create_index('ix_user_player_user_id', 'user_player', ['user_id'])

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('competition_id', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('buttons_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_timer', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timer_duration', sa.Integer(), nullable=True),
        sa.Column('timer_ends_at', sa.DateTime(), nullable=True),
        sa.Column('winner_user_id', sa.Integer(), nullable=True),
        sa.Column('trophy_id', sa.Integer(), nullable=True),
        sa.Column('player_trophy_id', sa.Integer(), nullable=True),
        sa.Column('thumb_game_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('thumb_game_starter_id', sa.Integer(), nullable=True),
        sa.Column('thumb_game_responders', sa.Text(), nullable=True),
        sa.Column('thumb_game_used_by', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['competition_id'], ['competition.id']),
        sa.ForeignKeyConstraint(['winner_user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['trophy_id'], ['trophy.id']),
        sa.ForeignKeyConstraint(['player_trophy_id'], ['reward_player.id']),
        sa.ForeignKeyConstraint(['thumb_game_starter_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_round_competition_id', 'round', ['competition_id'])

    op.create_table(
        'press',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('pressed_at', sa.DateTime(), nullable=False),
        sa.Column('timer_expires_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['round_id'], ['round.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('round_id', 'user_id', name='uq_press_round_user'),
    )
    op.create_index('ix_press_round_id', 'press', ['round_id'])

    op.create_table(
        'category_game',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('competition_id', sa.Integer(), nullable=False),
        sa.Column('category_name', sa.String(length=100), nullable=False),
        sa.Column('time_per_player', sa.Integer(), nullable=False),
        sa.Column('winner_points', sa.Integer(), nullable=False),
        sa.Column('turn_order', sa.Text(), nullable=False),
        sa.Column('eliminated_players', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('current_player_id', sa.Integer(), nullable=True),
        sa.Column('current_turn_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('is_paused', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('timer_started_at', sa.DateTime(), nullable=True),
        sa.Column('timer_paused_at', sa.DateTime(), nullable=True),
        sa.Column('paused_time_elapsed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('trophy_id', sa.Integer(), nullable=True),
        sa.Column('player_trophy_id', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['competition_id'], ['competition.id']),
        sa.ForeignKeyConstraint(['trophy_id'], ['trophy.id']),
        sa.ForeignKeyConstraint(['player_trophy_id'], ['reward_player.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_category_game_competition_id', 'category_game', ['competition_id'])

    op.create_table(
        'challenge',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('round_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='arkanoid'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('participants', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('alive', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('results', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('bets', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('config', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('ranking', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.ForeignKeyConstraint(['round_id'], ['round.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_challenge_room_id', 'challenge', ['room_id'])


def downgrade():
    op.drop_index('ix_challenge_room_id', table_name='challenge')
    op.drop_table('challenge')
    op.drop_index('ix_category_game_competition_id', table_name='category_game')
    op.drop_table('category_game')
    op.drop_index('ix_press_round_id', table_name='press')
    op.drop_table('press')
    op.drop_index('ix_round_competition_id', table_name='round')
    op.drop_table('round')
    op.drop_index('ix_user_player_user_id', table_name='user_player')
    op.drop_table('user_player')
    op.drop_index('ix_trophy_win_user_id', table_name='trophy_win')
    op.drop_table('trophy_win')
    op.drop_table('reward_player')
    op.drop_table('trophy')
    op.drop_index('ix_competition_room_id', table_name='competition')
    op.drop_table('competition')
    op.drop_index('ix_room_membership_user_id', table_name='room_membership')
    op.drop_index('ix_room_membership_room_id', table_name='room_membership')
    op.drop_table('room_membership')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
    op.drop_index('ix_user_external_id', table_name='user')
    op.drop_table('user')
