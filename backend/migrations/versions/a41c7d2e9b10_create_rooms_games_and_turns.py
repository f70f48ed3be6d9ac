"""create rooms, room players, games, secrets, guesses, rematch votes, chat and events

Revision ID: a41c7d2e9b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a41c7d2e9b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'rooms' not in existing_tables:
        op.create_table(
            'rooms',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('code', sa.String(length=6), nullable=False),
            sa.Column('status', sa.String(length=32), nullable=False),
            sa.Column('host_user_id', sa.String(length=64), nullable=False),
            sa.Column('spectator_code', sa.String(length=16), nullable=False),
            sa.Column('turn_seconds', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('music_track_index', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('music_is_playing', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('music_started_at', sa.DateTime(), nullable=True),
            sa.Column('music_updated_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('spectator_code'),
        )
        op.create_index('ix_rooms_code', 'rooms', ['code'], unique=True)

    if 'room_players' not in existing_tables:
        op.create_table(
            'room_players',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('room_id', sa.String(length=36), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('seat', sa.Integer(), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('last_seen_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('room_id', 'seat', name='uq_room_players_room_seat'),
            sa.UniqueConstraint('room_id', 'user_id', name='uq_room_players_room_user'),
        )
        op.create_index('ix_room_players_room_id', 'room_players', ['room_id'])

    if 'games' not in existing_tables:
        op.create_table(
            'games',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('room_id', sa.String(length=36), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('round_no', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=32), nullable=False),
            sa.Column('turn_seat', sa.Integer(), nullable=True),
            sa.Column('turn_deadline_at', sa.DateTime(), nullable=True),
            sa.Column('winner_seat', sa.Integer(), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('ended_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('room_id', 'round_no', name='uq_games_room_round'),
        )
        op.create_index('ix_games_room_id', 'games', ['room_id'])

    if 'game_secrets' not in existing_tables:
        op.create_table(
            'game_secrets',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id'), nullable=False),
            sa.Column('seat', sa.Integer(), nullable=False),
            sa.Column('secret', sa.String(length=4), nullable=True),
            sa.Column('is_set', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('set_at', sa.DateTime(), nullable=True),
            sa.UniqueConstraint('game_id', 'seat', name='uq_game_secrets_game_seat'),
        )
        op.create_index('ix_game_secrets_game_id', 'game_secrets', ['game_id'])

    if 'guesses' not in existing_tables:
        op.create_table(
            'guesses',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id'), nullable=False),
            sa.Column('turn_no', sa.Integer(), nullable=False),
            sa.Column('guesser_seat', sa.Integer(), nullable=False),
            sa.Column('guess', sa.String(length=4), nullable=False),
            sa.Column('bulls', sa.Integer(), nullable=False),
            sa.Column('cows', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('game_id', 'turn_no', name='uq_guesses_game_turn'),
        )
        op.create_index('ix_guesses_game_id', 'guesses', ['game_id'])

    if 'rematch_votes' not in existing_tables:
        op.create_table(
            'rematch_votes',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('game_id', sa.String(length=36), sa.ForeignKey('games.id'), nullable=False),
            sa.Column('seat', sa.Integer(), nullable=False),
            sa.Column('voted', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('voted_at', sa.DateTime(), nullable=True),
            sa.UniqueConstraint('game_id', 'seat', name='uq_rematch_votes_game_seat'),
        )
        op.create_index('ix_rematch_votes_game_id', 'rematch_votes', ['game_id'])

    if 'room_messages' not in existing_tables:
        op.create_table(
            'room_messages',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('room_id', sa.String(length=36), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_room_messages_room_id', 'room_messages', ['room_id'])

    if 'room_events' not in existing_tables:
        op.create_table(
            'room_events',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_id', sa.String(length=36), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('type', sa.String(length=32), nullable=False),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_room_events_room_id', 'room_events', ['room_id'])


def downgrade():
    # Children before parents
    for table in ('room_events', 'room_messages', 'rematch_votes', 'guesses', 'game_secrets', 'games', 'room_players', 'rooms'):
        op.drop_table(table)
