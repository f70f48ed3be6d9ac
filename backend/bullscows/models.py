from bullscows import db
from datetime import datetime, timezone
import random
import secrets
import uuid

# Unambiguous alphabet: no 0/O or 1/I
ROOM_CODE_CHARSET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 6
SPECTATOR_CODE_LENGTH = 8

ROOM_STATUSES = ('waiting_player', 'setting_secrets', 'active', 'finished')
GAME_STATUSES = ('waiting_secrets', 'active', 'finished')
SEATS = (1, 2)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def generate_room_code(length=ROOM_CODE_LENGTH):
    """Sample a room code; uniqueness is enforced by the insert."""
    return ''.join(random.choices(ROOM_CODE_CHARSET, k=length))


def generate_spectator_code(length=SPECTATOR_CODE_LENGTH):
    return ''.join(secrets.choice(ROOM_CODE_CHARSET) for _ in range(length))


class Room(db.Model):
    __tablename__ = 'rooms'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default='waiting_player')
    host_user_id = db.Column(db.String(64), nullable=False)
    spectator_code = db.Column(db.String(16), unique=True, nullable=False, default=generate_spectator_code)
    turn_seconds = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    # Shared music playback
    music_track_index = db.Column(db.Integer, nullable=False, default=0)
    music_is_playing = db.Column(db.Boolean, nullable=False, default=False)
    music_started_at = db.Column(db.DateTime, nullable=True)
    music_updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    players = db.relationship('RoomPlayer', back_populates='room', order_by='RoomPlayer.seat')
    games = db.relationship('Game', back_populates='room', lazy='dynamic')

    def is_expired(self, now=None) -> bool:
        return self.expires_at < (now or utcnow())

    def latest_game(self):
        return Game.query.filter_by(room_id=self.id).order_by(Game.round_no.desc()).first()

    def member(self, user_id):
        return RoomPlayer.query.filter_by(room_id=self.id, user_id=user_id).first()


class RoomPlayer(db.Model):
    __tablename__ = 'room_players'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'seat', name='uq_room_players_room_seat'),
        db.UniqueConstraint('room_id', 'user_id', name='uq_room_players_room_user'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    room_id = db.Column(db.String(36), db.ForeignKey('rooms.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    seat = db.Column(db.Integer, nullable=False)
    display_name = db.Column(db.String(64), nullable=False)
    is_online = db.Column(db.Boolean, nullable=False, default=True)
    last_seen_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    room = db.relationship('Room', back_populates='players')

    def online(self, stale_after_sec: int, now=None) -> bool:
        if not self.is_online:
            return False
        age = ((now or utcnow()) - self.last_seen_at).total_seconds()
        return age <= stale_after_sec


class Game(db.Model):
    __tablename__ = 'games'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'round_no', name='uq_games_room_round'),
    )
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    room_id = db.Column(db.String(36), db.ForeignKey('rooms.id'), nullable=False, index=True)
    round_no = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(32), nullable=False, default='waiting_secrets')
    turn_seat = db.Column(db.Integer, nullable=True)
    turn_deadline_at = db.Column(db.DateTime, nullable=True)
    winner_seat = db.Column(db.Integer, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    room = db.relationship('Room', back_populates='games')


class GameSecret(db.Model):
    __tablename__ = 'game_secrets'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'seat', name='uq_game_secrets_game_seat'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id'), nullable=False, index=True)
    seat = db.Column(db.Integer, nullable=False)
    secret = db.Column(db.String(4), nullable=True)
    is_set = db.Column(db.Boolean, nullable=False, default=False)
    set_at = db.Column(db.DateTime, nullable=True)


class Guess(db.Model):
    __tablename__ = 'guesses'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'turn_no', name='uq_guesses_game_turn'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id'), nullable=False, index=True)
    turn_no = db.Column(db.Integer, nullable=False)
    guesser_seat = db.Column(db.Integer, nullable=False)
    guess = db.Column(db.String(4), nullable=False)
    bulls = db.Column(db.Integer, nullable=False)
    cows = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'turnNo': self.turn_no,
            'guesserSeat': self.guesser_seat,
            'guess': self.guess,
            'bulls': self.bulls,
            'cows': self.cows,
            'createdAt': isoformat(self.created_at),
        }


class RematchVote(db.Model):
    __tablename__ = 'rematch_votes'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'seat', name='uq_rematch_votes_game_seat'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id'), nullable=False, index=True)
    seat = db.Column(db.Integer, nullable=False)
    voted = db.Column(db.Boolean, nullable=False, default=False)
    voted_at = db.Column(db.DateTime, nullable=True)


class RoomMessage(db.Model):
    __tablename__ = 'room_messages'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    room_id = db.Column(db.String(36), db.ForeignKey('rooms.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(64), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'author': self.display_name,
            'text': self.message,
            'createdAt': isoformat(self.created_at),
        }


class RoomEvent(db.Model):
    __tablename__ = 'room_events'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(36), db.ForeignKey('rooms.id'), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
