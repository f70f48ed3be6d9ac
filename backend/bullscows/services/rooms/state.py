from typing import Optional

from flask import current_app

from bullscows import db
from bullscows.errors import GameError
from bullscows.models import (
    Game, GameSecret, Guess, Room, RoomMessage, RoomPlayer, isoformat, utcnow,
)
from bullscows.services.games.clock import apply_timeout_if_expired
from bullscows.services.games.rematch import vote_tally
from bullscows.validators import normalize_track_index
from .lifecycle import load_room, music_track_count


def spectator_path(room: Room) -> str:
    return f"/watch/{room.code}?key={room.spectator_code}"


def load_chat(room_id: str) -> list:
    limit = int(current_app.config.get('CHAT_TAIL_SIZE', 50))
    newest_first = (
        RoomMessage.query.filter_by(room_id=room_id)
        .order_by(RoomMessage.created_at.desc(), RoomMessage.id.desc())
        .limit(limit)
        .all()
    )
    return [m.to_dict() for m in reversed(newest_first)]


def load_stats(room_id: str) -> dict:
    """Win counts per seat and average turns over the room's finished rounds."""
    finished = Game.query.filter_by(room_id=room_id, status='finished').all()
    if not finished:
        return {'seat1Wins': 0, 'seat2Wins': 0, 'finishedRounds': 0, 'avgTurns': 0}

    game_ids = [g.id for g in finished]
    max_turns = dict(
        db.session.query(Guess.game_id, db.func.max(Guess.turn_no))
        .filter(Guess.game_id.in_(game_ids))
        .group_by(Guess.game_id)
        .all()
    )
    total_turns = sum(max_turns.get(gid, 0) for gid in game_ids)
    return {
        'seat1Wins': sum(1 for g in finished if g.winner_seat == 1),
        'seat2Wins': sum(1 for g in finished if g.winner_seat == 2),
        'finishedRounds': len(finished),
        'avgTurns': round(total_turns / len(finished), 1),
    }


def build_music_state(room: Room) -> dict:
    tracks = [
        {'id': f"builtin-{i + 1}", 'title': title, 'src': src, 'source': 'builtin'}
        for i, (title, src) in enumerate(current_app.config.get('SHARED_MUSIC_TRACKS', ()))
    ]
    return {
        'trackIndex': normalize_track_index(room.music_track_index, music_track_count()),
        'isPlaying': room.music_is_playing,
        'startedAt': isoformat(room.music_started_at),
        'updatedAt': isoformat(room.music_updated_at),
        'tracks': tracks,
    }


def project_game(game: Game, viewer_seat: Optional[int]) -> dict:
    """Latest round as seen by one viewer.

    A player sees their own secret value and only whether the opponent has
    set one. Spectators (no seat) see neither secret.
    """
    my_secret_set = False
    my_secret = None
    opponent_secret_set = False
    if viewer_seat:
        for entry in GameSecret.query.filter_by(game_id=game.id).all():
            if entry.seat == viewer_seat:
                my_secret_set = bool(entry.is_set)
                my_secret = entry.secret
            else:
                opponent_secret_set = bool(entry.is_set)

    history = Guess.query.filter_by(game_id=game.id).order_by(Guess.turn_no.asc()).all()
    return {
        'id': game.id,
        'roundNo': game.round_no,
        'status': game.status,
        'turnSeat': game.turn_seat,
        'turnDeadlineAt': isoformat(game.turn_deadline_at),
        'winnerSeat': game.winner_seat,
        'mySeat': viewer_seat,
        'mySecretSet': my_secret_set,
        'mySecret': my_secret,
        'opponentSecretSet': opponent_secret_set,
        'history': [g.to_dict() for g in history],
        'rematchVotes': vote_tally(game.id),
    }


def build_viewer_state(room: Room, viewer_seat: Optional[int], role: str, is_host: bool) -> dict:
    stale_after = int(current_app.config.get('HEARTBEAT_STALE_SEC', 45))
    now = utcnow()
    players = RoomPlayer.query.filter_by(room_id=room.id).order_by(RoomPlayer.seat.asc()).all()
    latest = room.latest_game()
    return {
        'roomId': room.id,
        'roomCode': room.code,
        'status': room.status,
        'viewerRole': role,
        'settings': {
            'turnSeconds': room.turn_seconds,
            'isHost': is_host,
            'music': build_music_state(room),
        },
        'spectatorPath': spectator_path(room) if role == 'player' else None,
        'players': [
            {'seat': p.seat, 'name': p.display_name, 'online': p.online(stale_after, now)}
            for p in players
        ],
        'chat': load_chat(room.id),
        'stats': load_stats(room.id),
        'game': project_game(latest, viewer_seat) if latest else None,
    }


def build_player_state(room_code, user_id: str) -> dict:
    room = load_room(room_code)
    member = room.member(user_id)
    if not member:
        raise GameError(403, 'FORBIDDEN', 'You are not a member of this room.')
    return build_viewer_state(room, member.seat, 'player', room.host_user_id == user_id)


def build_spectator_state(room_code, spectator_key) -> dict:
    room = load_room(room_code)
    key = spectator_key.strip().upper() if isinstance(spectator_key, str) else ''
    if not key or key != room.spectator_code:
        raise GameError(403, 'INVALID_SPECTATOR_KEY', 'Invalid spectator link.')
    # Only a valid key may trigger the lazy turn expiry
    apply_timeout_if_expired(room.code)
    return build_viewer_state(room, None, 'spectator', False)
