from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bullscows import db
from bullscows.errors import GameError
from bullscows.models import (
    SEATS, Game, GameSecret, Guess, RematchVote, Room, RoomEvent, RoomMessage, RoomPlayer,
    generate_room_code, isoformat, utcnow,
)
from bullscows.services.events import publish_event
from bullscows.services.games.engine import create_round
from bullscows.validators import (
    ensure_chat_message, ensure_display_name, ensure_music_action, ensure_turn_seconds,
    normalize_room_code, normalize_track_index,
)


def load_room(room_code, check_expiry: bool = True) -> Room:
    code = normalize_room_code(room_code)
    room = Room.query.filter_by(code=code).first()
    if not room:
        raise GameError(404, 'ROOM_NOT_FOUND', 'Room not found.')
    if check_expiry and room.is_expired():
        raise GameError(410, 'ROOM_EXPIRED', 'This room has expired.')
    return room


def require_member(room: Room, user_id: str, message: str = 'You are not a member of this room.') -> RoomPlayer:
    member = room.member(user_id)
    if not member:
        raise GameError(403, 'FORBIDDEN', message)
    return member


def touch_presence(room_id: str, user_id: str, display_name: Optional[str] = None) -> int:
    changes = {'is_online': True, 'last_seen_at': utcnow()}
    if display_name:
        changes['display_name'] = display_name
    matched = RoomPlayer.query.filter_by(room_id=room_id, user_id=user_id).update(
        changes, synchronize_session=False
    )
    db.session.commit()
    return matched


def create_room(user_id: str, display_name) -> dict:
    display_name = ensure_display_name(display_name)
    cfg = current_app.config
    attempts = int(cfg.get('ROOM_CODE_ATTEMPTS', 8))
    ttl = timedelta(hours=int(cfg.get('ROOM_TTL_HOURS', 24)))

    room = None
    for attempt in range(attempts):
        now = utcnow()
        candidate = Room(
            code=generate_room_code(),
            status='waiting_player',
            host_user_id=user_id,
            created_at=now,
            expires_at=now + ttl,
            music_updated_at=now,
        )
        db.session.add(candidate)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f"[room-code-collision] attempt={attempt + 1}")
            continue
        room = candidate
        break

    if room is None:
        raise GameError(500, 'ROOM_CREATE_FAILED', 'Could not create a room. Please try again.')

    db.session.add(RoomPlayer(
        room_id=room.id,
        user_id=user_id,
        display_name=display_name,
        seat=1,
        is_online=True,
        last_seen_at=utcnow(),
    ))
    db.session.commit()
    current_app.logger.info(f"[room-create] room={room.id} code={room.code} host={user_id}")
    publish_event(room, 'player_joined', {'seat': 1})
    return {'roomCode': room.code, 'roomId': room.id, 'seat': 1}


def _open_first_round(room: Room) -> None:
    # Two joins can both see "no game yet"; the unique (room, round_no) decides.
    if room.latest_game() is None:
        create_round(room, 1)
    Room.query.filter_by(id=room.id, status='waiting_player').update(
        {'status': 'setting_secrets'}, synchronize_session=False
    )
    db.session.commit()


def join_room(user_id: str, display_name, room_code) -> dict:
    display_name = ensure_display_name(display_name)
    room = load_room(room_code)

    existing = room.member(user_id)
    if existing:
        touch_presence(room.id, user_id, display_name)
        return {'roomId': room.id, 'seat': existing.seat}

    seat = None
    for _ in range(2):
        taken = {p.seat for p in RoomPlayer.query.filter_by(room_id=room.id).all()}
        if len(taken) >= len(SEATS):
            raise GameError(409, 'ROOM_FULL', 'This room is already full.')
        candidate_seat = 2 if 1 in taken else 1
        db.session.add(RoomPlayer(
            room_id=room.id,
            user_id=user_id,
            display_name=display_name,
            seat=candidate_seat,
            is_online=True,
            last_seen_at=utcnow(),
        ))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = room.member(user_id)
            if existing:
                return {'roomId': room.id, 'seat': existing.seat}
            continue
        seat = candidate_seat
        break
    if seat is None:
        raise GameError(409, 'ROOM_FULL', 'This room is already full.')

    current_app.logger.info(f"[room-join] room={room.id} user={user_id} seat={seat}")
    publish_event(room, 'player_joined', {'seat': seat})

    if RoomPlayer.query.filter_by(room_id=room.id).count() == len(SEATS):
        _open_first_round(room)

    return {'roomId': room.id, 'seat': seat}


def heartbeat(user_id: str, room_code) -> dict:
    room = load_room(room_code, check_expiry=False)
    require_member(room, user_id)
    touch_presence(room.id, user_id)
    return {'ok': True}


def update_settings(user_id: str, room_code, turn_seconds) -> dict:
    turn_seconds = ensure_turn_seconds(turn_seconds)
    room = load_room(room_code, check_expiry=False)
    if room.host_user_id != user_id:
        raise GameError(403, 'FORBIDDEN', 'Only the host can change room settings.')
    if room.status == 'active':
        raise GameError(409, 'GAME_ALREADY_ACTIVE', 'The timer cannot change during an active game.')

    # A round may have activated since the read above
    matched = Room.query.filter(Room.id == room.id, Room.status != 'active').update(
        {'turn_seconds': turn_seconds}, synchronize_session=False
    )
    if matched != 1:
        db.session.rollback()
        raise GameError(409, 'GAME_ALREADY_ACTIVE', 'The timer cannot change during an active game.')
    db.session.commit()
    current_app.logger.info(f"[settings] room={room.id} turn_seconds={turn_seconds}")
    publish_event(room, 'settings_updated', {'turnSeconds': turn_seconds})
    return {'ok': True, 'settings': {'turnSeconds': turn_seconds}}


def post_chat_message(user_id: str, room_code, message) -> dict:
    message = ensure_chat_message(message)
    room = load_room(room_code, check_expiry=False)
    member = require_member(room, user_id, 'Only room members can chat.')

    entry = RoomMessage(
        room_id=room.id,
        user_id=user_id,
        display_name=member.display_name,
        message=message,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.commit()
    publish_event(room, 'chat_message', {'id': entry.id, 'author': entry.display_name})
    return entry.to_dict()


def music_track_count() -> int:
    return len(current_app.config.get('SHARED_MUSIC_TRACKS', ())) or 1


def update_music(room_code, action, user_id: Optional[str] = None, spectator_key: Optional[str] = None) -> dict:
    """Advance or toggle the shared track. Members and spectator-key holders may control it."""
    action = ensure_music_action(action)
    room = load_room(room_code, check_expiry=False)

    actor = None
    if user_id and room.member(user_id):
        actor = 'player'
    elif spectator_key and spectator_key.strip().upper() == room.spectator_code:
        actor = 'spectator'
    if not actor:
        raise GameError(403, 'FORBIDDEN', 'Only room members or spectators can control the music.')

    track_count = music_track_count()
    track_index = normalize_track_index(room.music_track_index, track_count)
    now = utcnow()
    if action == 'next':
        track_index = normalize_track_index(track_index + 1, track_count)
        is_playing = True
        started_at = now
    else:
        is_playing = not room.music_is_playing
        started_at = now if is_playing else None

    room.music_track_index = track_index
    room.music_is_playing = is_playing
    room.music_started_at = started_at
    room.music_updated_at = now
    db.session.add(room)
    db.session.commit()
    publish_event(room, 'music_updated', {
        'action': action,
        'actor': actor,
        'trackIndex': track_index,
        'isPlaying': is_playing,
    })
    return {
        'ok': True,
        'music': {
            'trackIndex': track_index,
            'isPlaying': is_playing,
            'startedAt': isoformat(started_at),
            'updatedAt': isoformat(now),
        },
    }


def purge_expired_rooms(now=None) -> int:
    """Delete rooms past their TTL together with everything that hangs off them."""
    expired = Room.query.filter(Room.expires_at < (now or utcnow())).all()
    for room in expired:
        game_ids = [g.id for g in Game.query.filter_by(room_id=room.id).all()]
        if game_ids:
            for model in (Guess, GameSecret, RematchVote):
                model.query.filter(model.game_id.in_(game_ids)).delete(synchronize_session=False)
            Game.query.filter_by(room_id=room.id).delete(synchronize_session=False)
        for model in (RoomMessage, RoomEvent, RoomPlayer):
            model.query.filter_by(room_id=room.id).delete(synchronize_session=False)
        current_app.logger.info(f"[room-purge] room={room.id} code={room.code}")
        Room.query.filter_by(id=room.id).delete(synchronize_session=False)
    db.session.commit()
    return len(expired)
