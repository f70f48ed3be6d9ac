from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from bullscows import db
from bullscows.models import Game, Room, utcnow
from bullscows.services.events import publish_event
from .rules import flip_seat


def compute_deadline(turn_seconds: int, now: Optional[datetime] = None) -> Optional[datetime]:
    """Deadline for a turn starting now, or None when the room is untimed."""
    if not turn_seconds or turn_seconds <= 0:
        return None
    return (now or utcnow()) + timedelta(seconds=turn_seconds)


def deadline_passed(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return deadline is not None and deadline <= (now or utcnow())


def apply_timeout_if_expired(room_code: str) -> bool:
    """Hand the turn to the opponent if the current turn's deadline has passed.

    There is no background timer: every read or guess touching the room calls
    this first. The update is guarded on the expired seat and deadline value,
    so concurrent callers expire a given turn at most once.
    """
    room = Room.query.filter_by(code=room_code.upper()).first()
    if not room or not room.turn_seconds:
        return False

    game = room.latest_game()
    if not game or game.status != 'active' or not game.turn_seat or not game.turn_deadline_at:
        return False

    now = utcnow()
    if not deadline_passed(game.turn_deadline_at, now):
        return False

    expired_seat = game.turn_seat
    expired_deadline = game.turn_deadline_at
    next_seat = flip_seat(expired_seat)
    matched = Game.query.filter_by(
        id=game.id,
        status='active',
        turn_seat=expired_seat,
        turn_deadline_at=expired_deadline,
    ).update({
        'turn_seat': next_seat,
        'turn_deadline_at': compute_deadline(room.turn_seconds, now),
    }, synchronize_session=False)
    db.session.commit()

    if matched != 1:
        current_app.logger.info(f"[turn-timeout-lost] game={game.id} seat={expired_seat} already expired by another caller")
        return False

    current_app.logger.info(f"[turn-timeout] game={game.id} expired_seat={expired_seat} next_seat={next_seat}")
    publish_event(room, 'turn_timeout', {
        'gameId': game.id,
        'expiredSeat': expired_seat,
        'nextTurnSeat': next_seat,
    })
    return True
