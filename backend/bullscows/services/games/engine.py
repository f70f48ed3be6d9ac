import random
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bullscows import db
from bullscows.errors import GameError
from bullscows.models import SEATS, Game, GameSecret, Guess, Room, RoomPlayer, utcnow
from bullscows.services.events import publish_event
from bullscows.validators import ensure_four_digits_no_repeats
from .clock import apply_timeout_if_expired, compute_deadline, deadline_passed
from .rules import bulls_and_cows, flip_seat, is_win


def get_game_or_404(game_id: str) -> Game:
    game = Game.query.filter_by(id=game_id).first()
    if not game:
        raise GameError(404, 'GAME_NOT_FOUND', 'Game not found.')
    return game


def get_room_for_game(game: Game) -> Room:
    room = Room.query.filter_by(id=game.room_id).first()
    if not room:
        raise GameError(404, 'ROOM_NOT_FOUND', 'Room not found.')
    return room


def require_seat(room_id: str, user_id: str) -> int:
    membership = RoomPlayer.query.filter_by(room_id=room_id, user_id=user_id).first()
    if not membership:
        raise GameError(403, 'FORBIDDEN', 'You are not a player in this game.')
    return membership.seat


def create_round(room: Room, round_no: int) -> Optional[Game]:
    """Insert a new round with two unset secrets.

    Returns None when the (room, round_no) slot is already taken, i.e. a
    concurrent caller created this round first.
    """
    game = Game(room_id=room.id, round_no=round_no, status='waiting_secrets')
    db.session.add(game)
    try:
        db.session.flush()
        for seat in SEATS:
            db.session.add(GameSecret(game_id=game.id, seat=seat, is_set=False))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"[round-exists] room={room.id} round={round_no} created by another caller")
        return None
    current_app.logger.info(f"[round-create] room={room.id} game={game.id} round={round_no}")
    return game


def _store_secret(game: Game, seat: int, secret: str) -> None:
    now = utcnow()
    # Only while the round still waits for secrets; a secret never changes mid-play
    still_waiting = db.select(Game.id).where(Game.id == game.id, Game.status == 'waiting_secrets')
    matched = GameSecret.query.filter(
        GameSecret.game_id == game.id,
        GameSecret.seat == seat,
        GameSecret.game_id.in_(still_waiting),
    ).update({'secret': secret, 'is_set': True, 'set_at': now}, synchronize_session=False)
    if matched == 1:
        db.session.commit()
        return

    db.session.rollback()
    current = Game.query.filter_by(id=game.id).first()
    if not current or current.status != 'waiting_secrets':
        raise GameError(409, 'GAME_ALREADY_STARTED', 'Secrets are already locked in.')
    try:
        db.session.add(GameSecret(game_id=game.id, seat=seat, secret=secret, is_set=True, set_at=now))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise GameError(409, 'GAME_STATE_CONFLICT', 'The game changed. Refresh and try again.')


def _activate_if_ready(game: Game, room: Room) -> bool:
    """Start the round once both secrets are set. Exactly one caller wins the transition."""
    set_count = GameSecret.query.filter_by(game_id=game.id, is_set=True).count()
    if set_count < len(SEATS):
        return False

    now = utcnow()
    first_seat = random.choice(SEATS)
    matched = Game.query.filter_by(id=game.id, status='waiting_secrets').update({
        'status': 'active',
        'turn_seat': first_seat,
        'turn_deadline_at': compute_deadline(room.turn_seconds, now),
        'started_at': now,
    }, synchronize_session=False)
    if matched != 1:
        db.session.rollback()
        current_app.logger.info(f"[game-activate-lost] game={game.id} already activated")
        return False

    Room.query.filter_by(id=room.id).update({'status': 'active'}, synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[game-activate] game={game.id} first_seat={first_seat} turn_seconds={room.turn_seconds}")
    return True


def submit_secret(user_id: str, game_id: str, secret) -> dict:
    secret = ensure_four_digits_no_repeats(secret, 'INVALID_SECRET')
    game = get_game_or_404(game_id)
    if game.status != 'waiting_secrets':
        raise GameError(409, 'GAME_ALREADY_STARTED', 'Secrets are already locked in.')
    seat = require_seat(game.room_id, user_id)
    room = get_room_for_game(game)

    _store_secret(game, seat, secret)
    current_app.logger.info(f"[secret-set] game={game.id} seat={seat}")
    publish_event(room, 'secret_set', {'gameId': game.id, 'seat': seat})

    _activate_if_ready(game, room)
    current = Game.query.filter_by(id=game.id).first()
    return {'ok': True, 'gameStatus': current.status}


def next_turn_number(game_id: str) -> int:
    latest = db.session.query(db.func.max(Guess.turn_no)).filter(Guess.game_id == game_id).scalar()
    return (latest or 0) + 1


def submit_guess(user_id: str, game_id: str, guess) -> dict:
    guess = ensure_four_digits_no_repeats(guess, 'INVALID_GUESS')
    game = get_game_or_404(game_id)
    if game.status != 'active':
        raise GameError(409, 'GAME_NOT_ACTIVE', 'The game is not in play.')
    room = get_room_for_game(game)

    if room.turn_seconds > 0:
        apply_timeout_if_expired(room.code)
        db.session.expire_all()
        game = Game.query.filter_by(id=game_id).first()
        if not game or game.status != 'active':
            raise GameError(409, 'GAME_NOT_ACTIVE', 'The game changed. Refresh the page.')

    seat = require_seat(game.room_id, user_id)
    if game.turn_seat != seat:
        raise GameError(409, 'NOT_YOUR_TURN', "It is your opponent's turn.")
    if room.turn_seconds > 0 and deadline_passed(game.turn_deadline_at):
        raise GameError(409, 'TURN_EXPIRED', 'Your time is up; the turn passed to your opponent.')

    opponent_secret = GameSecret.query.filter(
        GameSecret.game_id == game.id,
        GameSecret.seat != seat,
        GameSecret.is_set.is_(True),
    ).first()
    if not opponent_secret:
        raise GameError(409, 'SECRET_NOT_READY', 'Your opponent has not set a secret yet.')

    bulls, cows = bulls_and_cows(opponent_secret.secret, guess)
    turn_no = next_turn_number(game.id)
    now = utcnow()
    db.session.add(Guess(
        game_id=game.id,
        turn_no=turn_no,
        guesser_seat=seat,
        guess=guess,
        bulls=bulls,
        cows=cows,
        created_at=now,
    ))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"[turn-duplicate] game={game.id} turn={turn_no} seat={seat}")
        raise GameError(409, 'TURN_ALREADY_PROCESSED', 'This turn was already processed.')

    won = is_win(bulls)
    next_seat = None if won else flip_seat(seat)
    if won:
        changes = {
            'status': 'finished',
            'winner_seat': seat,
            'turn_seat': None,
            'turn_deadline_at': None,
            'ended_at': now,
        }
    else:
        changes = {
            'turn_seat': next_seat,
            'turn_deadline_at': compute_deadline(room.turn_seconds, now),
        }
    matched = Game.query.filter_by(id=game.id, status='active', turn_seat=seat).update(
        changes, synchronize_session=False
    )
    if matched != 1:
        db.session.rollback()
        current_app.logger.info(f"[turn-conflict] game={game.id} turn={turn_no} seat={seat}")
        raise GameError(409, 'GAME_STATE_CONFLICT', 'The game changed. Refresh the page.')
    if won:
        Room.query.filter_by(id=room.id).update({'status': 'finished'}, synchronize_session=False)
    db.session.commit()

    current_app.logger.info(f"[turn] game={game.id} turn={turn_no} seat={seat} bulls={bulls} cows={cows}")
    publish_event(room, 'turn_made', {
        'gameId': game.id,
        'turnNo': turn_no,
        'seat': seat,
        'bulls': bulls,
        'cows': cows,
    })
    if won:
        current_app.logger.info(f"[game-finish] game={game.id} winner_seat={seat} turns={turn_no}")
        publish_event(room, 'game_finished', {'gameId': game.id, 'winnerSeat': seat})

    return {'bulls': bulls, 'cows': cows, 'isWin': won, 'nextTurnSeat': next_seat}
