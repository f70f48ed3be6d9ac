from flask import current_app
from sqlalchemy.exc import IntegrityError

from bullscows import db
from bullscows.errors import GameError
from bullscows.models import Game, RematchVote, Room, utcnow
from bullscows.services.events import publish_event
from .engine import create_round, get_game_or_404, get_room_for_game, require_seat


def vote_tally(game_id: str) -> dict:
    votes = {v.seat: bool(v.voted) for v in RematchVote.query.filter_by(game_id=game_id).all()}
    return {'seat1': votes.get(1, False), 'seat2': votes.get(2, False)}


def _record_vote(game: Game, seat: int) -> None:
    now = utcnow()
    matched = RematchVote.query.filter_by(game_id=game.id, seat=seat).update(
        {'voted': True, 'voted_at': now}, synchronize_session=False
    )
    if matched:
        db.session.commit()
        return
    try:
        db.session.add(RematchVote(game_id=game.id, seat=seat, voted=True, voted_at=now))
        db.session.commit()
    except IntegrityError:
        # Same seat voted twice at once; the other insert already holds voted=True
        db.session.rollback()


def vote_rematch(user_id: str, game_id: str) -> dict:
    """Record a rematch vote and open the next round once both seats agree.

    The next round is created at most once: a newer round already present, or
    a unique-constraint clash on (room, round_no), both mean another voter
    started it and count as success.
    """
    game = get_game_or_404(game_id)
    if game.status != 'finished':
        raise GameError(409, 'GAME_NOT_FINISHED', 'A rematch is only available after the game ends.')
    seat = require_seat(game.room_id, user_id)
    room = get_room_for_game(game)

    _record_vote(game, seat)
    votes = vote_tally(game.id)

    if not (votes['seat1'] and votes['seat2']):
        current_app.logger.info(f"[rematch-vote] game={game.id} seat={seat}")
        publish_event(room, 'rematch_requested', {'gameId': game.id, 'seat': seat})
        return {'votes': votes, 'rematchStarted': False}

    latest = room.latest_game()
    if latest and latest.round_no > game.round_no:
        return {'votes': votes, 'rematchStarted': True}

    next_game = create_round(room, game.round_no + 1)
    if next_game is None:
        return {'votes': votes, 'rematchStarted': True}

    Room.query.filter_by(id=room.id).update({'status': 'setting_secrets'}, synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[rematch-start] room={room.id} from={game.id} to={next_game.id} round={next_game.round_no}")
    publish_event(room, 'rematch_started', {'fromGameId': game.id, 'toGameId': next_game.id})
    return {'votes': votes, 'rematchStarted': True}
