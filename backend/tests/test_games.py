from bullscows import db
from bullscows.models import Game, GameSecret, Guess, Room, RoomEvent


def _guess(client, game, seat, guess):
    return client.post(f"/api/games/{game['game_id']}/guess", json={'guess': guess}, headers=game['headers'][seat])


def test_secrets_activate_game(client, seated_room):
    gid = seated_room['game_id']
    res = client.post(f'/api/games/{gid}/secret', json={'secret': '1234'}, headers=seated_room['headers'][1])
    assert res.status_code == 200
    assert res.get_json() == {'ok': True, 'gameStatus': 'waiting_secrets'}

    res = client.post(f'/api/games/{gid}/secret', json={'secret': '5678'}, headers=seated_room['headers'][2])
    assert res.get_json() == {'ok': True, 'gameStatus': 'active'}

    game = db.session.get(Game, gid)
    assert game.status == 'active'
    assert game.turn_seat in (1, 2)
    assert game.turn_deadline_at is None
    assert game.started_at is not None
    assert Room.query.filter_by(id=seated_room['room_id']).first().status == 'active'
    assert RoomEvent.query.filter_by(room_id=seated_room['room_id'], type='secret_set').count() == 2


def test_secret_can_be_replaced_before_activation(client, seated_room):
    gid = seated_room['game_id']
    client.post(f'/api/games/{gid}/secret', json={'secret': '1234'}, headers=seated_room['headers'][1])
    client.post(f'/api/games/{gid}/secret', json={'secret': '9876'}, headers=seated_room['headers'][1])
    secret = GameSecret.query.filter_by(game_id=gid, seat=1).first()
    assert secret.secret == '9876'
    assert secret.is_set is True
    assert db.session.get(Game, gid).status == 'waiting_secrets'


def test_secret_rejected_after_activation(client, active_game):
    res = client.post(f"/api/games/{active_game['game_id']}/secret", json={'secret': '4321'}, headers=active_game['headers'][1])
    assert res.status_code == 409
    assert res.get_json()['code'] == 'GAME_ALREADY_STARTED'
    assert GameSecret.query.filter_by(game_id=active_game['game_id'], seat=1).first().secret == '1234'


def test_secret_validation_and_membership(client, seated_room, new_user):
    gid = seated_room['game_id']
    res = client.post(f'/api/games/{gid}/secret', json={'secret': '1123'}, headers=seated_room['headers'][1])
    assert res.status_code == 400
    assert res.get_json()['code'] == 'INVALID_SECRET'

    _, outsider = new_user()
    res = client.post(f'/api/games/{gid}/secret', json={'secret': '1234'}, headers=outsider)
    assert res.status_code == 403
    assert res.get_json()['code'] == 'FORBIDDEN'

    res = client.post('/api/games/missing/secret', json={'secret': '1234'}, headers=outsider)
    assert res.status_code == 404
    assert res.get_json()['code'] == 'GAME_NOT_FOUND'


def test_racing_second_secret_activates_once(flask_app, client, seated_room, monkeypatch):
    """Both secrets are set and two callers try to start the round."""
    from bullscows.services.games import engine
    gid = seated_room['game_id']
    client.post(f'/api/games/{gid}/secret', json={'secret': '1234'}, headers=seated_room['headers'][1])
    client.post(f'/api/games/{gid}/secret', json={'secret': '5678'}, headers=seated_room['headers'][2])
    first = db.session.get(Game, gid)
    started = (first.turn_seat, first.started_at)

    # The losing observer replays the activation after the winner committed
    game = db.session.get(Game, gid)
    room = Room.query.filter_by(id=seated_room['room_id']).first()
    assert engine._activate_if_ready(game, room) is False

    db.session.expire_all()
    after = db.session.get(Game, gid)
    assert after.status == 'active'
    assert (after.turn_seat, after.started_at) == started
    assert after.winner_seat is None


def test_guess_out_of_turn(client, active_game):
    waiting = 2 if active_game['turn_seat'] == 1 else 1
    res = _guess(client, active_game, waiting, '1234')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'NOT_YOUR_TURN'
    assert Guess.query.filter_by(game_id=active_game['game_id']).count() == 0


def test_guess_scores_and_passes_turn(client, active_game):
    seat = active_game['turn_seat']
    opponent = 2 if seat == 1 else 1
    opponent_secret = active_game['secrets'][opponent]
    # Rotate the opponent's secret: all four digits right, none in place
    guess = opponent_secret[1:] + opponent_secret[0]

    res = _guess(client, active_game, seat, guess)
    assert res.status_code == 200
    assert res.get_json() == {'bulls': 0, 'cows': 4, 'isWin': False, 'nextTurnSeat': opponent}

    game = db.session.get(Game, active_game['game_id'])
    assert game.turn_seat == opponent
    row = Guess.query.filter_by(game_id=game.id).one()
    assert (row.turn_no, row.guesser_seat, row.guess) == (1, seat, guess)

    res = _guess(client, active_game, opponent, '9012')
    assert res.status_code == 200
    assert [g.turn_no for g in Guess.query.filter_by(game_id=game.id).order_by(Guess.turn_no)] == [1, 2]


def test_invalid_guess(client, active_game):
    res = _guess(client, active_game, active_game['turn_seat'], '112')
    assert res.status_code == 400
    assert res.get_json()['code'] == 'INVALID_GUESS'


def test_winning_guess_finishes_game(client, active_game):
    seat = active_game['turn_seat']
    opponent = 2 if seat == 1 else 1
    res = _guess(client, active_game, seat, active_game['secrets'][opponent])
    assert res.get_json() == {'bulls': 4, 'cows': 0, 'isWin': True, 'nextTurnSeat': None}

    game = db.session.get(Game, active_game['game_id'])
    assert game.status == 'finished'
    assert game.winner_seat == seat
    assert game.turn_seat is None
    assert game.ended_at is not None
    assert Room.query.filter_by(id=active_game['room_id']).first().status == 'finished'
    assert RoomEvent.query.filter_by(room_id=active_game['room_id'], type='game_finished').count() == 1

    res = _guess(client, active_game, opponent, '1234')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'GAME_NOT_ACTIVE'


def test_retried_turn_is_already_processed(client, active_game, monkeypatch):
    """A retry computed the same turn number after the original landed."""
    seat = active_game['turn_seat']
    gid = active_game['game_id']
    db.session.add(Guess(game_id=gid, turn_no=1, guesser_seat=seat, guess='9012', bulls=0, cows=0))
    db.session.commit()
    monkeypatch.setattr('bullscows.services.games.engine.next_turn_number', lambda game_id: 1)

    res = _guess(client, active_game, seat, '9012')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'TURN_ALREADY_PROCESSED'
    assert Guess.query.filter_by(game_id=gid, turn_no=1).count() == 1
    assert db.session.get(Game, gid).turn_seat == seat


def test_lost_turn_update_is_state_conflict(client, active_game, monkeypatch):
    """The turn moved on between our checks and the guarded update."""
    from bullscows.services.games import engine
    seat = active_game['turn_seat']
    gid = active_game['game_id']
    original = engine.next_turn_number

    def next_turn_after_race(game_id):
        Game.query.filter_by(id=game_id).update({'turn_seat': 2 if seat == 1 else 1}, synchronize_session=False)
        db.session.commit()
        return original(game_id)

    monkeypatch.setattr(engine, 'next_turn_number', next_turn_after_race)
    res = _guess(client, active_game, seat, '9012')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'GAME_STATE_CONFLICT'
    assert Guess.query.filter_by(game_id=gid).count() == 0


def test_guess_before_activation(client, seated_room):
    res = client.post(f"/api/games/{seated_room['game_id']}/guess", json={'guess': '1234'}, headers=seated_room['headers'][1])
    assert res.status_code == 409
    assert res.get_json()['code'] == 'GAME_NOT_ACTIVE'


def test_event_payloads_for_a_turn(client, active_game):
    from bullscows.services.games.rules import bulls_and_cows
    seat = active_game['turn_seat']
    opponent = 2 if seat == 1 else 1
    bulls, cows = bulls_and_cows(active_game['secrets'][opponent], '9012')
    _guess(client, active_game, seat, '9012')
    event = RoomEvent.query.filter_by(room_id=active_game['room_id'], type='turn_made').one()
    assert event.payload == {'gameId': active_game['game_id'], 'turnNo': 1, 'seat': seat, 'bulls': bulls, 'cows': cows}


def test_secret_rejects_non_ascii_digits(client, seated_room):
    gid = seated_room['game_id']
    for secret in ('١٢٣٤', '１２３４'):
        res = client.post(f'/api/games/{gid}/secret', json={'secret': secret}, headers=seated_room['headers'][1])
        assert res.status_code == 400
        assert res.get_json()['code'] == 'INVALID_SECRET'
    assert GameSecret.query.filter_by(game_id=gid, is_set=True).count() == 0
