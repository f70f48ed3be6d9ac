from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from bullscows.errors import GameError
from bullscows.services.games import engine, rematch
from .utils import json_body

games = Blueprint('games', __name__)


@games.route('/<string:game_id>/secret', methods=['POST'])
@login_required
def submit_secret(game_id):
    data = json_body()
    return jsonify(engine.submit_secret(current_user.id, game_id, data.get('secret')))


@games.route('/<string:game_id>/guess', methods=['POST'])
@login_required
def submit_guess(game_id):
    data = json_body()
    return jsonify(engine.submit_guess(current_user.id, game_id, data.get('guess')))


@games.route('/<string:game_id>/rematch-vote', methods=['POST'])
@login_required
def vote_rematch(game_id):
    data = json_body()
    if data.get('vote') is not True:
        raise GameError(400, 'INVALID_VOTE', 'Send vote=true to request a rematch.')
    return jsonify(rematch.vote_rematch(current_user.id, game_id))
