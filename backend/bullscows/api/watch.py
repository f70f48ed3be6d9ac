from flask import Blueprint, jsonify, request

from bullscows.errors import GameError
from bullscows.services.rooms.state import build_spectator_state
from bullscows.validators import normalize_room_code

watch = Blueprint('watch', __name__)


@watch.route('/<string:room_code>/state', methods=['GET'])
def get_spectator_state(room_code):
    code = normalize_room_code(room_code)
    key = (request.args.get('key') or '').strip().upper()
    if not key:
        raise GameError(403, 'INVALID_SPECTATOR_KEY', 'Invalid spectator link.')
    return jsonify(build_spectator_state(code, key))
