from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from bullscows.services.games.clock import apply_timeout_if_expired
from bullscows.services.rooms import lifecycle
from bullscows.services.rooms.state import build_player_state
from bullscows.validators import normalize_room_code
from .utils import json_body

rooms = Blueprint('rooms', __name__)


@rooms.route('/create', methods=['POST'])
@login_required
def create_room():
    data = json_body()
    return jsonify(lifecycle.create_room(current_user.id, data.get('displayName')))


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = json_body()
    return jsonify(lifecycle.join_room(current_user.id, data.get('displayName'), data.get('roomCode')))


@rooms.route('/<string:room_code>/heartbeat', methods=['POST'])
@login_required
def heartbeat(room_code):
    return jsonify(lifecycle.heartbeat(current_user.id, room_code))


@rooms.route('/<string:room_code>/state', methods=['GET'])
@login_required
def get_room_state(room_code):
    code = normalize_room_code(room_code)
    apply_timeout_if_expired(code)
    state = build_player_state(code, current_user.id)
    lifecycle.touch_presence(state['roomId'], current_user.id)
    return jsonify(state)


@rooms.route('/<string:room_code>/settings', methods=['POST'])
@login_required
def update_settings(room_code):
    data = json_body()
    return jsonify(lifecycle.update_settings(current_user.id, room_code, data.get('turnSeconds')))


@rooms.route('/<string:room_code>/chat', methods=['POST'])
@login_required
def post_chat(room_code):
    data = json_body()
    return jsonify(lifecycle.post_chat_message(current_user.id, room_code, data.get('message')))


@rooms.route('/<string:room_code>/music', methods=['POST'])
def update_music(room_code):
    # Open to spectators too: identity is optional, the spectator key is the fallback
    data = json_body()
    user_id = current_user.id if current_user.is_authenticated else None
    spectator_key = data.get('spectatorKey') if isinstance(data.get('spectatorKey'), str) else None
    return jsonify(lifecycle.update_music(room_code, data.get('action'), user_id=user_id, spectator_key=spectator_key))
