"""Request payload validators. Each returns the normalized value or raises GameError(400)."""
import re

from flask import current_app

from bullscows.errors import GameError
from bullscows.models import ROOM_CODE_LENGTH

FOUR_DIGITS_RE = re.compile(r'^[0-9]{4}$')
ROOM_CODE_RE = re.compile(r'^[A-Z0-9]{%d}$' % ROOM_CODE_LENGTH)
MUSIC_ACTIONS = ('next', 'toggle')


def ensure_display_name(value) -> str:
    display_name = value.strip() if isinstance(value, str) else ''
    if not display_name:
        raise GameError(400, 'INVALID_DISPLAY_NAME', 'Enter a player name.')
    max_length = int(current_app.config.get('DISPLAY_NAME_MAX_LENGTH', 24))
    if len(display_name) > max_length:
        raise GameError(400, 'INVALID_DISPLAY_NAME', f'Name is too long (max {max_length} characters).')
    return display_name


def normalize_room_code(value) -> str:
    room_code = value.strip().upper() if isinstance(value, str) else ''
    if not ROOM_CODE_RE.match(room_code):
        raise GameError(400, 'INVALID_ROOM_CODE', f'Room code must be {ROOM_CODE_LENGTH} characters A-Z or 0-9.')
    return room_code


def ensure_four_digits_no_repeats(value, error_code: str) -> str:
    normalized = value.strip() if isinstance(value, str) else ''
    if not FOUR_DIGITS_RE.match(normalized) or len(set(normalized)) != len(normalized):
        raise GameError(400, error_code, 'Enter 4 different digits.')
    return normalized


def ensure_turn_seconds(value) -> int:
    options = tuple(current_app.config.get('TURN_SECONDS_OPTIONS', (0, 30, 45, 60)))
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value not in options:
        raise GameError(400, 'INVALID_TURN_SECONDS', f'Turn timer must be one of {", ".join(map(str, options))}.')
    return value


def ensure_chat_message(value) -> str:
    message = value.strip() if isinstance(value, str) else ''
    max_length = int(current_app.config.get('CHAT_MAX_LENGTH', 300))
    if not message:
        raise GameError(400, 'INVALID_MESSAGE', 'Message is empty.')
    if len(message) > max_length:
        raise GameError(400, 'INVALID_MESSAGE', f'Message is too long (max {max_length} characters).')
    return message


def ensure_music_action(value) -> str:
    if value not in MUSIC_ACTIONS:
        raise GameError(400, 'INVALID_MUSIC_ACTION', 'Unknown music action.')
    return value


def normalize_track_index(value, track_count: int) -> int:
    count = max(1, int(track_count or 1))
    try:
        index = int(value)
    except (TypeError, ValueError):
        index = 0
    return index % count
