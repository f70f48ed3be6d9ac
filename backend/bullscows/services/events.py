from typing import Any, Dict, Optional

from bullscows import db, socketio
from bullscows.models import Room, RoomEvent, isoformat

EVENT_TYPES = (
    'player_joined',
    'secret_set',
    'turn_made',
    'game_finished',
    'rematch_requested',
    'rematch_started',
    'turn_timeout',
    'settings_updated',
    'chat_message',
    'music_updated',
)

SOCKET_NAMESPACE = '/ws'


def channel_for(room_code: str) -> str:
    return f"room:{room_code.upper()}"


def publish_event(room: Room, event_type: str, payload: Optional[Dict[str, Any]] = None) -> RoomEvent:
    """Append a room event and fan it out to connected viewers.

    Called after the primary state change has committed. A failure here
    propagates to the caller, but the committed state stays as is.
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown room event type: {event_type}")
    event = RoomEvent(room_id=room.id, type=event_type, payload=payload or {})
    db.session.add(event)
    db.session.commit()
    socketio.emit(
        'room_event',
        {
            'roomCode': room.code,
            'type': event.type,
            'payload': event.payload,
            'createdAt': isoformat(event.created_at),
        },
        to=channel_for(room.code),
        namespace=SOCKET_NAMESPACE,
    )
    return event
