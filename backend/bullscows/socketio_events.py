from flask_socketio import join_room, leave_room, emit

from bullscows import socketio
from bullscows.services.events import SOCKET_NAMESPACE, channel_for


def handle_connect():
    emit('connected', {'message': f'Connected to {SOCKET_NAMESPACE}'})


def handle_watch_room(data):
    """Subscribe this socket to a room's event channel.

    The channel only carries notifications; viewers re-fetch state over HTTP,
    which is where membership or the spectator key is checked.
    """
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    channel = channel_for(room_code)
    join_room(channel)
    emit('watching', {'room': channel})


def handle_unwatch_room(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    channel = channel_for(room_code)
    leave_room(channel)
    emit('unwatched', {'room': channel})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [SOCKET_NAMESPACE]
    if testing:
        namespaces.append('/')
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('watch_room', handle_watch_room, namespace=namespace)
        socketio.on_event('unwatch_room', handle_unwatch_room, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
