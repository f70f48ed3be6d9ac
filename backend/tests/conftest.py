import os
import sys
import pytest
from flask import g

# Ensure the backend root (containing the `bullscows` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bullscows import create_app, db, socketio
from config import Config


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    # Test-client requests reuse the app context held below, so Flask-Login's
    # per-context user cache must not outlive the request that set it
    @application.teardown_request
    def forget_request_user(exc=None):
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import bullscows.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def new_user(client):
    """Factory: issue an anonymous identity and return (user_id, auth headers)."""
    def _new_user():
        res = client.post('/api/auth/anonymous')
        assert res.status_code == 201
        data = res.get_json()
        return data['userId'], {'Authorization': f"Bearer {data['accessToken']}"}
    return _new_user


@pytest.fixture()
def seated_room(client, new_user):
    """A room with both seats taken and round 1 waiting for secrets."""
    _, host = new_user()
    _, guest = new_user()
    created = client.post('/api/rooms/create', json={'displayName': 'Alice'}, headers=host).get_json()
    code = created['roomCode']
    client.post('/api/rooms/join', json={'displayName': 'Bob', 'roomCode': code}, headers=guest)
    state = client.get(f'/api/rooms/{code}/state', headers=host).get_json()
    return {
        'code': code,
        'room_id': created['roomId'],
        'game_id': state['game']['id'],
        'headers': {1: host, 2: guest},
    }


@pytest.fixture()
def active_game(client, seated_room):
    """Round 1 in play: seat 1 hides 1234, seat 2 hides 5678."""
    gid = seated_room['game_id']
    client.post(f'/api/games/{gid}/secret', json={'secret': '1234'}, headers=seated_room['headers'][1])
    client.post(f'/api/games/{gid}/secret', json={'secret': '5678'}, headers=seated_room['headers'][2])
    state = client.get(f"/api/rooms/{seated_room['code']}/state", headers=seated_room['headers'][1]).get_json()
    seated_room['turn_seat'] = state['game']['turnSeat']
    seated_room['secrets'] = {1: '1234', 2: '5678'}
    return seated_room
