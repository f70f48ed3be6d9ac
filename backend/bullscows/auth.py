"""Bearer-token identity.

Tokens are signed user ids. The rest of the app only ever sees the opaque
``current_user.id`` that a verified token yields.
"""
from typing import Optional

from flask import current_app
from flask_login import UserMixin
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from bullscows import login_manager
from bullscows.errors import GameError
from bullscows.models import new_id

TOKEN_SALT = 'bullscows-access-token'


class Identity(UserMixin):
    def __init__(self, user_id: str):
        self.id = user_id


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_access_token(user_id: Optional[str] = None) -> dict:
    user_id = user_id or new_id()
    return {'accessToken': _serializer().dumps({'uid': user_id}), 'userId': user_id}


def verify_access_token(token: str) -> Optional[str]:
    max_age = int(current_app.config.get('ACCESS_TOKEN_MAX_AGE_SEC', 7 * 24 * 3600))
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None
    uid = data.get('uid') if isinstance(data, dict) else None
    return uid if isinstance(uid, str) and uid else None


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    user_id = verify_access_token(token.strip())
    return Identity(user_id) if user_id else None


@login_manager.unauthorized_handler
def unauthorized():
    raise GameError(401, 'UNAUTHORIZED', 'Authentication required.')
