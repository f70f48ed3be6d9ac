from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class GameError(Exception):
    """Domain error carrying the HTTP status, a stable code and a user-facing message."""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    def to_dict(self):
        return {'code': self.code, 'error': self.message}


def error_response(status: int, code: str, message: str):
    return jsonify({'code': code, 'error': message}), status


def register_error_handlers(flask_app) -> None:
    @flask_app.errorhandler(GameError)
    def handle_game_error(exc: GameError):
        return jsonify(exc.to_dict()), exc.status

    @flask_app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        code = (exc.name or 'error').upper().replace(' ', '_')
        return error_response(exc.code or 500, code, exc.description or exc.name)

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        from bullscows import db
        db.session.rollback()
        current_app.logger.exception(f"[internal-error] {type(exc).__name__}")
        return error_response(500, 'INTERNAL_ERROR', 'Internal server error.')
