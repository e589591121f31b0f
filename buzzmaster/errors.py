from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException


class GameError(Exception):
    """A request the game state machines refuse, rendered as {'error': message}."""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(GameError):
    status_code = 400


class AuthError(GameError):
    status_code = 401


class ForbiddenError(GameError):
    status_code = 403


class NotFoundError(GameError):
    status_code = 404


class ConflictError(GameError):
    status_code = 409


def register_error_handlers(flask_app, db):
    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        db.session.rollback()
        return jsonify({'error': exc.message}), exc.status_code

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(exc):
        db.session.rollback()
        return jsonify({'error': exc.description}), exc.code

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        current_app.logger.exception(f"[error] unhandled {type(exc).__name__}: {exc}")
        return jsonify({'error': 'Internal server error'}), 500
