# errors.py
import logging

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class GlobalGDError(Exception):
    code = "GLOBAL_GD_ERROR"
    status = 500

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class InvalidArgument(GlobalGDError):
    code = "INVALID_ARGUMENT"
    status = 400


class NotFound(GlobalGDError):
    code = "NOT_FOUND"
    status = 404


class Conflict(GlobalGDError):
    code = "CONFLICT"
    status = 409


class Unavailable(GlobalGDError):
    """Persistence or pub/sub collaborator failed; callers should retry."""
    code = "UNAVAILABLE"
    status = 503


ERRORS_BY_STATUS = {
    InvalidArgument.status: InvalidArgument,
    NotFound.status: NotFound,
    Conflict.status: Conflict,
}


def require_user_id(user_id) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidArgument("Missing userId")
    return user_id.strip()


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(GlobalGDError)
    def handle_global_gd_error(exc: GlobalGDError):
        if exc.status >= 500:
            logger.warning(f"⚠️ {exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status
