# rentalbiz/errors.py
from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db


class AppError(Exception):
    """Operational error carrying an HTTP status and a machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"success": False, "message": self.message, "code": self.code}


class ContractNotFoundError(AppError):
    status_code = 404
    code = "CONTRACT_NOT_FOUND"

    def __init__(self, message="Contract not found or you do not have access"):
        super().__init__(message)


class InvalidContractStateError(AppError):
    status_code = 400
    code = "CONTRACT_NOT_ACTIVE"

    def __init__(self, message="Only active contracts can be scheduled"):
        super().__init__(message)


class ScheduleValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message="You do not have permission to perform this action"):
        super().__init__(message)


class ScheduleConflictError(AppError):
    status_code = 409
    code = "SCHEDULE_CONFLICT"

    def __init__(self, message="Another scheduling run is writing the same payments"):
        super().__init__(message)


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "UNPROCESSABLE",
}


def error_response(message, status_code, code):
    return jsonify(success=False, message=message, code=code), status_code


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def app_error(e):
        if e.status_code >= 500:
            current_app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        current_app.logger.exception("Database error: %s", e)
        db.session.rollback()
        return error_response("Database error", 500, "DATABASE_ERROR")

    @app.errorhandler(HTTPException)
    def http_error(e):
        code = _HTTP_CODES.get(e.code, "HTTP_ERROR")
        return error_response(e.description, e.code, code)

    @app.errorhandler(500)
    def server_error(e):
        current_app.logger.exception("Unhandled exception: %s", e)
        return error_response("Internal server error", 500, "INTERNAL_ERROR")
