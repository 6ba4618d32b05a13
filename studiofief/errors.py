from flask import current_app, g, jsonify
from werkzeug.exceptions import HTTPException

from . import db


class BillingError(Exception):
    """Base class for business-rule failures surfaced to the API caller."""

    code = "ERROR"
    status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    code = "VALIDATION_ERROR"
    status = 400


class LockedError(BillingError):
    code = "LOCKED"
    status = 400


class OverLimitError(BillingError):
    code = "OVER_LIMIT"
    status = 400


class ForbiddenError(BillingError):
    code = "FORBIDDEN"
    status = 403


class NotFoundError(BillingError):
    code = "NOT_FOUND"
    status = 404


class UnauthenticatedError(BillingError):
    code = "UNAUTHENTICATED"
    status = 401


def error_response(message: str, code: str, status: int):
    body = {"error": message, "code": code}
    rid = getattr(g, "request_id", None)
    if rid:
        body["requestId"] = rid
    return jsonify(body), status


def register_error_handlers(app):
    @app.errorhandler(BillingError)
    def handle_billing_error(e: BillingError):
        db.session.rollback()
        current_app.logger.warning(
            "rejected %s: %s (request %s)", e.code, e.message, getattr(g, "request_id", None)
        )
        return error_response(e.message, e.code, e.status)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        codes = {400: "VALIDATION_ERROR", 401: "UNAUTHENTICATED", 403: "FORBIDDEN", 404: "NOT_FOUND"}
        return error_response(e.description or e.name, codes.get(e.code, "HTTP_ERROR"), e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        db.session.rollback()
        current_app.logger.exception("unexpected error (request %s)", getattr(g, "request_id", None))
        return error_response("Erreur inattendue.", "INTERNAL_ERROR", 500)
