# Overview: Service-layer exception hierarchy and its JSON error response.

"""
Service-layer exception hierarchy.

Every error carries a `details` dict for the JSON body and a status_code
the routes use when translating it to an HTTP response.
"""

from flask import current_app, jsonify


class ServiceError(Exception):
    """Base for business and input errors raised by services (400)."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(ServiceError):
    status_code = 404


class UnauthorizedResponseError(ServiceError):
    """Actor is authenticated but may not act on this resource (403)."""
    status_code = 403


class ConflictError(ServiceError):
    """Request is valid but conflicts with current state (409)."""
    status_code = 409


def error_response(exc: ServiceError):
    """(json, status) tuple for a ServiceError; 5xx are logged with traceback."""
    if exc.status_code >= 500:
        current_app.logger.exception("Service failure: %s", exc)
    return jsonify({"error": str(exc), "details": exc.details}), exc.status_code
