"""
Traveler Lifecycle Service
Blueprint registry helpers.
"""

import logging

from flask import request

from travelers.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from travelers.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_user():
    """Acting user id. Authentication lives in front of this service and forwards it."""
    return request.headers.get("X-User-Id") or None


def current_username():
    return request.headers.get("X-User-Name") or None


def register_error_handlers(app):
    """Map service exceptions to the standard JSON error body."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(InvalidTransition)
    def _handle_invalid_transition(error: InvalidTransition):
        return api_error(E.CONFLICT_STATE, str(error), status=error.status, details=error.details)

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        logger.info("Rejected %s %s: %s", request.method, request.path, error)
        return api_error(E.VALIDATION_INVALID, str(error), status=error.status, details=error.details)
