"""
Requisition Approval Engine
Blueprint registry and shared blueprint plumbing.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from approval_engine.core.exceptions import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    ResolutionError,
    UnauthorizedError,
    ValidationError,
)
from approval_engine.models import db
from approval_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-materialised list.

    Query params:
        limit  : max items (default 200, capped at max_limit)
        offset : starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def register_error_handlers(bp):
    """Map the engine's exception hierarchy to JSON responses on a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_TEMPLATE, str(error), details=error.details)

    @bp.errorhandler(InvalidArgumentError)
    def _handle_invalid_argument(error: InvalidArgumentError):
        details = {"field": error.field} if error.field else None
        return api_error(E.VALIDATION_INVALID, str(error), details=details)

    @bp.errorhandler(UnauthorizedError)
    def _handle_unauthorized(error: UnauthorizedError):
        return api_error(E.NOT_CURRENT_APPROVER, str(error), details=error.to_details())

    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        return api_error(E.INVALID_STATE, str(error), details=error.to_details())

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(ResolutionError)
    def _handle_resolution(error: ResolutionError):
        logger.error("Approver resolution failed step=%s: %s", error.step, error)
        return api_error(E.RESOLUTION_FAILED, str(error), details={"step": error.step, "retry": True})

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
