"""JSON error bodies for the approval API.

Every refusal the engine returns has the same shape::

    {"error": "<message>", "code": "<E.*>", "details": {...}?, "request_id": "..."}

``code`` is stable and meant for the dashboard to branch on (e.g. show
"someone else already decided this step" on APPROVAL_INVALID_STATE);
``error`` is for humans.  ``request_id`` matches the X-Request-ID header so
a user report can be traced to its log lines.

    from approval_engine.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "action is required")
    return api_error(E.NOT_CURRENT_APPROVER, str(exc), details=exc.to_details())
"""

from __future__ import annotations

from flask import g, has_request_context, jsonify


class E:
    """Machine-readable error codes.

    ERR_*       generic request / resource errors
    APPROVAL_*  refusals from the approval state machine
    """

    # Request shape (400) and template definition (422)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_TEMPLATE = "ERR_VALIDATION_TEMPLATE"

    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Expected, frequent: stale dashboards and double clicks
    NOT_CURRENT_APPROVER = "APPROVAL_NOT_CURRENT_APPROVER"
    INVALID_STATE = "APPROVAL_INVALID_STATE"

    # Org directory unavailable; the caller retries the submission
    RESOLUTION_FAILED = "ERR_RESOLUTION_FAILED"

    INTERNAL = "ERR_INTERNAL"


HTTP_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_TEMPLATE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.NOT_CURRENT_APPROVER: 403,
    E.INVALID_STATE: 409,
    E.RESOLUTION_FAILED: 503,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler.

    The status defaults to ``HTTP_STATUS[code]`` (400 for unknown codes).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    if has_request_context() and g.get("request_id"):
        body["request_id"] = g.request_id
    return jsonify(body), status or HTTP_STATUS.get(code, 400)
