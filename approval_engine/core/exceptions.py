"""
Engine-wide exception hierarchy.

All services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

    ValidationError       malformed workflow template            → 422
    ResolutionError       org directory lookup failed (retry)    → 503
    UnauthorizedError     actor is not the current approver      → 403
    InvalidStateError     terminal / non-actionable requisition  → 409
    InvalidArgumentError  missing rejection reason, bad action   → 400
    NotFoundError         unknown template / requisition         → 404
    ConflictError         duplicate submission                   → 409

UnauthorizedError and InvalidStateError are expected, frequent conditions
(stale dashboards, double clicks).  They are never logged as system errors.

Usage:
    from approval_engine.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Requisition", resource_id=42)
    raise ValidationError("steps must not be empty", details={"steps": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model name (e.g. "Requisition", "WorkflowTemplate").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a workflow template violates a definition-time rule.

    Empty steps, non-contiguous ordering, unknown approver types and a
    specific_user step without a static identity all end up here.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field or step path.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate something that must be unique.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ResolutionError(Exception):
    """Raised when an organisational lookup fails during approver resolution.

    Resolution is all-or-nothing: no partial chain is ever persisted, and the
    caller is expected to retry the whole submission.

    Args:
        message: What failed.
        step: Step order being resolved when the lookup failed, if known.
    """

    def __init__(self, message: str, step: int | None = None) -> None:
        self.step = step
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when the actor is not the approver of the current step.

    Args:
        actor: Email that attempted the action.
        step: Current step order.
        expected: Email of the approver the step resolved to.
    """

    def __init__(self, actor: str, step: int | None, expected: str | None) -> None:
        self.actor = actor
        self.step = step
        self.expected = expected
        super().__init__(f"{actor!r} is not the approver for step {step} (expected {expected!r})")

    def to_details(self) -> dict:
        return {"actor": self.actor, "step": self.step, "expected_approver": self.expected}


class InvalidStateError(Exception):
    """Raised when an action targets a requisition that cannot accept it.

    Covers terminal requisitions (approved / rejected), requisitions that were
    never submitted, and the loser of a concurrent approve/reject race.

    Args:
        message: Human-readable explanation.
        status: Status observed when the action was refused.
        step: current_step observed, if any.
    """

    def __init__(self, message: str, status: str | None = None, step: int | None = None) -> None:
        self.status = status
        self.step = step
        super().__init__(message)

    def to_details(self) -> dict:
        return {"status": self.status, "current_step": self.step}


class InvalidArgumentError(Exception):
    """Raised when a call argument is missing or malformed (e.g. empty rejection reason).

    Args:
        message: Human-readable explanation.
        field: Name of the offending argument.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)
