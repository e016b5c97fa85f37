"""
Workflow Definition Store: approval template CRUD and validation.

Design decisions:
    - Templates are validated at WRITE time.  A specific_user step without a
      static identity is a definition error here, never a runtime skip.
    - Step orders are gapless 1..N.  Orders omitted by the caller are
      assigned by position.
    - The "one default per holding" invariant is maintained in a single
      transaction (clear others + set this one), backed by a partial unique
      index on approval_workflows(holding_id) WHERE is_default.
    - Editing a template never touches chains already resolved onto
      requisitions; those are frozen snapshots.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from approval_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from approval_engine.models import db
from approval_engine.models.org import Holding, TalentUser
from approval_engine.models.workflow import APPROVER_TYPES, SPECIFIC_USER, WorkflowTemplate

logger = logging.getLogger(__name__)

_STATIC_FIELDS = ("static_user_id", "static_user_email", "static_user_name")


# ── Step validation ────────────────────────────────────────────────────────────


def check_step_sequence(steps) -> list[dict]:
    """Return steps sorted by order, or raise if they are not exactly 1..N.

    Used both at definition time and as the input guard of approver
    resolution.
    """
    if not isinstance(steps, list) or not steps:
        raise ValidationError("A workflow needs at least one step", details={"steps": "empty"})

    try:
        ordered = sorted(steps, key=lambda s: int(s["order"]))
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Every step needs an integer 'order'", details={"steps": "order missing"})

    orders = [int(s["order"]) for s in ordered]
    expected = list(range(1, len(ordered) + 1))
    if orders != expected:
        raise ValidationError(
            f"Step orders must be contiguous 1..{len(ordered)}, got {orders}",
            details={"steps": f"orders {orders}"},
        )
    return ordered


def _lookup_static_user(holding_id: int, static_user_id) -> TalentUser | None:
    try:
        user_pk = int(static_user_id)
    except (TypeError, ValueError):
        return None
    user = db.session.get(TalentUser, user_pk)
    if user is None or user.holding_id != holding_id:
        return None
    return user


def validate_steps(steps, holding_id: int) -> list[dict]:
    """Validate and normalise a template's step list.

    Returns:
        Normalised steps sorted by order, each with every key present.

    Raises:
        ValidationError: with a field-level ``details`` dict.
    """
    if not isinstance(steps, list) or len(steps) == 0:
        raise ValidationError(
            "steps must be a non-empty array of {order, name, approver_type}",
            details={"steps": "empty"},
        )

    errors: dict[str, str] = {}
    normalised = []
    for i, raw in enumerate(steps, 1):
        path = f"steps[{i}]"
        if not isinstance(raw, dict):
            errors[path] = "must be an object"
            continue

        order = raw.get("order", i)
        if isinstance(order, bool) or not isinstance(order, int) or order < 1:
            errors[f"{path}.order"] = "must be an integer >= 1"

        name = raw.get("name") or ""
        if not isinstance(name, str):
            errors[f"{path}.name"] = "must be a string"
            name = ""
        elif not name.strip():
            errors[f"{path}.name"] = "is required"
        name = name.strip()

        approver_type = raw.get("approver_type", "")
        if not isinstance(approver_type, str) or approver_type not in APPROVER_TYPES:
            errors[f"{path}.approver_type"] = f"must be one of {sorted(APPROVER_TYPES)}"

        step = {
            "order": order,
            "name": name,
            "approver_type": approver_type,
            "static_user_id": None,
            "static_user_email": None,
            "static_user_name": None,
        }

        if approver_type == SPECIFIC_USER:
            static_id = raw.get("static_user_id")
            email = raw.get("static_user_email") or ""
            display = raw.get("static_user_name") or ""
            for key, value in (("static_user_email", email), ("static_user_name", display)):
                if not isinstance(value, str):
                    errors[f"{path}.{key}"] = "must be a string"
            email = email.strip() if isinstance(email, str) else ""
            display = display.strip() if isinstance(display, str) else ""
            if static_id in (None, ""):
                errors[f"{path}.static_user_id"] = "is required for specific_user steps"
            elif not email:
                user = _lookup_static_user(holding_id, static_id)
                if user is None:
                    errors[f"{path}.static_user_id"] = f"user {static_id!r} not found in holding"
                else:
                    email, display = user.email, display or user.name
            step["static_user_id"] = static_id
            step["static_user_email"] = email or None
            step["static_user_name"] = display or email or None
        elif raw.get("static_user_id") not in (None, ""):
            errors[f"{path}.static_user_id"] = "only allowed on specific_user steps"

        normalised.append(step)

    if errors:
        raise ValidationError("Invalid workflow steps", details=errors)

    return check_step_sequence(normalised)


# ── Queries ────────────────────────────────────────────────────────────────────


def get_template(template_id: int) -> WorkflowTemplate:
    tpl = db.session.get(WorkflowTemplate, template_id)
    if tpl is None:
        raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)
    return tpl


def list_templates(holding_id: int, active_only: bool = False) -> list[WorkflowTemplate]:
    q = WorkflowTemplate.query_for_holding(holding_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(WorkflowTemplate.id).all()


def get_default_template(holding_id: int) -> WorkflowTemplate | None:
    """Return the holding's active default template.

    Falls back to the first active template (by id) when no active default
    exists; None when the holding has no active template at all.
    """
    default = db.session.execute(
        select(WorkflowTemplate).where(
            WorkflowTemplate.holding_id == holding_id,
            WorkflowTemplate.is_default.is_(True),
            WorkflowTemplate.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if default is not None:
        return default

    return db.session.execute(
        select(WorkflowTemplate)
        .where(
            WorkflowTemplate.holding_id == holding_id,
            WorkflowTemplate.is_active.is_(True),
        )
        .order_by(WorkflowTemplate.id.asc())
        .limit(1)
    ).scalar_one_or_none()


# ── Commands ───────────────────────────────────────────────────────────────────


def _clear_defaults(holding_id: int, keep_id: int | None = None) -> None:
    """Unset is_default on every template of the holding except keep_id.

    Does NOT commit; always part of the caller's transaction.
    """
    stmt = (
        update(WorkflowTemplate)
        .where(
            WorkflowTemplate.holding_id == holding_id,
            WorkflowTemplate.is_default.is_(True),
        )
        .values(is_default=False)
    )
    if keep_id is not None:
        stmt = stmt.where(WorkflowTemplate.id != keep_id)
    db.session.execute(stmt)


def _text_field(data: dict, key: str) -> str:
    value = data.get(key) or ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={key: "must be a string"})
    return value.strip()


def _commit_default_change(holding_id: int) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Concurrent default-template change holding_id=%s: %s", holding_id, exc)
        raise ConflictError(resource="WorkflowTemplate", field="is_default", value=f"holding {holding_id}")


def create_template(holding_id: int, data: dict, created_by: str = "") -> WorkflowTemplate:
    """Validate and persist a new template.

    Body keys: name, description?, steps, is_default?, is_active?
    """
    if db.session.get(Holding, holding_id) is None:
        raise NotFoundError(resource="Holding", resource_id=holding_id)

    name = _text_field(data, "name")
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    steps = validate_steps(data.get("steps"), holding_id)

    is_active = bool(data.get("is_active", True))
    is_default = bool(data.get("is_default", False)) and is_active

    if is_default:
        _clear_defaults(holding_id)

    tpl = WorkflowTemplate(
        holding_id=holding_id,
        name=name,
        description=_text_field(data, "description") or None,
        steps=steps,
        is_default=is_default,
        is_active=is_active,
        created_by=created_by or "",
    )
    db.session.add(tpl)
    _commit_default_change(holding_id)

    logger.info(
        "Workflow template created",
        extra={"holding_id": holding_id, "workflow_id": tpl.id, "event_type": "workflow.created"},
    )
    return tpl


def update_template(template_id: int, data: dict) -> WorkflowTemplate:
    """Update name / description / steps / is_active / is_default."""
    tpl = get_template(template_id)

    if "name" in data:
        name = _text_field(data, "name")
        if not name:
            raise ValidationError("name must not be empty", details={"name": "empty"})
        tpl.name = name
    if "description" in data:
        tpl.description = _text_field(data, "description") or None
    if "steps" in data:
        tpl.steps = validate_steps(data.get("steps"), tpl.holding_id)
    if "is_active" in data:
        tpl.is_active = bool(data["is_active"])
        if not tpl.is_active:
            tpl.is_default = False

    if data.get("is_default") and tpl.is_active:
        _clear_defaults(tpl.holding_id, keep_id=tpl.id)
        tpl.is_default = True
    elif "is_default" in data and not data.get("is_default"):
        tpl.is_default = False

    _commit_default_change(tpl.holding_id)
    logger.info(
        "Workflow template updated",
        extra={"holding_id": tpl.holding_id, "workflow_id": tpl.id, "event_type": "workflow.updated"},
    )
    return tpl


def set_default(template_id: int) -> WorkflowTemplate:
    """Make a template its holding's default in one transaction."""
    tpl = get_template(template_id)
    if not tpl.is_active:
        raise ValidationError(
            "An inactive template cannot be the default",
            details={"is_active": False},
        )

    _clear_defaults(tpl.holding_id, keep_id=tpl.id)
    tpl.is_default = True
    _commit_default_change(tpl.holding_id)

    logger.info(
        "Default workflow template changed",
        extra={"holding_id": tpl.holding_id, "workflow_id": tpl.id, "event_type": "workflow.default_set"},
    )
    return tpl


def delete_template(template_id: int) -> None:
    """Delete a template.  Requisitions keep their frozen chain and workflow_name."""
    tpl = get_template(template_id)
    holding_id = tpl.holding_id
    db.session.delete(tpl)
    db.session.commit()
    logger.info(
        "Workflow template deleted",
        extra={"holding_id": holding_id, "workflow_id": template_id, "event_type": "workflow.deleted"},
    )
