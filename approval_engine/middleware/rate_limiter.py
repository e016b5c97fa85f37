"""
Per-blueprint rate limits.

The Limiter in approval_engine/__init__.py carries no default limit; limits
are attached here, keyed by remote address, once blueprints are registered:

    approval   APPROVAL_RATE_LIMIT        submit / decide / queue / status
    workflow   WORKFLOW_ADMIN_RATE_LIMIT  template administration

The health probe lives outside both blueprints and is never limited.
Nothing is limited when TESTING is set.
"""

import logging

logger = logging.getLogger(__name__)

_BLUEPRINT_LIMIT_KEYS = {
    "approval": "APPROVAL_RATE_LIMIT",
    "workflow": "WORKFLOW_ADMIN_RATE_LIMIT",
}


def init_rate_limits(app, limiter):
    """Attach the configured limit to each engine blueprint that is registered."""
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped (TESTING=True)")
        return

    applied = {}
    for bp_name, config_key in _BLUEPRINT_LIMIT_KEYS.items():
        bp = app.blueprints.get(bp_name)
        limit = app.config.get(config_key)
        if bp is None or not limit:
            continue
        limiter.limit(limit)(bp)
        applied[bp_name] = limit

    logger.info("Rate limits applied: %s", ", ".join(f"{k}={v}" for k, v in applied.items()) or "none")
