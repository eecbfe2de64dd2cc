"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in supplierflow/__init__.py with no default
limits; this module applies granular limits per route category, keyed by
the caller's email when an identity is present, else by remote IP.
The identity hook must be registered before ``limiter.init_app`` so that
``g.request_context`` is set when the limiter computes its key.

Usage:
    from supplierflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

from flask import g, request as flask_request


API_LIMIT = "200/minute"
DOCUMENT_LIMIT = "30/minute"


def rate_limit_key():
    """Identity email if resolved, else remote IP."""
    ctx = getattr(g, "request_context", None)
    if ctx is not None:
        return f"user:{ctx.email.lower()}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per identity, falling back to remote IP):
        - Submission / review endpoints:  200/minute
        - Document uploads and listing:   30/minute
        - Health check:                   exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("submission")
    if bp:
        limiter.limit(API_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("document")
    if bp:
        limiter.limit(DOCUMENT_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: submissions=%s documents=%s",
        API_LIMIT, DOCUMENT_LIMIT,
    )
