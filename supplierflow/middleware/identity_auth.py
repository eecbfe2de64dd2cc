"""
Identity middleware — resolves the caller and builds the RequestContext.

Every /api/v1/ request (except health probes) runs through
``_resolve_identity``:

  1. Authorization: Bearer <token>  → verified with PyJWT
       - RS256 against the IdP's JWKS (IDP_JWKS_URL), or
       - HS256 with IDP_SHARED_SECRET
  2. No token and DEV_IDENTITY_EMAIL configured (never in production)
       → fixed development identity from server config
  3. Otherwise → no identity

The result lands in ``g.request_context`` (or None, with the reason in
``g.auth_error``). Views opt in with ``@require_identity``; an absent or
invalid identity raises ``Unauthenticated`` and is never treated as an
anonymous user.
"""

from __future__ import annotations

import functools
import logging

import jwt as pyjwt
from flask import current_app, g, request

from supplierflow.core.context import Identity, RequestContext
from supplierflow.core.exceptions import Unauthenticated
from supplierflow.services.role_registry import get_role_registry

logger = logging.getLogger(__name__)

SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _jwks_client():
    client = current_app.extensions.get("jwks_client")
    if client is None:
        client = pyjwt.PyJWKClient(current_app.config["IDP_JWKS_URL"])
        current_app.extensions["jwks_client"] = client
    return client


def decode_identity_token(token: str) -> dict:
    """Verify signature and standard claims; return the claims dict.

    Raises:
        jwt.InvalidTokenError (or a subclass) on any verification failure.
    """
    config = current_app.config
    options = {"require": ["exp"]}
    kwargs = {
        "audience": config.get("IDP_AUDIENCE") or None,
        "issuer": config.get("IDP_ISSUER") or None,
        "leeway": config.get("IDP_CLOCK_SKEW_SECONDS", 60),
    }
    if not kwargs["audience"]:
        options["verify_aud"] = False

    if config.get("IDP_JWKS_URL"):
        signing_key = _jwks_client().get_signing_key_from_jwt(token)
        return pyjwt.decode(
            token,
            signing_key.key,
            algorithms=config.get("IDP_ALGORITHMS") or ["RS256"],
            options=options,
            **kwargs,
        )

    secret = config.get("IDP_SHARED_SECRET")
    if not secret:
        raise pyjwt.InvalidTokenError("No identity provider verification key configured")
    return pyjwt.decode(token, secret, algorithms=["HS256"], options=options, **kwargs)


def _dev_identity() -> Identity | None:
    config = current_app.config
    email = config.get("DEV_IDENTITY_EMAIL")
    if not email or config.get("ENV_NAME") == "production":
        return None
    return Identity(
        email=email,
        display_name=config.get("DEV_IDENTITY_NAME") or email,
        groups=frozenset(config.get("DEV_IDENTITY_GROUPS") or ()),
        oid="dev-identity",
    )


def _resolve_identity() -> tuple[Identity | None, str | None]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        try:
            claims = decode_identity_token(token)
        except pyjwt.ExpiredSignatureError:
            return None, "Token expired"
        except pyjwt.PyJWKClientError as exc:
            logger.error("JWKS lookup failed: %s", exc)
            return None, "Token could not be verified"
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            return None, "Invalid token"
        identity = Identity.from_claims(claims)
        if identity is None:
            return None, "Token carries no email claim"
        return identity, None

    identity = _dev_identity()
    if identity is not None:
        return identity, None
    return None, "Authentication required"


def init_identity_auth(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _identity_auth():
        g.request_context = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        identity, error = _resolve_identity()
        if identity is None:
            g.auth_error = error
            return

        g.request_context = RequestContext.build(
            identity,
            get_role_registry(),
            ip_address=request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip()
            or None,
            user_agent=request.headers.get("User-Agent"),
            request_id=getattr(g, "request_id", None),
        )


def current_context() -> RequestContext:
    """Return the request's context or raise Unauthenticated."""
    ctx = getattr(g, "request_context", None)
    if ctx is None:
        raise Unauthenticated(getattr(g, "auth_error", None) or "Authentication required")
    return ctx


def require_identity(f):
    """Decorator: the view runs only with a verified identity."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_context()
        return f(*args, **kwargs)

    return decorated
