"""
Health endpoints and app wiring tests.
"""

import pytest

from supplierflow import _cors_origins, create_app, limiter
from supplierflow.config import ProductionConfig
from supplierflow.middleware.rate_limiter import rate_limit_key

from conftest import GROUPS


def test_ready(client):
    res = client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_live_reports_dependencies(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    checks = res.get_json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["document_store"]["status"] == "ok"
    assert checks["company_registry"]["status"] == "configured"


def test_health_has_no_identity_requirement(client):
    assert client.get("/api/v1/health/live").headers["X-Request-ID"]


def test_incoming_request_id_is_echoed(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
    assert res.headers["X-Request-ID"] == "abc-123"


def test_production_config_requires_database(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
    with pytest.raises(RuntimeError):
        create_app("production")


def _hook_module(fn):
    return getattr(getattr(fn, "func", fn), "__module__", "") or ""


def test_rate_limit_key_sees_identity(app, sign_token):
    token = sign_token("Pat.PBP@nhs.net", [GROUPS["pbp"]])
    with app.test_request_context("/api/v1/session", headers={"Authorization": f"Bearer {token}"}):
        app.preprocess_request()
        assert rate_limit_key() == "user:pat.pbp@nhs.net"


def test_rate_limit_key_falls_back_to_ip(app):
    with app.test_request_context("/api/v1/session", environ_base={"REMOTE_ADDR": "10.1.2.3"}):
        app.preprocess_request()
        assert rate_limit_key() == "10.1.2.3"


def test_limiter_checks_after_identity_resolution(monkeypatch, tmp_path):
    monkeypatch.setattr(limiter, "enabled", getattr(limiter, "enabled", True), raising=False)
    fresh = create_app("testing", overrides={
        "RATELIMIT_ENABLED": True,
        "DOCUMENT_STORE_ROOT": str(tmp_path),
    })
    hooks = fresh.before_request_funcs[None]
    names = [getattr(getattr(fn, "func", fn), "__name__", "") for fn in hooks]
    identity_idx = names.index("_identity_auth")
    limiter_idx = [i for i, fn in enumerate(hooks) if _hook_module(fn).startswith("flask_limiter")]
    assert limiter_idx
    assert min(limiter_idx) > identity_idx


@pytest.mark.parametrize("cfg, expected", [
    ({"ENV_NAME": "production", "CORS_ORIGINS": ""}, None),
    ({"ENV_NAME": "production", "CORS_ORIGINS": "  "}, None),
    ({"ENV_NAME": "production", "CORS_ORIGINS": "https://a.nhs.uk, https://b.nhs.uk"},
     ["https://a.nhs.uk", "https://b.nhs.uk"]),
    ({"ENV_NAME": "development", "CORS_ORIGINS": ""}, "*"),
    ({"ENV_NAME": "testing", "CORS_ORIGINS": "*"}, "*"),
])
def test_cors_origins(cfg, expected):
    assert _cors_origins(cfg) == expected
