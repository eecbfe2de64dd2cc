"""
Shared pytest fixtures for the Supplier Onboarding Workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_ctx: RequestContext builder for service-level tests
    - auth_headers: Bearer-token header builder for API tests
    - actor contexts: requester, pbp, procurement, opw, contract, ap, admin, outsider
"""

import time

import jwt as pyjwt
import pytest

from supplierflow import create_app
from supplierflow.config import DEFAULT_ADMIN_GROUP, DEFAULT_ROLE_GROUPS, TestingConfig
from supplierflow.core.context import Identity, RequestContext
from supplierflow.integrations.document_store import LocalDocumentStore
from supplierflow.models import db as _db
from supplierflow.services.role_registry import RoleRegistry

GROUPS = {role: groups[0] for role, groups in DEFAULT_ROLE_GROUPS.items()}
GROUPS["admin"] = DEFAULT_ADMIN_GROUP

REQUESTER_EMAIL = "jane.requester@nhs.net"
SUPPLIER_EMAIL = "contact@acme-supplies.co.uk"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def document_root(tmp_path_factory):
    return tmp_path_factory.mktemp("documents")


@pytest.fixture(scope="session")
def app(document_root):
    """Create the Flask application once per test session."""
    application = create_app("testing", overrides={"DOCUMENT_STORE_ROOT": str(document_root)})
    application.extensions["document_store"] = LocalDocumentStore(str(document_root))
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identity helpers ─────────────────────────────────────────────────────


@pytest.fixture()
def registry(app):
    return app.extensions["role_registry"]


@pytest.fixture()
def make_ctx(registry):
    """Build a RequestContext for ``email`` holding the named roles."""

    def _make(email, *roles, name=None):
        groups = frozenset(GROUPS[r] for r in roles)
        identity = Identity(email=email, display_name=name or email.split("@")[0], groups=groups)
        return RequestContext.build(identity, registry, ip_address="127.0.0.1",
                                    user_agent="pytest", request_id="test-req")

    return _make


@pytest.fixture()
def requester(make_ctx):
    return make_ctx(REQUESTER_EMAIL, "requester")


@pytest.fixture()
def supplier(make_ctx):
    return make_ctx(SUPPLIER_EMAIL)


@pytest.fixture()
def pbp(make_ctx):
    return make_ctx("pat.pbp@nhs.net", "pbp")


@pytest.fixture()
def procurement(make_ctx):
    return make_ctx("paul.procurement@nhs.net", "procurement")


@pytest.fixture()
def opw(make_ctx):
    return make_ctx("olive.opw@nhs.net", "opw")


@pytest.fixture()
def contract(make_ctx):
    return make_ctx("cara.contract@nhs.net", "contract")


@pytest.fixture()
def ap(make_ctx):
    return make_ctx("alex.ap@nhs.net", "ap_control")


@pytest.fixture()
def admin(make_ctx):
    return make_ctx("ada.admin@nhs.net", "admin")


@pytest.fixture()
def outsider(make_ctx):
    return make_ctx("nobody@nhs.net")


def make_token(email, groups=(), *, expires_in=600, secret=None, audience=None, issuer=None, **claims):
    """Sign an identity token the way the test IdP would."""
    now = int(time.time())
    payload = {
        "preferred_username": email,
        "name": email.split("@")[0],
        "groups": list(groups),
        "aud": audience or TestingConfig.IDP_AUDIENCE,
        "iss": issuer or TestingConfig.IDP_ISSUER,
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    return pyjwt.encode(payload, secret or TestingConfig.IDP_SHARED_SECRET, algorithm="HS256")


@pytest.fixture()
def sign_token():
    return make_token


@pytest.fixture()
def auth_headers():
    """Return Authorization headers for ``email`` holding the named roles."""

    def _headers(email, *roles):
        token = make_token(email, [GROUPS[r] for r in roles])
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def new_submission(requester):
    """Create a submission owned by the requester and return its id."""
    from supplierflow.services import submission_service

    def _create(**fields):
        data = {
            "firstName": "Jane",
            "lastName": "Requester",
            "companyName": "Acme Supplies Ltd",
            "supplierContactEmail": SUPPLIER_EMAIL,
            "crn": "01234567",
            "vatNumber": "GB123456789",
        }
        data.update(fields)
        return submission_service.create(requester, data)

    return _create


@pytest.fixture()
def custom_registry():
    """Registry with a non-default group table."""
    return RoleRegistry({"opw": ["Panel-A", "Panel-B"]}, "Super-Admins")
