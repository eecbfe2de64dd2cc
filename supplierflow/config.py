"""
Supplier Onboarding Workflow
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())
"""

import json
import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'supplierflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

DEFAULT_ROLE_GROUPS = {
    "requester": ["NHS-SupplierForm-Requester"],
    "pbp": ["NHS-SupplierForm-PBP"],
    "procurement": ["NHS-SupplierForm-Procurement"],
    "opw": ["NHS-SupplierForm-OPW"],
    "contract": ["NHS-SupplierForm-Contract"],
    "ap_control": ["NHS-SupplierForm-APControl"],
}
DEFAULT_ADMIN_GROUP = "NHS-SupplierForm-Admin"


def _bool_env(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _list_env(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def _role_groups_env() -> dict:
    """ROLE_GROUPS as a JSON object, e.g. {"pbp": ["Group-A", "Group-B"]}."""
    raw = os.getenv("ROLE_GROUPS")
    if not raw:
        return dict(DEFAULT_ROLE_GROUPS)
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise RuntimeError("ROLE_GROUPS must be a JSON object of role -> [group, ...]")
    return {role: [groups] if isinstance(groups, str) else list(groups) for role, groups in parsed.items()}


class Config:
    """Base configuration shared across all environments."""

    ENV_NAME = "base"
    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Rate limiter storage (memory:// when no Redis is available)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Request size cap (documents are at most 10 MB)
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(11 * 1024 * 1024)))

    # Roles: logical role -> identity-provider groups
    ROLE_GROUPS = _role_groups_env()
    ADMIN_GROUP = os.getenv("ADMIN_GROUP", DEFAULT_ADMIN_GROUP)

    # Identity provider token verification
    IDP_JWKS_URL = os.getenv("IDP_JWKS_URL")
    IDP_SHARED_SECRET = os.getenv("IDP_SHARED_SECRET")
    IDP_AUDIENCE = os.getenv("IDP_AUDIENCE")
    IDP_ISSUER = os.getenv("IDP_ISSUER")
    IDP_ALGORITHMS = _list_env("IDP_ALGORITHMS", "RS256")
    IDP_CLOCK_SKEW_SECONDS = int(os.getenv("IDP_CLOCK_SKEW_SECONDS", "60"))

    # Development identity, used only when no bearer token is sent
    DEV_IDENTITY_EMAIL = None
    DEV_IDENTITY_NAME = None
    DEV_IDENTITY_GROUPS = []

    # Authorization behaviour
    CONCEAL_NOT_FOUND = _bool_env("CONCEAL_NOT_FOUND")
    REQUIRE_REQUESTER_ROLE = _bool_env("REQUIRE_REQUESTER_ROLE")

    # Company registry (Companies House)
    COMPANY_REGISTRY_URL = os.getenv("COMPANY_REGISTRY_URL", "https://api.company-information.service.gov.uk")
    COMPANY_REGISTRY_API_KEY = os.getenv("COMPANY_REGISTRY_API_KEY")
    COMPANY_REGISTRY_TIMEOUT = int(os.getenv("COMPANY_REGISTRY_TIMEOUT", "10"))

    # Document storage
    DOCUMENT_STORE_ROOT = os.getenv("DOCUMENT_STORE_ROOT", os.path.join(basedir, "instance", "documents"))

    # Antivirus scanning of uploads: "none" or "clamav" (production default)
    AV_SCANNER = os.getenv("AV_SCANNER")
    AV_SCAN_PATH = os.getenv("AV_SCAN_PATH")
    AV_SCAN_TIMEOUT = int(os.getenv("AV_SCAN_TIMEOUT", "60"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    ENV_NAME = "development"
    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    IDP_SHARED_SECRET = os.getenv("IDP_SHARED_SECRET", "dev-idp-secret")
    DEV_IDENTITY_EMAIL = os.getenv("DEV_IDENTITY_EMAIL")
    DEV_IDENTITY_NAME = os.getenv("DEV_IDENTITY_NAME")
    DEV_IDENTITY_GROUPS = _list_env("DEV_IDENTITY_GROUPS")


class TestingConfig(Config):
    """Testing environment configuration."""

    ENV_NAME = "testing"
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    ROLE_GROUPS = dict(DEFAULT_ROLE_GROUPS)
    ADMIN_GROUP = DEFAULT_ADMIN_GROUP
    IDP_JWKS_URL = None
    IDP_SHARED_SECRET = "test-idp-secret-with-enough-length-for-hs256"
    IDP_AUDIENCE = "supplierflow-tests"
    IDP_ISSUER = "https://idp.test/"
    CONCEAL_NOT_FOUND = False
    REQUIRE_REQUESTER_ROLE = False
    COMPANY_REGISTRY_URL = "https://registry.test"
    COMPANY_REGISTRY_API_KEY = "test-key"
    DOCUMENT_STORE_ROOT = None  # conftest points this at a tmp dir
    AV_SCANNER = "none"


class ProductionConfig(Config):
    """Production environment configuration."""

    ENV_NAME = "production"
    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not (self.IDP_JWKS_URL or self.IDP_SHARED_SECRET):
            raise RuntimeError("IDP_JWKS_URL or IDP_SHARED_SECRET must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
