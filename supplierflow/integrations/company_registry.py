"""
Companies House integration gateway.

All outbound calls to the company registry go through this class; the API
key stays server-side. A lookup never raises: every outcome is folded into
a RegistryResult with one of three statuses:

    verified     HTTP 200, company profile returned
    not_found    HTTP 404
    unavailable  not configured, timeout, connection error, any other status

Retry: transient failures (connection errors, 5xx) are retried with the
configured backoff; 4xx responses are final.

Testability: pass a mock `session` to CompanyRegistryGateway() in tests
instead of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time

import requests

logger = logging.getLogger(__name__)

VERIFIED = "verified"
NOT_FOUND = "not_found"
UNAVAILABLE = "unavailable"

_DEFAULT_TIMEOUT = 10
_RETRY_BACKOFF_SECONDS = (1,)


class RegistryResult:
    """Outcome of a registry lookup. Check ``.status`` before ``.company``."""

    __slots__ = ("status", "crn", "company", "status_code", "error", "duration_ms")

    def __init__(
        self,
        status: str,
        crn: str,
        company: dict | None = None,
        status_code: int | None = None,
        error: str | None = None,
        duration_ms: int = 0,
    ) -> None:
        self.status = status
        self.crn = crn
        self.company = company
        self.status_code = status_code
        self.error = error
        self.duration_ms = duration_ms

    @property
    def verified(self) -> bool | None:
        """True / False, or None when the registry could not answer."""
        if self.status == VERIFIED:
            return True
        if self.status == NOT_FOUND:
            return False
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "crn": self.crn,
            "verified": self.verified,
            "company": self.company,
        }


def _company_summary(body: dict) -> dict:
    address = body.get("registered_office_address") or {}
    return {
        "companyName": body.get("company_name"),
        "companyNumber": body.get("company_number"),
        "companyStatus": body.get("company_status"),
        "companyType": body.get("type"),
        "dateOfCreation": body.get("date_of_creation"),
        "registeredOfficeAddress": {
            "addressLine1": address.get("address_line_1"),
            "addressLine2": address.get("address_line_2"),
            "locality": address.get("locality"),
            "postalCode": address.get("postal_code"),
            "country": address.get("country"),
        },
    }


class CompanyRegistryGateway:
    """Companies House REST API gateway.

    Usage:
        gateway = CompanyRegistryGateway(base_url, api_key)
        result = gateway.lookup("01234567")
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        retry_backoff: tuple = _RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retry_backoff = tuple(retry_backoff)
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def lookup(self, crn: str) -> RegistryResult:
        if not self.configured:
            return RegistryResult(UNAVAILABLE, crn, error="Company registry is not configured")

        url = f"{self.base_url}/company/{crn}"
        auth = (self.api_key, "") if self.api_key else None
        attempts = 1 + len(self.retry_backoff)
        last_error = None
        last_status = None
        start = time.monotonic()

        for attempt in range(attempts):
            if attempt:
                time.sleep(self.retry_backoff[attempt - 1])
            try:
                resp = self.session.get(url, auth=auth, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning("Company registry call failed crn=%s attempt=%d: %s", crn, attempt + 1, last_error)
                continue

            last_status = resp.status_code
            duration_ms = int((time.monotonic() - start) * 1000)
            if resp.status_code == 200:
                try:
                    body = resp.json()
                except ValueError:
                    return RegistryResult(UNAVAILABLE, crn, status_code=200,
                                          error="Invalid JSON from registry", duration_ms=duration_ms)
                return RegistryResult(VERIFIED, crn, company=_company_summary(body),
                                      status_code=200, duration_ms=duration_ms)
            if resp.status_code == 404:
                return RegistryResult(NOT_FOUND, crn, status_code=404, duration_ms=duration_ms)
            last_error = f"HTTP {resp.status_code}"
            if resp.status_code < 500:
                break
            logger.warning("Company registry returned %s crn=%s attempt=%d", resp.status_code, crn, attempt + 1)

        logger.error("Company registry unavailable crn=%s: %s", crn, last_error)
        return RegistryResult(
            UNAVAILABLE, crn, status_code=last_status, error=last_error,
            duration_ms=int((time.monotonic() - start) * 1000),
        )


def get_company_registry() -> CompanyRegistryGateway:
    from flask import current_app

    return current_app.extensions["company_registry"]
