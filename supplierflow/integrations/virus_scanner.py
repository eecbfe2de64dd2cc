"""
Antivirus scanning adapter.

Every upload is scanned before it reaches the document store. The app builds
one scanner at startup from ``AV_SCANNER`` and keeps it in
``app.extensions["virus_scanner"]``:

    none    — no scanning (development and tests only)
    clamav  — runs ``clamscan`` on a temporary copy of the upload

Production defaults to ``clamav``. A scanner that cannot give a verdict
raises ``ScanError``; callers reject the upload.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CLAMAV_PATH = "/usr/bin/clamscan"


class ScanError(Exception):
    """The scanner ran but could not decide."""


@dataclass(frozen=True)
class ScanResult:
    clean: bool
    details: str
    scanned: bool = True

    def to_dict(self) -> dict:
        return {"clean": self.clean, "details": self.details, "scanned": self.scanned}


class VirusScanner(ABC):
    @abstractmethod
    def scan(self, data: bytes, file_name: str) -> ScanResult:
        """Return the verdict for ``data`` or raise ScanError."""


class NoopVirusScanner(VirusScanner):
    def scan(self, data: bytes, file_name: str) -> ScanResult:
        return ScanResult(clean=True, details="AV scanning skipped", scanned=False)


class ClamAVScanner(VirusScanner):
    """``clamscan`` exit codes: 0 clean, 1 infected, anything else an error."""

    def __init__(self, binary: str | None = None, timeout: int = 60) -> None:
        self.binary = binary or CLAMAV_PATH
        self.timeout = timeout

    def scan(self, data: bytes, file_name: str) -> ScanResult:
        suffix = os.path.splitext(file_name or "")[1] or ".bin"
        with tempfile.TemporaryDirectory(prefix="av-scan-") as tmp:
            path = os.path.join(tmp, f"scan{suffix}")
            with open(path, "wb") as fh:
                fh.write(data)
            try:
                proc = subprocess.run(
                    [self.binary, "--no-summary", path],
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.error("ClamAV scan failed: %s", exc)
                raise ScanError(str(exc)) from exc

        if proc.returncode == 0:
            return ScanResult(clean=True, details="No threats detected (ClamAV)")
        if proc.returncode == 1:
            logger.warning("AV threat detected in %s: %s", file_name, proc.stdout.strip())
            return ScanResult(clean=False, details=proc.stdout.strip() or "Threat detected")
        logger.error("ClamAV scan error rc=%s: %s", proc.returncode, proc.stderr.strip())
        raise ScanError(f"clamscan exited with {proc.returncode}")


def build_virus_scanner(config) -> VirusScanner:
    default = "clamav" if config.get("ENV_NAME") == "production" else "none"
    kind = (config.get("AV_SCANNER") or default).strip().lower()
    if kind == "none":
        return NoopVirusScanner()
    if kind == "clamav":
        return ClamAVScanner(config.get("AV_SCAN_PATH"), timeout=config.get("AV_SCAN_TIMEOUT", 60))
    raise RuntimeError(f"Unknown AV_SCANNER: {kind}")


def get_virus_scanner() -> VirusScanner:
    from flask import current_app

    return current_app.extensions["virus_scanner"]
