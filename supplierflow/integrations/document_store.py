"""
Document storage adapter.

Contract: ``store(submission_id, document_type, data, file_name) -> storage_path``.
Only metadata is kept in the database; bytes live in the store. Sensitive
and ticketing-eligible documents go to separate libraries (subdirectories).

The app builds one store at startup and keeps it in
``app.extensions["document_store"]``; tests can swap in their own.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: str) -> str:
    base = os.path.basename(name or "").strip() or "document"
    return _SAFE_NAME_RE.sub("_", base)[:200]


class DocumentStore(ABC):
    @abstractmethod
    def store(self, submission_id: str, document_type: str, data: bytes, file_name: str,
              library: str) -> str:
        """Persist bytes and return the storage path."""

    @abstractmethod
    def delete(self, storage_path: str) -> None:
        """Remove stored bytes. Missing paths are ignored."""


class LocalDocumentStore(DocumentStore):
    """Writes documents under ``<root>/<library>/<submission_id>/``."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    def _resolve(self, storage_path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, storage_path))
        if os.path.commonpath([full, self.root]) != self.root:
            raise ValueError(f"Storage path escapes document root: {storage_path}")
        return full

    def store(self, submission_id: str, document_type: str, data: bytes, file_name: str,
              library: str) -> str:
        name = f"{document_type}_{safe_file_name(file_name)}"
        storage_path = "/".join((library, submission_id, name))
        full = self._resolve(storage_path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as fh:
            fh.write(data)
        logger.info("Stored document %s (%d bytes)", storage_path, len(data),
                    extra={"submission_id": submission_id})
        return storage_path

    def delete(self, storage_path: str) -> None:
        full = self._resolve(storage_path)
        try:
            os.remove(full)
        except FileNotFoundError:
            logger.warning("Document already absent: %s", storage_path)


def get_document_store() -> DocumentStore:
    from flask import current_app

    return current_app.extensions["document_store"]
