"""
Document store - resolves a ``SourceFile`` reference to its text payload.

Buckets, retention and upload handling belong to the storage service; the
core only reads what is already there.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from app.config import settings
from app.schemas import SourceFile

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def read_text(self, source: SourceFile) -> str:
        """Return the decoded text of *source*; raise ``OSError`` if unavailable."""
        ...


class LocalDocumentStore:
    """Reads uploaded files from a directory on local disk."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or settings.UPLOAD_DIR).resolve()

    def _resolve(self, source: SourceFile) -> Path:
        if "\x00" in source.path:
            raise FileNotFoundError(f"Invalid path: {source.path!r}")
        path = (self.root / source.path).resolve()
        if not path.is_relative_to(self.root):
            raise FileNotFoundError(f"Path escapes upload root: {source.path}")
        return path

    def read_text(self, source: SourceFile) -> str:
        path = self._resolve(source)
        logger.debug("Reading %s from %s", source.name, path)
        return path.read_text(encoding="utf-8", errors="replace")
