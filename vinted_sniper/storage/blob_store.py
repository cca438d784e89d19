"""Whole-document JSON persistence with atomic writes."""

import json
import logging
import os
import tempfile
import threading
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class CorruptDocumentError(RuntimeError):
    """Raised when a stored document exists but cannot be read or decoded."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Corrupt document '{name}': {reason}")
        self.name = name
        self.reason = reason


class JsonBlobStore:
    """
    Key-value store of JSON documents, one file per key.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers never see a partially written document.
    """

    def __init__(self, base_path: str | Path = "data"):
        self.base_path = Path(base_path)
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        return self.base_path / f"{name}.json"

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def load(self, name: str) -> Optional[Any]:
        """
        Load a document.

        Args:
            name: Document key

        Returns:
            Decoded document, or None if it was never written or is empty

        Raises:
            CorruptDocumentError: If the file is unreadable or not valid JSON
        """
        path = self._path(name)
        if not path.exists():
            return None

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CorruptDocumentError(name, str(e)) from e

        if not content.strip():
            return None

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise CorruptDocumentError(name, str(e)) from e

    def save(self, name: str, document: Any) -> None:
        """
        Atomically replace a document.

        Args:
            name: Document key
            document: JSON-serialisable value

        Raises:
            OSError: If the document cannot be written
        """
        path = self._path(name)
        data = json.dumps(document, ensure_ascii=False, indent=2, default=str)

        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{name}.", suffix=".tmp", dir=str(path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                with suppress(FileNotFoundError):
                    os.unlink(tmp_name)
                raise

        logger.debug(f"Saved document {name} ({len(data)} bytes)")

