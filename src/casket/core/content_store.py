# src/casket/core/content_store.py
"""
Content store: durable, content-addressed blob storage.

Uses content-addressable storage (hash-based) for:
- Automatic deduplication of identical content
- Integrity verification on write (the caller-asserted key is never trusted)
- Write-once semantics: existing bytes are never overwritten

There is no delete. Removing a scope's claim happens in the ownership index;
bytes stay (no garbage collection).
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from casket.contracts.errors import HashMismatch, NotFound
from casket.contracts.results import PutResult, StoredContent
from casket.core.hashing import compute_key, extract_digest
from casket.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ContentStore(Protocol):
    """Protocol for content storage backends.

    All implementations must store content under the key computed from the
    bytes themselves and reject writes whose asserted key differs.
    """

    def put(self, expected_key: str, content: bytes, content_type: str) -> PutResult:
        """Store content under its computed key.

        Args:
            expected_key: Key the caller believes the content hashes to
            content: Raw bytes to store
            content_type: Content type recorded with the bytes

        Returns:
            PutResult; ``is_new`` is False when the key already existed

        Raises:
            HashMismatch: If compute_key(content) != expected_key
        """
        ...

    def get(self, key: str) -> StoredContent:
        """Retrieve content by key.

        Raises:
            NotFound: If content not found
        """
        ...

    def exists(self, key: str) -> bool:
        """Check if content exists."""
        ...


def _verify(expected_key: str, content: bytes) -> str:
    actual = compute_key(content)
    if actual != expected_key:
        logger.warning("hash_mismatch", expected=expected_key, actual=actual)
        raise HashMismatch(expected=expected_key, actual=actual)
    return actual


class FilesystemContentStore:
    """Filesystem-based content store.

    Stores blobs in a directory structure using first 2 characters
    of the digest as subdirectory for better file distribution, with the
    content type in a JSON sidecar.

    Structure: base_path/ab/abcdef123...  (+ abcdef123....meta)

    Files are written to a temporary name and renamed into place, so
    concurrent writers of the same key converge on one complete object.
    """

    def __init__(self, base_path: Path) -> None:
        """Initialize filesystem store.

        Args:
            base_path: Root directory for content storage
        """
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for_key(self, key: str) -> Path:
        """Get filesystem path for a content key."""
        try:
            digest = extract_digest(key)
        except ValueError:
            raise NotFound(key=key) from None
        # Use first 2 chars as subdirectory
        return self.base_path / digest[:2] / digest

    @staticmethod
    def _meta_path(path: Path) -> Path:
        return path.with_name(path.name + ".meta")

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def put(self, expected_key: str, content: bytes, content_type: str) -> PutResult:
        """Store content under its verified key."""
        key = _verify(expected_key, content)
        path = self._path_for_key(key)

        # Idempotent: skip if already exists
        if path.exists():
            return PutResult(key=key, size=len(content), is_new=False)

        path.parent.mkdir(parents=True, exist_ok=True)
        meta = json.dumps({"contentType": content_type, "size": len(content)})
        # Sidecar first: the data file's presence is what marks the key stored
        self._atomic_write(self._meta_path(path), meta.encode("utf-8"))
        self._atomic_write(path, content)
        return PutResult(key=key, size=len(content), is_new=True)

    def get(self, key: str) -> StoredContent:
        """Retrieve content by key."""
        path = self._path_for_key(key)
        if not path.exists():
            raise NotFound(key=key)
        meta = json.loads(self._meta_path(path).read_text(encoding="utf-8"))
        return StoredContent(
            key=key, content=path.read_bytes(), content_type=meta["contentType"]
        )

    def exists(self, key: str) -> bool:
        """Check if content exists."""
        try:
            return self._path_for_key(key).exists()
        except NotFound:
            return False


class MemoryContentStore:
    """In-memory content store for tests and local development.

    Note: Data is lost when process exits!
    """

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put(self, expected_key: str, content: bytes, content_type: str) -> PutResult:
        key = _verify(expected_key, content)
        with self._lock:
            is_new = key not in self._blobs
            if is_new:
                self._blobs[key] = (bytes(content), content_type)
        return PutResult(key=key, size=len(content), is_new=is_new)

    def get(self, key: str) -> StoredContent:
        try:
            content, content_type = self._blobs[key]
        except KeyError:
            raise NotFound(key=key) from None
        return StoredContent(key=key, content=content, content_type=content_type)

    def exists(self, key: str) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
