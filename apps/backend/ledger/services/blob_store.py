"""
Attachment blob storage

The ledger only needs two calls from a blob store: ``upload`` and
``delete``. ``LocalBlobStore`` keeps blobs on disk under ``BLOB_DIR``.
"""

from __future__ import annotations

import fnmatch
import logging
import secrets
from pathlib import Path, PurePosixPath
from typing import Iterable

from ..core.config import settings
from ..core.errors import DependencyError, ValidationError


logger = logging.getLogger(__name__)


class BlobStore:
    """Interface of the external blob store."""

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    def __init__(self, root: str | Path, base_url: str = "/blobs") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, key: str) -> Path:
        pure = PurePosixPath(key)
        if pure.is_absolute() or ".." in pure.parts or not pure.parts:
            raise ValidationError("Invalid attachment key", code="invalid_attachment_key")
        candidate = (self.root / Path(*pure.parts)).resolve()
        root = self.root.resolve()
        if root not in candidate.parents:
            raise ValidationError("Invalid attachment key", code="invalid_attachment_key")
        return candidate

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_suffix(path.suffix + ".tmp")
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except OSError as exc:
            raise DependencyError("Failed to store attachment", code="blob_upload_failed") from exc
        return self.url_for(key)

    def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise DependencyError("Failed to delete attachment", code="blob_delete_failed") from exc

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"


def build_blob_key(pathname: str) -> str:
    """Validate an upload pathname and append a random suffix to its file name."""
    pathname = pathname.strip().lstrip("/")
    if not any(pathname.startswith(prefix) for prefix in settings.ALLOWED_ATTACHMENT_PREFIXES):
        raise ValidationError("Upload path is not allowed", code="invalid_upload_path")
    pure = PurePosixPath(pathname)
    if ".." in pure.parts or len(pure.parts) < 2:
        raise ValidationError("Upload path is not allowed", code="invalid_upload_path")
    suffix = secrets.token_urlsafe(8)
    stem, dot, ext = pure.name.rpartition(".")
    name = f"{stem}-{suffix}.{ext}" if dot and stem else f"{pure.name}-{suffix}"
    return str(pure.with_name(name))


def check_attachment_key(key: str | None) -> str | None:
    """Validate a key before it is stored on a row; blank means no attachment.

    A stored key must stay deletable later, so it has to sit under one of the
    upload prefixes and must not leave the blob root.
    """
    if key is None or not key.strip():
        return None
    key = key.strip()
    pure = PurePosixPath(key)
    if (
        pure.is_absolute()
        or ".." in pure.parts
        or len(pure.parts) < 2
        or not any(key.startswith(prefix) for prefix in settings.ALLOWED_ATTACHMENT_PREFIXES)
    ):
        raise ValidationError("Invalid attachment key", code="invalid_attachment_key")
    return key


def is_allowed_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    return any(fnmatch.fnmatch(content_type, pattern) for pattern in settings.ALLOWED_ATTACHMENT_TYPES)


def release_blobs(store: BlobStore, keys: Iterable[str | None]) -> None:
    """Delete every key, stopping at the first failure.

    Used on delete paths: the caller must not remove rows if this raises.
    """
    for key in keys:
        if not key:
            continue
        try:
            store.delete(key)
        except DependencyError:
            logger.error("Attachment delete failed, aborting: key=%s", key, exc_info=True)
            raise


def release_superseded_blob(store: BlobStore, key: str | None) -> None:
    """Best-effort cleanup after an edit replaced or removed an attachment."""
    if not key:
        return
    try:
        store.delete(key)
    except (DependencyError, ValidationError):
        logger.warning("Could not delete superseded attachment: key=%s", key, exc_info=True)
