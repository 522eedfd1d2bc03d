from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .. import models
from ..services.blob_store import BlobStore, LocalBlobStore
from .config import settings
from .database import get_db
from .errors import AuthenticationError


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    """Resolve the session user from the ``X-User-Id`` header.

    With ``DEMO_USER_FALLBACK`` enabled and no header, returns the first user
    (creates a demo if none). Tests may override this dependency.
    """
    if x_user_id:
        user = db.get(models.User, x_user_id)
        if user is None:
            raise AuthenticationError("Unknown session user")
        return user

    if not settings.DEMO_USER_FALLBACK:
        raise AuthenticationError("Not signed in")

    user = db.query(models.User).order_by(models.User.created_at).first()
    if not user:
        user = models.User(email="demo@example.com", username="Demo")
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


@lru_cache
def _local_blob_store() -> LocalBlobStore:
    return LocalBlobStore(settings.BLOB_DIR, settings.BLOB_BASE_URL)


def get_blob_store() -> BlobStore:
    return _local_blob_store()
