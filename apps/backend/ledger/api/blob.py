from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from .. import models
from ..core.config import settings
from ..core.deps import get_blob_store, get_current_user
from ..core.errors import ValidationError
from ..schemas import BlobUploadOut
from ..services.blob_store import BlobStore, build_blob_key, is_allowed_content_type


router = APIRouter(prefix="/blob", tags=["blob"])


@router.post("/upload", response_model=BlobUploadOut, status_code=201)
async def upload_attachment(
    file: UploadFile = File(...),
    pathname: str = Form(...),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    if not file.filename:
        raise ValidationError("file name is required", code="missing_file_name")
    if not is_allowed_content_type(file.content_type):
        raise ValidationError("unsupported attachment type", code="invalid_content_type")

    # 제한 크기 + 1 바이트만 읽어 초과 여부 판단
    data = await file.read(settings.MAX_ATTACHMENT_BYTES + 1)
    if not data:
        raise ValidationError("file is empty", code="empty_file")
    if len(data) > settings.MAX_ATTACHMENT_BYTES:
        raise ValidationError("attachment is too large", code="attachment_too_large")

    key = build_blob_key(pathname)
    url = blobs.upload(key, data, file.content_type)
    return BlobUploadOut(
        key=key,
        url=url,
        name=file.filename,
        content_type=file.content_type or "application/octet-stream",
        size_bytes=len(data),
    )
