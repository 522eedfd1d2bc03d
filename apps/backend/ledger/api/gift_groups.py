from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .. import models
from ..core.database import get_db
from ..core.deps import get_blob_store, get_current_user
from ..schemas import GiftRecordGroupCreate, GiftRecordGroupOut, GiftRecordGroupUpdate
from ..services.blob_store import BlobStore
from ..services.gift_group_service import GiftGroupService


router = APIRouter(prefix="/gift-record-groups", tags=["gift-record-groups"])


@router.post("", response_model=GiftRecordGroupOut, status_code=201)
def create_gift_group(
    payload: GiftRecordGroupCreate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return GiftGroupService(db, blobs).create_group(payload, user_id=current_user.id)


# group_id may also be the id of a legacy single row
@router.get("/{group_id}", response_model=GiftRecordGroupOut)
def get_gift_group(
    group_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return GiftGroupService(db, blobs).get_group(group_id, user_id=current_user.id)


@router.patch("/{group_id}", response_model=GiftRecordGroupOut)
def update_gift_group(
    group_id: str,
    payload: GiftRecordGroupUpdate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return GiftGroupService(db, blobs).update_group(group_id, payload, user_id=current_user.id)


@router.delete("/{group_id}", status_code=204)
def delete_gift_group(
    group_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    GiftGroupService(db, blobs).delete_group(group_id, user_id=current_user.id)
    return Response(status_code=204)
