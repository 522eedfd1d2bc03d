from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import models
from ..core.database import get_db
from ..core.deps import get_blob_store, get_current_user
from ..schemas import (
    GivenGiftCreate,
    GivenGiftItemOut,
    GivenGiftListItem,
    GivenGiftListOut,
    GivenGiftOut,
    GivenGiftUpdate,
)
from ..services.blob_store import BlobStore
from ..services.given_gift_service import GivenGiftService, items_estimated_total, stored_items


router = APIRouter(prefix="/gifts-given", tags=["gifts-given"])


def _gift_to_schema(row: models.GivenGift) -> GivenGiftOut:
    return GivenGiftOut(
        id=row.id,
        user_id=row.user_id,
        recipient_name=row.recipient_name,
        gift_date=row.gift_date,
        occasion=row.occasion,
        notes=row.notes,
        cash_amount=float(row.cash_amount) if row.cash_amount is not None else None,
        items=[GivenGiftItemOut(**item) for item in stored_items(row)],
        attachment_key=row.attachment_key,
        attachment_name=row.attachment_name,
        attachment_type=row.attachment_type,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _gift_to_list_item(row: models.GivenGift) -> GivenGiftListItem:
    return GivenGiftListItem(
        id=row.id,
        user_id=row.user_id,
        recipient_name=row.recipient_name,
        gift_date=row.gift_date,
        occasion=row.occasion,
        notes=row.notes,
        cash_amount=float(row.cash_amount) if row.cash_amount is not None else None,
        items_count=len(stored_items(row)),
        items_estimated_total=float(items_estimated_total(row)),
        attachment_key=row.attachment_key,
        attachment_name=row.attachment_name,
        attachment_type=row.attachment_type,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


@router.get("", response_model=GivenGiftListOut)
def list_given_gifts(
    q: Optional[str] = Query(None, max_length=128),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    has_cash: Optional[bool] = Query(None),
    has_items: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    svc = GivenGiftService(db, blobs)
    rows = svc.list_gifts(
        user_id=current_user.id,
        q=q,
        start_date=start_date,
        end_date=end_date,
        has_cash=has_cash,
        has_items=has_items,
    )
    return GivenGiftListOut(data=[_gift_to_list_item(r) for r in rows], summary=svc.summarize(rows))


@router.post("", response_model=GivenGiftOut, status_code=201)
def create_given_gift(
    payload: GivenGiftCreate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _gift_to_schema(GivenGiftService(db, blobs).create(payload, user_id=current_user.id))


@router.get("/{gift_id}", response_model=GivenGiftOut)
def get_given_gift(
    gift_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _gift_to_schema(GivenGiftService(db, blobs).get(gift_id, user_id=current_user.id))


@router.patch("/{gift_id}", response_model=GivenGiftOut)
def update_given_gift(
    gift_id: str,
    payload: GivenGiftUpdate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _gift_to_schema(GivenGiftService(db, blobs).update(gift_id, payload, user_id=current_user.id))


@router.delete("/{gift_id}", status_code=204)
def delete_given_gift(
    gift_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    GivenGiftService(db, blobs).delete(gift_id, user_id=current_user.id)
    return Response(status_code=204)
