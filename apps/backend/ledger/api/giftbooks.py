from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import models
from ..core.database import get_db
from ..core.deps import get_blob_store, get_current_user
from ..schemas import (
    GiftbookCreate,
    GiftbookOut,
    GiftbookUpdate,
    GiftGroupFilters,
    GiftRecordGroupListItem,
)
from ..services.blob_store import BlobStore
from ..services.gift_group_service import GiftGroupService
from ..services.giftbook_service import GiftbookService


router = APIRouter(prefix="/giftbooks", tags=["giftbooks"])


def _book_to_schema(svc: GiftbookService, book: models.Giftbook, user_id: str) -> GiftbookOut:
    out = GiftbookOut.model_validate(book, from_attributes=True)
    out.summary = svc.summaries([book.id], user_id=user_id)[book.id]
    return out


@router.get("", response_model=list[GiftbookOut])
def list_giftbooks(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = GiftbookService(db)
    books = svc.list_books(user_id=current_user.id)
    summaries = svc.summaries([b.id for b in books], user_id=current_user.id)
    result = []
    for book in books:
        out = GiftbookOut.model_validate(book, from_attributes=True)
        out.summary = summaries[book.id]
        result.append(out)
    return result


@router.post("", response_model=GiftbookOut, status_code=201)
def create_giftbook(
    payload: GiftbookCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = GiftbookService(db)
    book = svc.create(payload, user_id=current_user.id)
    return _book_to_schema(svc, book, current_user.id)


@router.get("/{book_id}", response_model=GiftbookOut)
def get_giftbook(
    book_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = GiftbookService(db)
    book = svc.get_book(book_id, user_id=current_user.id)
    return _book_to_schema(svc, book, current_user.id)


@router.patch("/{book_id}", response_model=GiftbookOut)
def update_giftbook(
    book_id: str,
    payload: GiftbookUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    svc = GiftbookService(db)
    book = svc.update(book_id, payload, user_id=current_user.id)
    return _book_to_schema(svc, book, current_user.id)


@router.delete("/{book_id}", status_code=204)
def delete_giftbook(
    book_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    GiftbookService(db, blobs).delete(book_id, user_id=current_user.id)
    return Response(status_code=204)


@router.get("/{book_id}/record-groups", response_model=list[GiftRecordGroupListItem])
def list_record_groups(
    book_id: str,
    has_cash: Optional[bool] = Query(None),
    has_items: Optional[bool] = Query(None),
    gift_type: Optional[models.GiftType] = Query(None),
    q: Optional[str] = Query(None, max_length=128),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    filters = GiftGroupFilters(has_cash=has_cash, has_items=has_items, gift_type=gift_type, q=q)
    return GiftGroupService(db, blobs).list_groups(book_id, filters, user_id=current_user.id)
