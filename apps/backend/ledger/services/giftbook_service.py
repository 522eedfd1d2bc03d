from __future__ import annotations

import logging

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..core.errors import NotFoundError
from ..utils.normalization import normalize_text, require_name, to_decimal
from .blob_store import BlobStore, release_blobs


logger = logging.getLogger(__name__)


class GiftbookService:
    def __init__(self, db: Session, blobs: BlobStore | None = None) -> None:
        self.db = db
        self.blobs = blobs

    def get_book(self, book_id: str, *, user_id: str) -> models.Giftbook:
        book = (
            self.db.query(models.Giftbook)
            .filter(models.Giftbook.id == book_id, models.Giftbook.user_id == user_id)
            .first()
        )
        if book is None:
            raise NotFoundError("Giftbook not found", code="giftbook_not_found")
        return book

    def list_books(self, *, user_id: str) -> list[models.Giftbook]:
        return (
            self.db.query(models.Giftbook)
            .filter(models.Giftbook.user_id == user_id)
            .order_by(
                func.coalesce(models.Giftbook.event_date, models.Giftbook.created_at).desc(),
                models.Giftbook.created_at.desc(),
            )
            .all()
        )

    def summaries(self, book_ids: list[str], *, user_id: str) -> dict[str, schemas.GiftbookSummary]:
        """Per-book totals over received records; record_count counts gift groups."""
        if not book_ids:
            return {}
        record = models.GiftRecord
        cash_sum = func.sum(case((record.gift_type == models.GiftType.CASH, record.amount), else_=0))
        item_sum = func.sum(case((record.gift_type == models.GiftType.ITEM, record.estimated_value), else_=0))
        groups = func.count(func.distinct(func.coalesce(record.group_id, record.id)))
        rows = (
            self.db.query(record.giftbook_id, cash_sum, item_sum, groups)
            .filter(
                record.user_id == user_id,
                record.direction == models.GiftDirection.RECEIVED,
                record.giftbook_id.in_(book_ids),
            )
            .group_by(record.giftbook_id)
            .all()
        )
        result = {book_id: schemas.GiftbookSummary() for book_id in book_ids}
        for book_id, cash_total, item_total, count in rows:
            result[book_id] = schemas.GiftbookSummary(
                cash_total=float(to_decimal(cash_total)),
                item_estimated_total=float(to_decimal(item_total)),
                record_count=int(count or 0),
            )
        return result

    def create(self, payload: schemas.GiftbookCreate, *, user_id: str) -> models.Giftbook:
        book = models.Giftbook(
            user_id=user_id,
            name=require_name(payload.name, "name"),
            event_type=normalize_text(payload.event_type),
            event_date=payload.event_date,
            location=normalize_text(payload.location),
            description=normalize_text(payload.description),
        )
        self.db.add(book)
        self.db.commit()
        self.db.refresh(book)
        return book

    def update(self, book_id: str, payload: schemas.GiftbookUpdate, *, user_id: str) -> models.Giftbook:
        book = self.get_book(book_id, user_id=user_id)
        patch = payload.model_dump(exclude_unset=True)
        if not patch:
            return book
        if "name" in patch:
            patch["name"] = require_name(patch["name"], "name")
        for key in ("event_type", "location", "description"):
            if key in patch:
                patch[key] = normalize_text(patch[key])
        for key, value in patch.items():
            setattr(book, key, value)
        self.db.commit()
        self.db.refresh(book)
        return book

    def delete(self, book_id: str, *, user_id: str) -> None:
        book = self.get_book(book_id, user_id=user_id)
        if settings.RELEASE_GIFT_GROUP_ATTACHMENTS and self.blobs is not None:
            release_blobs(self.blobs, [r.attachment_key for r in book.records])
        count = len(book.records)
        self.db.delete(book)
        self.db.commit()
        logger.info("Deleted giftbook %s with %d gift rows", book_id, count)

