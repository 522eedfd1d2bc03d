"""
Given-gift ledger

Unlike received gift groups, a given gift is a single row: cash on the row,
items in a JSON array column. Editing ``items`` replaces the whole array.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.errors import NotFoundError, ValidationError
from ..utils.normalization import (
    MONEY_PLACES,
    NumberRule,
    QUANTITY_PLACES,
    normalize_number,
    normalize_text,
    normalize_unit,
    optional_number,
    require_name,
    to_decimal,
)
from ..utils.tristate import Cleared, Set, field_patch
from .attachment_placement import AttachmentPatch, apply_row_attachment
from .blob_store import BlobStore, check_attachment_key, release_blobs, release_superseded_blob


logger = logging.getLogger(__name__)


def normalize_items(items: list[schemas.GivenGiftItemIn] | None) -> list[dict[str, Any]]:
    """Validate items and return the JSON form stored on the row."""
    result: list[dict[str, Any]] = []
    for item in items or []:
        estimated = item.estimated_value
        if estimated is None or (isinstance(estimated, str) and not estimated.strip()):
            estimated = 0
        result.append(
            {
                "item_name": require_name(item.item_name, "item_name", max_length=255),
                "quantity": float(normalize_number(item.quantity, NumberRule.POSITIVE, "quantity", QUANTITY_PLACES)),
                "unit": normalize_unit(item.unit),
                "estimated_value": float(normalize_number(estimated, NumberRule.NON_NEGATIVE, "estimated_value", MONEY_PLACES)),
            }
        )
    return result


def stored_items(row: models.GivenGift) -> list[dict[str, Any]]:
    """Read the JSON column defensively; malformed entries are dropped."""
    items = row.items if isinstance(row.items, list) else []
    result = []
    for raw in items:
        if not isinstance(raw, dict) or not raw.get("item_name"):
            continue
        result.append(
            {
                "item_name": str(raw["item_name"]),
                "quantity": float(to_decimal(raw.get("quantity"))),
                "unit": str(raw.get("unit") or normalize_unit(None)),
                "estimated_value": float(to_decimal(raw.get("estimated_value"))),
            }
        )
    return result


def items_estimated_total(row: models.GivenGift) -> Decimal:
    return sum((to_decimal(item["estimated_value"]) for item in stored_items(row)), Decimal("0"))


def _require_content(cash_amount: Optional[Decimal], items: list[dict[str, Any]]) -> None:
    if cash_amount is None and not items:
        raise ValidationError("cash or at least one item is required", code="empty_gift")


class GivenGiftService:
    def __init__(self, db: Session, blobs: BlobStore) -> None:
        self.db = db
        self.blobs = blobs

    def get(self, gift_id: str, *, user_id: str) -> models.GivenGift:
        row = (
            self.db.query(models.GivenGift)
            .filter(models.GivenGift.id == gift_id, models.GivenGift.user_id == user_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Given gift not found", code="given_gift_not_found")
        return row

    def list_gifts(
        self,
        *,
        user_id: str,
        q: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        has_cash: bool | None = None,
        has_items: bool | None = None,
    ) -> list[models.GivenGift]:
        gift = models.GivenGift
        query = self.db.query(gift).filter(gift.user_id == user_id)
        term = normalize_text(q)
        if term:
            like = f"%{term}%"
            query = query.filter(or_(gift.recipient_name.ilike(like), gift.occasion.ilike(like), gift.notes.ilike(like)))
        if start_date is not None:
            query = query.filter(gift.gift_date >= datetime.combine(start_date, time.min))
        if end_date is not None:
            query = query.filter(gift.gift_date < datetime.combine(end_date + timedelta(days=1), time.min))
        if has_cash is True:
            query = query.filter(gift.cash_amount.is_not(None))
        elif has_cash is False:
            query = query.filter(gift.cash_amount.is_(None))

        rows = query.order_by(gift.gift_date.desc(), gift.created_at.desc()).all()
        # JSON 배열은 DB 방언마다 다르므로 파이썬에서 필터링
        if has_items is not None:
            rows = [r for r in rows if bool(stored_items(r)) == has_items]
        return rows

    @staticmethod
    def summarize(rows: list[models.GivenGift]) -> schemas.GivenGiftSummary:
        cash_total = sum((to_decimal(r.cash_amount) for r in rows if r.cash_amount is not None), Decimal("0"))
        item_total = sum((items_estimated_total(r) for r in rows), Decimal("0"))
        return schemas.GivenGiftSummary(
            cash_total=float(cash_total),
            item_estimated_total=float(item_total),
            record_count=len(rows),
        )

    def create(self, payload: schemas.GivenGiftCreate, *, user_id: str) -> models.GivenGift:
        recipient = require_name(payload.recipient_name, "recipient_name")
        if payload.gift_date is None:
            raise ValidationError("gift_date is required", code="missing_gift_date")
        cash_amount = optional_number(payload.cash_amount, NumberRule.POSITIVE, "cash_amount", MONEY_PLACES)
        items = normalize_items(payload.items)
        _require_content(cash_amount, items)

        row = models.GivenGift(
            user_id=user_id,
            recipient_name=recipient,
            gift_date=payload.gift_date,
            occasion=normalize_text(payload.occasion),
            notes=normalize_text(payload.notes),
            cash_amount=cash_amount,
            items=items,
            attachment_key=check_attachment_key(payload.attachment_key),
            attachment_name=normalize_text(payload.attachment_name),
            attachment_type=normalize_text(payload.attachment_type),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, gift_id: str, payload: schemas.GivenGiftUpdate, *, user_id: str) -> models.GivenGift:
        row = self.get(gift_id, user_id=user_id)
        fields = payload.model_fields_set

        recipient = (
            require_name(payload.recipient_name, "recipient_name")
            if "recipient_name" in fields
            else row.recipient_name
        )
        if "gift_date" in fields and payload.gift_date is None:
            raise ValidationError("gift_date is required", code="missing_gift_date")

        cash_patch = field_patch(payload, "cash_amount")
        cash_amount = row.cash_amount
        if isinstance(cash_patch, Cleared):
            cash_amount = None
        elif isinstance(cash_patch, Set):
            cash_amount = optional_number(cash_patch.value, NumberRule.POSITIVE, "cash_amount", MONEY_PLACES)

        items = normalize_items(payload.items) if "items" in fields else stored_items(row)
        _require_content(cash_amount, items)
        attachment = AttachmentPatch.from_payload(payload)

        try:
            row.recipient_name = recipient
            if payload.gift_date is not None:
                row.gift_date = payload.gift_date
            if "occasion" in fields:
                row.occasion = normalize_text(payload.occasion)
            if "notes" in fields:
                row.notes = normalize_text(payload.notes)
            row.cash_amount = cash_amount
            row.items = items
            superseded = apply_row_attachment(row, attachment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        release_superseded_blob(self.blobs, superseded)
        self.db.refresh(row)
        return row

    def delete(self, gift_id: str, *, user_id: str) -> None:
        row = self.get(gift_id, user_id=user_id)
        release_blobs(self.blobs, [row.attachment_key])
        self.db.delete(row)
        self.db.commit()
