"""
Gift record grouping engine

One gift occasion is stored as several ``gift_records`` rows sharing a
``group_id``: at most one cash row plus any number of item rows. Legacy rows
have no ``group_id``; their own id is the group id. This service rebuilds the
group from rows and writes partial edits back as row inserts, updates and
deletes inside a single transaction.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..core.errors import NotFoundError, ValidationError
from ..utils.normalization import (
    MONEY_PLACES,
    NumberRule,
    normalize_number,
    normalize_text,
    normalize_unit,
    require_name,
    to_decimal,
)
from .attachment_placement import AttachmentPatch, apply_group_attachment, order_cluster
from .blob_store import BlobStore, release_blobs, release_superseded_blob
from .child_diff import diff_children
from .giftbook_service import GiftbookService


logger = logging.getLogger(__name__)


@dataclass
class ItemValues:
    id: Optional[str]
    item_name: str
    quantity: Decimal
    unit: str
    estimated_value: Decimal


@dataclass
class GroupValues:
    counterparty_name: str
    gift_date: datetime
    notes: Optional[str]
    has_cash: bool
    amount: Optional[Decimal]
    currency: str
    items: list[ItemValues] = field(default_factory=list)


def _has_value(raw) -> bool:
    return raw is not None and not (isinstance(raw, str) and not raw.strip())


def validate_item(item: schemas.GiftItemIn) -> ItemValues:
    return ItemValues(
        id=item.id or None,
        item_name=require_name(item.item_name, "item_name", max_length=255),
        quantity=normalize_number(item.quantity, NumberRule.POSITIVE, "quantity", MONEY_PLACES),
        unit=normalize_unit(item.unit),
        estimated_value=normalize_number(
            item.estimated_value if _has_value(item.estimated_value) else 0,
            NumberRule.NON_NEGATIVE,
            "estimated_value",
            MONEY_PLACES,
        ),
    )


def validate_group(payload: schemas.GiftRecordGroupWrite) -> GroupValues:
    """Validate the whole desired group before anything is written.

    ``has_cash``/``has_items`` default to "amount given" / "items given".
    """
    counterparty = require_name(payload.counterparty_name, "counterparty_name")
    if payload.gift_date is None:
        raise ValidationError("gift_date is required", code="missing_gift_date")

    has_cash = payload.has_cash if payload.has_cash is not None else _has_value(payload.amount)
    has_items = payload.has_items if payload.has_items is not None else bool(payload.items)
    if not has_cash and not has_items:
        raise ValidationError("cash or at least one item is required", code="empty_group")

    amount = normalize_number(payload.amount, NumberRule.POSITIVE, "amount", MONEY_PLACES) if has_cash else None

    items: list[ItemValues] = []
    if has_items:
        if not payload.items:
            raise ValidationError("at least one item row required", code="items_empty")
        items = [validate_item(item) for item in payload.items]
        duplicated = [item_id for item_id, n in Counter(i.id for i in items if i.id).items() if n > 1]
        if duplicated:
            raise ValidationError(f"duplicate item id: {duplicated[0]}", code="duplicate_child_id")

    return GroupValues(
        counterparty_name=counterparty,
        gift_date=payload.gift_date,
        notes=normalize_text(payload.notes),
        has_cash=has_cash,
        amount=amount,
        currency=normalize_text(payload.currency) or settings.DEFAULT_CURRENCY,
        items=items,
    )


def _attachment_holder(rows: list[models.GiftRecord]) -> models.GiftRecord | None:
    for row in rows:
        if row.attachment_key:
            return row
    for row in rows:
        if row.has_attachment:
            return row
    return None


def _first_notes(rows: list[models.GiftRecord]) -> str | None:
    for row in rows:
        if row.notes and row.notes.strip():
            return row.notes
    return None


def _item_out(row: models.GiftRecord) -> schemas.GiftItemOut:
    return schemas.GiftItemOut(
        id=row.id,
        item_name=row.item_name or "",
        quantity=float(to_decimal(row.quantity)),
        unit=row.unit or settings.DEFAULT_ITEM_UNIT,
        estimated_value=float(to_decimal(row.estimated_value)),
    )


def build_group(rows: list[models.GiftRecord]) -> schemas.GiftRecordGroupOut:
    """Reassemble one group from its rows (cash first, then items)."""
    ordered = order_cluster(rows)
    first = ordered[0]
    cash = next((r for r in ordered if r.gift_type is models.GiftType.CASH), None)
    holder = _attachment_holder(ordered)
    return schemas.GiftRecordGroupOut(
        id=first.cluster_id,
        giftbook_id=first.giftbook_id,
        counterparty_name=first.counterparty_name,
        gift_date=first.gift_date,
        notes=_first_notes(ordered),
        cash_amount=float(to_decimal(cash.amount)) if cash is not None else None,
        currency=(cash.currency or settings.DEFAULT_CURRENCY) if cash is not None else None,
        items=[_item_out(r) for r in ordered if r.gift_type is models.GiftType.ITEM],
        attachment_key=holder.attachment_key if holder else None,
        attachment_name=holder.attachment_name if holder else None,
        attachment_type=holder.attachment_type if holder else None,
    )


def summarize_group(rows: list[models.GiftRecord]) -> schemas.GiftRecordGroupListItem:
    ordered = order_cluster(rows)
    first = ordered[0]
    cash_rows = [r for r in ordered if r.gift_type is models.GiftType.CASH]
    item_rows = [r for r in ordered if r.gift_type is models.GiftType.ITEM]
    holder = _attachment_holder(ordered)
    cash_amount = sum((to_decimal(r.amount) for r in cash_rows), Decimal("0")) if cash_rows else None
    return schemas.GiftRecordGroupListItem(
        id=first.cluster_id,
        giftbook_id=first.giftbook_id,
        counterparty_name=first.counterparty_name,
        gift_date=first.gift_date,
        notes=_first_notes(ordered),
        cash_amount=float(cash_amount) if cash_amount is not None else None,
        currency=(cash_rows[0].currency or settings.DEFAULT_CURRENCY) if cash_rows else None,
        items_count=len(item_rows),
        items_estimated_total=float(sum((to_decimal(r.estimated_value) for r in item_rows), Decimal("0"))),
        attachment_key=holder.attachment_key if holder else None,
        attachment_name=holder.attachment_name if holder else None,
        attachment_type=holder.attachment_type if holder else None,
        created_at=max(r.created_at for r in ordered),
    )


def _matches_filters(group: schemas.GiftRecordGroupListItem, filters: schemas.GiftGroupFilters) -> bool:
    has_cash = group.cash_amount is not None
    has_items = group.items_count > 0
    if filters.has_cash is not None and has_cash != filters.has_cash:
        return False
    if filters.has_items is not None and has_items != filters.has_items:
        return False
    # legacy single-type filter, only when the flag filters are absent
    if filters.has_cash is None and filters.has_items is None and filters.gift_type is not None:
        if filters.gift_type is models.GiftType.CASH:
            return has_cash
        return has_items
    return True


class GiftGroupService:
    def __init__(self, db: Session, blobs: BlobStore) -> None:
        self.db = db
        self.blobs = blobs

    # ---- Reads -------------------------------------------------------------
    def load_group(self, group_id: str, *, user_id: str) -> list[models.GiftRecord]:
        record = models.GiftRecord
        rows = (
            self.db.query(record)
            .filter(
                record.user_id == user_id,
                record.direction == models.GiftDirection.RECEIVED,
                or_(record.group_id == group_id, and_(record.id == group_id, record.group_id.is_(None))),
            )
            .all()
        )
        return order_cluster(rows)

    def _require_group(self, group_id: str, *, user_id: str) -> list[models.GiftRecord]:
        rows = self.load_group(group_id, user_id=user_id)
        if not rows:
            raise NotFoundError("Gift record not found", code="gift_group_not_found")
        return rows

    def get_group(self, group_id: str, *, user_id: str) -> schemas.GiftRecordGroupOut:
        return build_group(self._require_group(group_id, user_id=user_id))

    def list_groups(
        self,
        giftbook_id: str,
        filters: schemas.GiftGroupFilters,
        *,
        user_id: str,
    ) -> list[schemas.GiftRecordGroupListItem]:
        GiftbookService(self.db).get_book(giftbook_id, user_id=user_id)

        record = models.GiftRecord
        q = self.db.query(record).filter(
            record.user_id == user_id,
            record.giftbook_id == giftbook_id,
            record.direction == models.GiftDirection.RECEIVED,
        )
        term = normalize_text(filters.q)
        if term:
            like = f"%{term}%"
            q = q.filter(or_(record.counterparty_name.ilike(like), record.notes.ilike(like)))

        clusters: dict[str, list[models.GiftRecord]] = {}
        for row in q.all():
            clusters.setdefault(row.cluster_id, []).append(row)

        groups = [summarize_group(rows) for rows in clusters.values()]
        groups = [g for g in groups if _matches_filters(g, filters)]
        latest = {
            cluster_id: (max(r.gift_date for r in rows), max(r.created_at for r in rows))
            for cluster_id, rows in clusters.items()
        }
        groups.sort(key=lambda g: latest[g.id], reverse=True)
        return groups

    # ---- Writes ------------------------------------------------------------
    @staticmethod
    def _shared(row: models.GiftRecord, group_id: str, values: GroupValues) -> None:
        row.group_id = group_id
        row.counterparty_name = values.counterparty_name
        row.gift_date = values.gift_date
        row.notes = values.notes

    @staticmethod
    def _write_item(row: models.GiftRecord, item: ItemValues, position: int) -> None:
        row.item_name = item.item_name
        row.quantity = item.quantity
        row.unit = item.unit
        row.estimated_value = item.estimated_value
        row.position = position

    def _new_row(
        self,
        *,
        user_id: str,
        giftbook_id: str,
        gift_type: models.GiftType,
    ) -> models.GiftRecord:
        row = models.GiftRecord(
            user_id=user_id,
            giftbook_id=giftbook_id,
            direction=models.GiftDirection.RECEIVED,
            gift_type=gift_type,
        )
        self.db.add(row)
        return row

    def create_group(self, payload: schemas.GiftRecordGroupCreate, *, user_id: str) -> schemas.GiftRecordGroupOut:
        book = GiftbookService(self.db).get_book(payload.giftbook_id, user_id=user_id)
        values = validate_group(payload)
        group_id = models.new_id()
        attachment = AttachmentPatch.from_payload(payload)

        try:
            rows: list[models.GiftRecord] = []
            if values.has_cash:
                cash = self._new_row(user_id=user_id, giftbook_id=book.id, gift_type=models.GiftType.CASH)
                cash.amount = values.amount
                cash.currency = values.currency
                rows.append(cash)
            for position, item in enumerate(values.items):
                row = self._new_row(user_id=user_id, giftbook_id=book.id, gift_type=models.GiftType.ITEM)
                self._write_item(row, item, position)
                rows.append(row)
            for row in rows:
                self._shared(row, group_id, values)

            self.db.flush()
            apply_group_attachment(order_cluster(rows), attachment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return self.get_group(group_id, user_id=user_id)

    def update_group(
        self,
        group_id: str,
        payload: schemas.GiftRecordGroupUpdate,
        *,
        user_id: str,
    ) -> schemas.GiftRecordGroupOut:
        rows = self._require_group(group_id, user_id=user_id)
        values = validate_group(payload)

        patch = AttachmentPatch.from_payload(payload)
        holder = _attachment_holder(rows)
        previous_key = holder.attachment_key if holder else None

        giftbook_id = rows[0].giftbook_id
        cash_rows = [r for r in rows if r.gift_type is models.GiftType.CASH]
        item_rows = [r for r in rows if r.gift_type is models.GiftType.ITEM]
        diff = diff_children(values.items, item_rows)

        try:
            # 1) 현금 행: upsert 또는 삭제
            cash = cash_rows[0] if cash_rows else None
            for extra in cash_rows[1:]:
                self.db.delete(extra)
            if values.has_cash:
                if cash is None:
                    cash = self._new_row(user_id=user_id, giftbook_id=giftbook_id, gift_type=models.GiftType.CASH)
                cash.amount = values.amount
                cash.currency = values.currency
            elif cash is not None:
                self.db.delete(cash)
                cash = None

            # 2) 물품 행: diff 적용
            updates = {item.id: row for row, item in diff.to_update}
            survivors: list[models.GiftRecord] = [cash] if cash is not None else []
            for position, item in enumerate(values.items):
                row = updates.get(item.id) if item.id else None
                if row is None:
                    row = self._new_row(user_id=user_id, giftbook_id=giftbook_id, gift_type=models.GiftType.ITEM)
                self._write_item(row, item, position)
                survivors.append(row)
            for row in diff.to_delete:
                self.db.delete(row)

            # 3) 공통 필드 + legacy 행 group_id 부여
            for row in survivors:
                self._shared(row, group_id, values)

            # 4) 첨부파일: 명시된 경우에만 재배치
            self.db.flush()
            new_holder = apply_group_attachment(order_cluster(survivors), patch)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        current_key = new_holder.attachment_key if new_holder is not None else None
        if patch.is_explicit and previous_key and previous_key != current_key:
            release_superseded_blob(self.blobs, previous_key)
        logger.info(
            "Updated gift group %s: %d updated, %d inserted, %d deleted item rows",
            group_id,
            len(diff.to_update),
            len(diff.to_insert),
            len(diff.to_delete),
        )
        return self.get_group(group_id, user_id=user_id)

    def delete_group(self, group_id: str, *, user_id: str) -> None:
        rows = self._require_group(group_id, user_id=user_id)
        if settings.RELEASE_GIFT_GROUP_ATTACHMENTS:
            release_blobs(self.blobs, [r.attachment_key for r in rows])
        try:
            for row in rows:
                self.db.delete(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Deleted gift group %s (%d rows)", group_id, len(rows))
