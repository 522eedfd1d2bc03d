"""
Attachment placement

A cluster (gift group) shares one attachment, stored on exactly one row:
the cash row when the cluster has one, otherwise its first item row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from pydantic import BaseModel

from .. import models
from ..core.errors import ValidationError
from ..utils.tristate import CLEARED, FieldPatch, UNCHANGED, Cleared, Set, Unchanged, field_patch, resolve
from .blob_store import check_attachment_key


@dataclass(frozen=True)
class AttachmentPatch:
    key: FieldPatch[str] = UNCHANGED
    name: FieldPatch[str] = UNCHANGED
    type: FieldPatch[str] = UNCHANGED

    @classmethod
    def from_payload(cls, payload: BaseModel) -> "AttachmentPatch":
        """Read the three attachment fields; a sent key is validated here."""
        key = field_patch(payload, "attachment_key")
        if isinstance(key, Set):
            checked = check_attachment_key(key.value)
            key = Set(checked) if checked else CLEARED
        return cls(
            key=key,
            name=field_patch(payload, "attachment_name"),
            type=field_patch(payload, "attachment_type"),
        )

    @property
    def is_explicit(self) -> bool:
        return not all(isinstance(p, Unchanged) for p in (self.key, self.name, self.type))

    @property
    def clears_key(self) -> bool:
        return isinstance(self.key, Cleared)

    def resolved(self) -> tuple[str | None, str | None, str | None]:
        """Triple written to the target row; omitted fields count as null."""
        return (
            self.key.value if isinstance(self.key, Set) else None,
            self.name.value if isinstance(self.name, Set) else None,
            self.type.value if isinstance(self.type, Set) else None,
        )

    def sets_anything(self) -> bool:
        return any(v for v in self.resolved())


def _row_order(row: models.GiftRecord) -> tuple[int, int, datetime]:
    # rows added in the current session have no created_at until flush
    return (
        0 if row.gift_type is models.GiftType.CASH else 1,
        row.position or 0,
        row.created_at or datetime.max,
    )


def order_cluster(rows: Sequence[models.GiftRecord]) -> list[models.GiftRecord]:
    """Cash row first, then item rows by position and creation time."""
    return sorted(rows, key=_row_order)


def placement_target(rows: Sequence[models.GiftRecord]) -> models.GiftRecord | None:
    for row in rows:
        if row.gift_type is models.GiftType.CASH:
            return row
    items = order_cluster([r for r in rows if r.gift_type is models.GiftType.ITEM])
    return items[0] if items else None


def apply_group_attachment(rows: Sequence[models.GiftRecord], patch: AttachmentPatch) -> models.GiftRecord | None:
    """Re-pin the shared attachment on the post-edit cluster.

    Untouched attachment (all fields omitted) writes nothing. Otherwise every
    row is cleared and the resolved triple lands on :func:`placement_target`.
    Returns the row now holding the attachment, if any.
    """
    if not patch.is_explicit:
        return None

    target = placement_target(rows)
    if target is None and patch.sets_anything():
        raise ValidationError("no row available to hold attachment", code="no_attachment_target")

    for row in rows:
        row.clear_attachment()

    if target is None or not patch.sets_anything():
        return None
    target.attachment_key, target.attachment_name, target.attachment_type = patch.resolved()
    return target


def apply_row_attachment(row: models.AttachmentMixin, patch: AttachmentPatch) -> str | None:
    """Apply a tri-state attachment patch to a single-row entity.

    Clearing the key also clears name and type. Returns the previous key when
    it was replaced or removed, so the caller can release the superseded blob.
    """
    previous = row.attachment_key
    if patch.clears_key:
        row.clear_attachment()
    else:
        row.attachment_key = resolve(patch.key, row.attachment_key)
        row.attachment_name = resolve(patch.name, row.attachment_name)
        row.attachment_type = resolve(patch.type, row.attachment_type)

    if isinstance(patch.key, Unchanged) or not previous or previous == row.attachment_key:
        return None
    return previous
