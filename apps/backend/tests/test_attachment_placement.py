"""
첨부파일 배치 규칙 테스트
"""

from datetime import datetime

import pytest

from ledger import models
from ledger.core.errors import ValidationError
from ledger.schemas import GiftRecordGroupUpdate, LoanUpdate
from ledger.services.attachment_placement import (
    AttachmentPatch,
    apply_group_attachment,
    apply_row_attachment,
    order_cluster,
    placement_target,
)
from ledger.utils.tristate import CLEARED, UNCHANGED, Cleared, Set, Unchanged, field_patch


def _cash(**kw) -> models.GiftRecord:
    return models.GiftRecord(id=kw.pop("id", "cash"), gift_type=models.GiftType.CASH, position=0, **kw)


def _item(row_id: str, position: int, **kw) -> models.GiftRecord:
    return models.GiftRecord(id=row_id, gift_type=models.GiftType.ITEM, position=position, **kw)


def _holders(rows):
    return [r.id for r in rows if r.has_attachment]


class TestTriState:
    def test_field_patch_from_payload(self):
        """생략 / null / 값 구분"""
        payload = LoanUpdate.model_validate({"attachment_key": None, "attachment_name": "a.png"})
        assert field_patch(payload, "attachment_key") == CLEARED
        assert field_patch(payload, "attachment_name") == Set("a.png")
        assert field_patch(payload, "attachment_type") == UNCHANGED

    def test_from_payload(self):
        payload = GiftRecordGroupUpdate.model_validate({"attachment_key": " giftbooks/k.png "})
        patch = AttachmentPatch.from_payload(payload)
        assert patch.is_explicit
        assert patch.resolved() == ("giftbooks/k.png", None, None)

        blank = AttachmentPatch.from_payload(GiftRecordGroupUpdate.model_validate({"attachment_key": "  "}))
        assert blank.clears_key

        untouched = AttachmentPatch.from_payload(GiftRecordGroupUpdate.model_validate({}))
        assert not untouched.is_explicit

    @pytest.mark.parametrize("key", ["../evil", "/abs", "giftbooks/../../x", "elsewhere/a.png"])
    def test_from_payload_rejects_unsafe_key(self, key):
        payload = LoanUpdate.model_validate({"attachment_key": key})
        with pytest.raises(ValidationError) as exc:
            AttachmentPatch.from_payload(payload)
        assert exc.value.code == "invalid_attachment_key"


class TestPlacementTarget:
    def test_cash_row_wins(self):
        rows = [_item("i1", 0), _cash(), _item("i2", 1)]
        assert placement_target(rows).id == "cash"

    def test_first_item_by_position(self):
        rows = [_item("i2", 1), _item("i1", 0)]
        assert placement_target(rows).id == "i1"

    def test_position_tie_broken_by_creation(self):
        rows = [
            _item("late", 0, created_at=datetime(2025, 1, 2)),
            _item("early", 0, created_at=datetime(2025, 1, 1)),
        ]
        assert placement_target(rows).id == "early"

    def test_empty_cluster(self):
        assert placement_target([]) is None

    def test_order_cluster(self):
        rows = [_item("i2", 1), _item("i1", 0), _cash()]
        assert [r.id for r in order_cluster(rows)] == ["cash", "i1", "i2"]


class TestApplyGroupAttachment:
    def test_unchanged_writes_nothing(self):
        rows = [_cash(attachment_key="old"), _item("i1", 0, attachment_key="stray")]
        assert apply_group_attachment(rows, AttachmentPatch()) is None
        assert _holders(rows) == ["cash", "i1"]

    def test_set_moves_to_single_target(self):
        """설정 시 모든 행을 비우고 대상 행 하나에만 기록"""
        rows = [_item("i1", 0, attachment_key="old", attachment_name="old.png"), _cash()]
        patch = AttachmentPatch(key=Set("new"), name=Set("new.pdf"), type=Set("application/pdf"))

        target = apply_group_attachment(rows, patch)

        assert target.id == "cash"
        assert _holders(rows) == ["cash"]
        assert (target.attachment_key, target.attachment_name, target.attachment_type) == (
            "new",
            "new.pdf",
            "application/pdf",
        )

    def test_clear_removes_everywhere(self):
        rows = [_cash(attachment_key="k"), _item("i1", 0)]
        patch = AttachmentPatch(key=CLEARED, name=CLEARED, type=CLEARED)
        assert apply_group_attachment(rows, patch) is None
        assert _holders(rows) == []

    def test_no_target_rejected(self):
        patch = AttachmentPatch(key=Set("k"))
        with pytest.raises(ValidationError) as exc:
            apply_group_attachment([], patch)
        assert exc.value.code == "no_attachment_target"
        assert exc.value.message == "no row available to hold attachment"


class TestApplyRowAttachment:
    def _loan(self, **kw) -> models.Loan:
        return models.Loan(attachment_key="old", attachment_name="old.png", attachment_type="image/png", **kw)

    def test_unchanged_keeps_triple(self):
        loan = self._loan()
        assert apply_row_attachment(loan, AttachmentPatch()) is None
        assert loan.attachment_key == "old"

    def test_clearing_key_clears_name_and_type(self):
        loan = self._loan()
        superseded = apply_row_attachment(loan, AttachmentPatch(key=Cleared()))
        assert superseded == "old"
        assert (loan.attachment_key, loan.attachment_name, loan.attachment_type) == (None, None, None)

    def test_replacing_key_returns_previous(self):
        loan = self._loan()
        superseded = apply_row_attachment(loan, AttachmentPatch(key=Set("new"), name=Set("new.png")))
        assert superseded == "old"
        assert loan.attachment_key == "new"
        assert loan.attachment_name == "new.png"
        assert loan.attachment_type == "image/png"

    def test_same_key_not_superseded(self):
        loan = self._loan()
        assert apply_row_attachment(loan, AttachmentPatch(key=Set("old"), type=Unchanged())) is None
