"""
선물 그룹(현금 + 물품 행) API 테스트
"""

from datetime import datetime

import pytest

from ledger import models


@pytest.fixture()
def giftbook(client):
    r = client.post("/api/giftbooks", json={"name": "婚礼礼簿", "event_type": "wedding", "event_date": "2025-05-01"})
    assert r.status_code == 201, r.text
    return r.json()


def _create_group(client, giftbook_id, **extra):
    payload = {
        "giftbook_id": giftbook_id,
        "counterparty_name": "王五",
        "gift_date": "2025-05-01T12:00:00",
        "has_cash": True,
        "amount": 200,
        "has_items": True,
        "items": [{"item_name": "书", "quantity": 2, "unit": "本", "estimated_value": 50}],
    }
    payload.update(extra)
    r = client.post("/api/gift-record-groups", json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def _rows(db_session, group_id):
    db_session.expire_all()
    return (
        db_session.query(models.GiftRecord)
        .filter((models.GiftRecord.group_id == group_id) | (models.GiftRecord.id == group_id))
        .all()
    )


def test_group_round_trip(client, giftbook, db_session):
    group = _create_group(client, giftbook["id"])
    assert group["cash_amount"] == 200
    assert group["currency"] == "CNY"
    assert len(group["items"]) == 1
    assert group["items"][0]["item_name"] == "书"
    assert group["items"][0]["unit"] == "本"
    assert len(_rows(db_session, group["id"])) == 2

    listed = client.get(f"/api/giftbooks/{giftbook['id']}/record-groups").json()
    assert len(listed) == 1
    assert listed[0]["cash_amount"] == 200
    assert listed[0]["items_count"] == 1
    assert listed[0]["items_estimated_total"] == 50

    r = client.delete(f"/api/gift-record-groups/{group['id']}")
    assert r.status_code == 204, r.text
    assert _rows(db_session, group["id"]) == []
    assert client.get(f"/api/gift-record-groups/{group['id']}").status_code == 404


def test_camel_case_flags_accepted(client, giftbook):
    r = client.post(
        "/api/gift-record-groups",
        json={
            "giftbook_id": giftbook["id"],
            "counterparty_name": "赵六",
            "gift_date": "2025-05-01T12:00:00",
            "hasCash": False,
            "hasItems": True,
            "items": [{"item_name": "茶叶", "quantity": 1}],
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["cash_amount"] is None
    assert body["items"][0]["unit"] == "件"
    assert body["items"][0]["estimated_value"] == 0


def test_attachment_lands_on_cash_row(client, giftbook, db_session):
    group = _create_group(client, giftbook["id"], attachment_key="giftbooks/a.png", attachment_name="a.png")
    assert group["attachment_key"] == "giftbooks/a.png"

    rows = _rows(db_session, group["id"])
    holders = [r for r in rows if r.attachment_key]
    assert len(holders) == 1
    assert holders[0].gift_type is models.GiftType.CASH


def test_attachment_stays_on_item_row_when_cash_is_added(client, giftbook, db_session, blob_store):
    group = _create_group(client, giftbook["id"], has_cash=False, amount=None, attachment_key="giftbooks/a.png")
    item = group["items"][0]
    assert group["cash_amount"] is None
    assert group["attachment_key"] == "giftbooks/a.png"

    # 첨부 필드를 보내지 않은 편집은 첨부를 건드리지 않는다
    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": True,
            "amount": 10,
            "has_items": True,
            "items": [item],
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["cash_amount"] == 10

    rows = _rows(db_session, group["id"])
    assert len(rows) == 2
    cash = next(r for r in rows if r.gift_type is models.GiftType.CASH)
    item_row = next(r for r in rows if r.gift_type is models.GiftType.ITEM)
    assert cash.attachment_key is None
    assert item_row.id == item["id"]
    assert item_row.attachment_key == "giftbooks/a.png"
    assert blob_store.deleted == []


def test_explicit_attachment_is_moved_to_cash_row(client, giftbook, db_session, blob_store):
    group = _create_group(client, giftbook["id"], has_cash=False, amount=None, attachment_key="giftbooks/a.png")

    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": True,
            "amount": 10,
            "has_items": True,
            "items": group["items"],
            "attachment_key": "giftbooks/a.png",
            "attachment_name": "a.png",
        },
    )
    assert r.status_code == 200, r.text
    rows = _rows(db_session, group["id"])
    holders = [r for r in rows if r.attachment_key]
    assert len(holders) == 1
    assert holders[0].gift_type is models.GiftType.CASH
    assert blob_store.deleted == []


def test_invalid_attachment_key_is_rejected_before_writing(client, giftbook, db_session):
    r = client.post(
        "/api/gift-record-groups",
        json={
            "giftbook_id": giftbook["id"],
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": True,
            "amount": 200,
            "attachment_key": "../evil",
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_attachment_key"
    assert client.get(f"/api/giftbooks/{giftbook['id']}/record-groups").json() == []

    group = _create_group(client, giftbook["id"])
    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": False,
            "has_items": True,
            "items": group["items"],
            "attachment_key": "/abs",
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_attachment_key"
    assert len(_rows(db_session, group["id"])) == 2


def test_non_numeric_amounts_are_rejected(client, giftbook):
    base = {
        "giftbook_id": giftbook["id"],
        "counterparty_name": "王五",
        "gift_date": "2025-05-01T12:00:00",
        "has_cash": True,
    }
    r = client.post("/api/gift-record-groups", json={**base, "amount": True})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_amount"

    r = client.post("/api/gift-record-groups", json={**base, "amount": "12.345"})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_amount"

    r = client.post(
        "/api/gift-record-groups",
        json={**base, "has_cash": False, "has_items": True, "items": [{"item_name": "书", "quantity": 0.001}]},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_quantity"


def test_partial_edit_keeps_updates_inserts_and_deletes(client, giftbook, db_session):
    group = _create_group(
        client,
        giftbook["id"],
        items=[
            {"item_name": "书", "quantity": 2, "unit": "本", "estimated_value": 50},
            {"item_name": "笔", "quantity": 1, "estimated_value": 10},
        ],
    )
    kept, dropped = group["items"]
    cash_row_ids = [r.id for r in _rows(db_session, group["id"]) if r.gift_type is models.GiftType.CASH]

    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-02T12:00:00",
            "notes": "补记",
            "has_cash": True,
            "amount": 300,
            "has_items": True,
            "items": [
                {"id": kept["id"], "item_name": "书", "quantity": 3, "unit": "本", "estimated_value": 60},
                {"item_name": "花", "quantity": 1, "estimated_value": 20},
            ],
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["cash_amount"] == 300
    assert body["notes"] == "补记"
    assert [i["item_name"] for i in body["items"]] == ["书", "花"]
    assert body["items"][0]["id"] == kept["id"]
    assert body["items"][0]["quantity"] == 3

    rows = _rows(db_session, group["id"])
    ids = {r.id for r in rows}
    assert dropped["id"] not in ids
    assert set(cash_row_ids) <= ids
    assert len(rows) == 3
    assert all(r.notes == "补记" for r in rows)
    assert all(r.gift_date == datetime(2025, 5, 2, 12, 0) for r in rows)


def test_empty_items_rejected_before_any_write(client, giftbook, db_session):
    group = _create_group(client, giftbook["id"])
    before = sorted(r.id for r in _rows(db_session, group["id"]))

    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": False,
            "has_items": True,
            "items": [],
        },
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "at least one item row required"
    assert sorted(r.id for r in _rows(db_session, group["id"])) == before


def test_invalid_item_rejected_before_any_write(client, giftbook, db_session):
    group = _create_group(client, giftbook["id"])
    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": False,
            "has_items": True,
            "items": [{"item_name": "书", "quantity": 0}],
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_quantity"
    assert len(_rows(db_session, group["id"])) == 2


def test_cash_or_items_required(client, giftbook):
    r = client.post(
        "/api/gift-record-groups",
        json={
            "giftbook_id": giftbook["id"],
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": False,
            "has_items": False,
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "empty_group"


def test_unknown_giftbook_is_not_found(client):
    r = client.post(
        "/api/gift-record-groups",
        json={
            "giftbook_id": "missing",
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "amount": 100,
        },
    )
    assert r.status_code == 404


def test_legacy_row_addressed_by_its_id(client, giftbook, db_session, user):
    legacy = models.GiftRecord(
        user_id=user.id,
        giftbook_id=giftbook["id"],
        gift_type=models.GiftType.CASH,
        counterparty_name="老记录",
        amount=88,
        currency="CNY",
        gift_date=datetime(2024, 1, 1),
    )
    db_session.add(legacy)
    db_session.commit()
    legacy_id = legacy.id

    r = client.get(f"/api/gift-record-groups/{legacy_id}")
    assert r.status_code == 200, r.text
    assert r.json()["cash_amount"] == 88

    r = client.patch(
        f"/api/gift-record-groups/{legacy_id}",
        json={
            "counterparty_name": "老记录",
            "gift_date": "2024-01-01T00:00:00",
            "has_cash": True,
            "amount": 88,
            "has_items": True,
            "items": [{"item_name": "酒", "quantity": 2, "unit": "瓶", "estimated_value": 100}],
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["id"] == legacy_id

    rows = _rows(db_session, legacy_id)
    assert len(rows) == 2
    assert all(r.group_id == legacy_id for r in rows)

    # 그룹에 속한 물품 행은 자기 id로 그룹처럼 조회되지 않는다
    item_row = next(r for r in rows if r.gift_type is models.GiftType.ITEM)
    assert client.get(f"/api/gift-record-groups/{item_row.id}").status_code == 404


def test_explicit_clear_releases_group_blob(client, giftbook, blob_store):
    group = _create_group(client, giftbook["id"], attachment_key="giftbooks/a.png")
    r = client.patch(
        f"/api/gift-record-groups/{group['id']}",
        json={
            "counterparty_name": "王五",
            "gift_date": "2025-05-01T12:00:00",
            "has_cash": True,
            "amount": 200,
            "has_items": False,
            "attachment_key": None,
            "attachment_name": None,
            "attachment_type": None,
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["attachment_key"] is None
    assert r.json()["items"] == []
    assert blob_store.deleted == ["giftbooks/a.png"]


def test_delete_group_keeps_blobs_by_default(client, giftbook, blob_store):
    group = _create_group(client, giftbook["id"], attachment_key="giftbooks/a.png")
    r = client.delete(f"/api/gift-record-groups/{group['id']}")
    assert r.status_code == 204, r.text
    assert blob_store.deleted == []


def test_list_filters_and_order(client, giftbook):
    cash_only = _create_group(
        client, giftbook["id"], counterparty_name="甲", has_items=False, items=[], gift_date="2025-05-03T00:00:00"
    )
    items_only = _create_group(
        client, giftbook["id"], counterparty_name="乙", has_cash=False, amount=None, gift_date="2025-05-02T00:00:00"
    )
    both = _create_group(client, giftbook["id"], counterparty_name="丙", gift_date="2025-05-01T00:00:00")

    url = f"/api/giftbooks/{giftbook['id']}/record-groups"
    assert [g["id"] for g in client.get(url).json()] == [cash_only["id"], items_only["id"], both["id"]]
    assert [g["id"] for g in client.get(url, params={"has_cash": "false"}).json()] == [items_only["id"]]
    assert [g["id"] for g in client.get(url, params={"has_items": "true", "has_cash": "true"}).json()] == [both["id"]]
    assert [g["id"] for g in client.get(url, params={"gift_type": "cash"}).json()] == [cash_only["id"], both["id"]]
    assert [g["id"] for g in client.get(url, params={"q": "乙"}).json()] == [items_only["id"]]
