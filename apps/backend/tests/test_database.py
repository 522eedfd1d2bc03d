"""
DB 엔진 설정 테스트
"""

from sqlalchemy import text

from ledger import models
from ledger.core.database import create_ledger_engine


def test_connections_enforce_foreign_keys(engine):
    with engine.connect() as conn:
        assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1


def test_memory_database_skips_wal():
    bind = create_ledger_engine("sqlite://")
    with bind.connect() as conn:
        assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
        assert conn.execute(text("PRAGMA journal_mode")).scalar() == "memory"


def test_deleting_loan_row_cascades_to_repayments(client, engine, db_session):
    """SQL 레벨 ON DELETE CASCADE"""
    r = client.post(
        "/api/loans",
        json={
            "direction": "lent",
            "subject_type": "money",
            "counterparty_name": "张三",
            "amount": 100,
            "occurred_at": "2025-01-01T00:00:00",
        },
    )
    assert r.status_code == 201, r.text
    loan_id = r.json()["id"]
    r = client.post(f"/api/loans/{loan_id}/repayments", json={"repaid_amount": 40, "repaid_at": "2025-01-02T00:00:00"})
    assert r.status_code == 201, r.text
    db_session.close()

    with engine.begin() as conn:
        conn.execute(text("DELETE FROM loans WHERE id = :id"), {"id": loan_id})

    assert db_session.query(models.LoanRepayment).filter(models.LoanRepayment.loan_id == loan_id).count() == 0
