from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import models
from ..core.database import get_db
from ..core.deps import get_blob_store, get_current_user
from ..schemas import (
    LoanCreate,
    LoanOut,
    LoanUpdate,
    RepaymentCreate,
    RepaymentOut,
    RepaymentUpdate,
)
from ..services.blob_store import BlobStore
from ..services.loan_service import LoanAggregate, LoanService


router = APIRouter(tags=["loans"])


def _decimal_or_none(value) -> float | None:
    return float(value) if value is not None else None


def _loan_to_schema(agg: LoanAggregate) -> LoanOut:
    loan = agg.loan
    remaining = float(agg.remaining)
    return LoanOut(
        id=loan.id,
        user_id=loan.user_id,
        direction=loan.direction,
        subject_type=loan.subject_type,
        counterparty_name=loan.counterparty_name,
        amount=_decimal_or_none(loan.amount),
        item_name=loan.item_name,
        item_quantity=_decimal_or_none(loan.item_quantity),
        item_unit=loan.item_unit,
        occurred_at=loan.occurred_at,
        notes=loan.notes,
        attachment_key=loan.attachment_key,
        attachment_name=loan.attachment_name,
        attachment_type=loan.attachment_type,
        created_at=loan.created_at,
        updated_at=loan.updated_at,
        repaid_amount_total=float(agg.repaid_amount_total),
        repaid_quantity_total=float(agg.repaid_quantity_total),
        remaining_amount=remaining if agg.is_money else None,
        remaining_quantity=None if agg.is_money else remaining,
        status=agg.status,
        repayment_count=agg.repayment_count,
    )


@router.get("/loans", response_model=list[LoanOut])
def list_loans(
    direction: Optional[models.LoanDirection] = Query(None),
    status: Optional[models.LoanStatus] = Query(None),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    svc = LoanService(db, blobs)
    rows = svc.list_aggregates(user_id=current_user.id, direction=direction, status=status)
    return [_loan_to_schema(agg) for agg in rows]


@router.post("/loans", response_model=LoanOut, status_code=201)
def create_loan(
    payload: LoanCreate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _loan_to_schema(LoanService(db, blobs).create(payload, user_id=current_user.id))


@router.get("/loans/{loan_id}", response_model=LoanOut)
def get_loan(
    loan_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _loan_to_schema(LoanService(db, blobs).get(loan_id, user_id=current_user.id))


@router.patch("/loans/{loan_id}", response_model=LoanOut)
def update_loan(
    loan_id: str,
    payload: LoanUpdate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return _loan_to_schema(LoanService(db, blobs).update(loan_id, payload, user_id=current_user.id))


@router.delete("/loans/{loan_id}", status_code=204)
def delete_loan(
    loan_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    LoanService(db, blobs).delete(loan_id, user_id=current_user.id)
    return Response(status_code=204)


@router.get("/loans/{loan_id}/repayments", response_model=list[RepaymentOut])
def list_repayments(
    loan_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return LoanService(db, blobs).list_repayments(loan_id, user_id=current_user.id)


@router.post("/loans/{loan_id}/repayments", response_model=RepaymentOut, status_code=201)
def create_repayment(
    loan_id: str,
    payload: RepaymentCreate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return LoanService(db, blobs).add_repayment(loan_id, payload, user_id=current_user.id)


@router.patch("/loan-repayments/{repayment_id}", response_model=RepaymentOut)
def update_repayment(
    repayment_id: str,
    payload: RepaymentUpdate,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    return LoanService(db, blobs).update_repayment(repayment_id, payload, user_id=current_user.id)


@router.delete("/loan-repayments/{repayment_id}", status_code=204)
def delete_repayment(
    repayment_id: str,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: models.User = Depends(get_current_user),
):
    LoanService(db, blobs).delete_repayment(repayment_id, user_id=current_user.id)
    return Response(status_code=204)
