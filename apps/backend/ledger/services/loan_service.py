"""
Loan aggregate engine

A loan is one ``loans`` row plus its ``loan_repayments`` rows. Repaid totals,
remaining balance and status are derived on every read and never stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.errors import NotFoundError, ValidationError
from ..utils.normalization import (
    MONEY_PLACES,
    NumberRule,
    QUANTITY_PLACES,
    normalize_number,
    normalize_text,
    require_name,
    to_decimal,
)
from .attachment_placement import AttachmentPatch, apply_row_attachment
from .blob_store import BlobStore, check_attachment_key, release_blobs, release_superseded_blob


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def loan_status(due: Decimal, repaid_total: Decimal) -> models.LoanStatus:
    """unpaid → partial → settled, purely from the repaid total."""
    if repaid_total <= 0:
        return models.LoanStatus.UNPAID
    if repaid_total < due:
        return models.LoanStatus.PARTIAL
    return models.LoanStatus.SETTLED


@dataclass
class LoanAggregate:
    loan: models.Loan
    repaid_amount_total: Decimal = ZERO
    repaid_quantity_total: Decimal = ZERO
    repayment_count: int = 0

    @property
    def is_money(self) -> bool:
        return self.loan.subject_type is models.LoanSubjectType.MONEY

    @property
    def repaid_total(self) -> Decimal:
        return self.repaid_amount_total if self.is_money else self.repaid_quantity_total

    @property
    def remaining(self) -> Decimal:
        return max(self.loan.due - self.repaid_total, ZERO)

    @property
    def status(self) -> models.LoanStatus:
        return loan_status(self.loan.due, self.repaid_total)


@dataclass
class _Subject:
    amount: Optional[Decimal] = None
    item_name: Optional[str] = None
    item_quantity: Optional[Decimal] = None
    item_unit: Optional[str] = None


def _validate_subject(
    subject_type: models.LoanSubjectType,
    *,
    amount,
    item_name,
    item_quantity,
    item_unit,
) -> _Subject:
    if subject_type is models.LoanSubjectType.MONEY:
        # 금액 대출: 물품 필드는 항상 NULL
        return _Subject(amount=normalize_number(amount, NumberRule.POSITIVE, "amount", MONEY_PLACES))
    return _Subject(
        item_name=require_name(item_name, "item_name", max_length=255),
        item_quantity=normalize_number(item_quantity, NumberRule.POSITIVE, "item_quantity", QUANTITY_PLACES),
        item_unit=require_name(item_unit, "item_unit", max_length=32),
    )


def _apply_subject(loan: models.Loan, subject_type: models.LoanSubjectType, subject: _Subject) -> None:
    loan.subject_type = subject_type
    loan.amount = subject.amount
    loan.item_name = subject.item_name
    loan.item_quantity = subject.item_quantity
    loan.item_unit = subject.item_unit


class LoanService:
    def __init__(self, db: Session, blobs: BlobStore) -> None:
        self.db = db
        self.blobs = blobs

    # ---- Reads -------------------------------------------------------------
    def _aggregate_query(self, *, user_id: str):
        repayment = models.LoanRepayment
        return (
            self.db.query(
                models.Loan,
                func.coalesce(func.sum(repayment.repaid_amount), 0),
                func.coalesce(func.sum(repayment.repaid_quantity), 0),
                func.count(repayment.id),
            )
            .outerjoin(repayment, repayment.loan_id == models.Loan.id)
            .filter(models.Loan.user_id == user_id)
            .group_by(models.Loan.id)
        )

    @staticmethod
    def _to_aggregate(row) -> LoanAggregate:
        loan, amount_total, quantity_total, count = row
        return LoanAggregate(
            loan=loan,
            repaid_amount_total=to_decimal(amount_total),
            repaid_quantity_total=to_decimal(quantity_total),
            repayment_count=int(count or 0),
        )

    def list_aggregates(
        self,
        *,
        user_id: str,
        direction: models.LoanDirection | None = None,
        status: models.LoanStatus | None = None,
    ) -> list[LoanAggregate]:
        q = self._aggregate_query(user_id=user_id)
        if direction is not None:
            q = q.filter(models.Loan.direction == direction)
        rows = q.order_by(models.Loan.occurred_at.desc(), models.Loan.created_at.desc()).all()
        aggregates = [self._to_aggregate(row) for row in rows]
        # status is derived, so it can only be filtered after aggregation
        if status is not None:
            aggregates = [agg for agg in aggregates if agg.status is status]
        return aggregates

    def get(self, loan_id: str, *, user_id: str) -> LoanAggregate:
        row = self._aggregate_query(user_id=user_id).filter(models.Loan.id == loan_id).first()
        if row is None:
            raise NotFoundError("Loan not found", code="loan_not_found")
        return self._to_aggregate(row)

    def _get_loan(self, loan_id: str, *, user_id: str) -> models.Loan:
        loan = (
            self.db.query(models.Loan)
            .filter(models.Loan.id == loan_id, models.Loan.user_id == user_id)
            .first()
        )
        if loan is None:
            raise NotFoundError("Loan not found", code="loan_not_found")
        return loan

    def _get_repayment(self, repayment_id: str, *, user_id: str) -> models.LoanRepayment:
        repayment = (
            self.db.query(models.LoanRepayment)
            .filter(models.LoanRepayment.id == repayment_id, models.LoanRepayment.user_id == user_id)
            .first()
        )
        if repayment is None:
            raise NotFoundError("Repayment not found", code="repayment_not_found")
        return repayment

    def list_repayments(self, loan_id: str, *, user_id: str) -> list[models.LoanRepayment]:
        self._get_loan(loan_id, user_id=user_id)
        return (
            self.db.query(models.LoanRepayment)
            .filter(models.LoanRepayment.loan_id == loan_id, models.LoanRepayment.user_id == user_id)
            .order_by(models.LoanRepayment.repaid_at.desc(), models.LoanRepayment.created_at.desc())
            .all()
        )

    # ---- Loan writes -------------------------------------------------------
    def create(self, payload: schemas.LoanCreate, *, user_id: str) -> LoanAggregate:
        counterparty = require_name(payload.counterparty_name, "counterparty_name")
        subject = _validate_subject(
            payload.subject_type,
            amount=payload.amount,
            item_name=payload.item_name,
            item_quantity=payload.item_quantity,
            item_unit=payload.item_unit,
        )

        loan = models.Loan(
            user_id=user_id,
            direction=payload.direction,
            counterparty_name=counterparty,
            occurred_at=payload.occurred_at,
            notes=normalize_text(payload.notes),
            attachment_key=check_attachment_key(payload.attachment_key),
            attachment_name=normalize_text(payload.attachment_name),
            attachment_type=normalize_text(payload.attachment_type),
        )
        _apply_subject(loan, payload.subject_type, subject)
        self.db.add(loan)
        self.db.commit()
        self.db.refresh(loan)
        return LoanAggregate(loan=loan)

    def update(self, loan_id: str, payload: schemas.LoanUpdate, *, user_id: str) -> LoanAggregate:
        loan = self._get_loan(loan_id, user_id=user_id)
        fields = payload.model_fields_set

        target_type = payload.subject_type if payload.subject_type is not None else loan.subject_type
        if target_type is not loan.subject_type:
            count = (
                self.db.query(func.count(models.LoanRepayment.id))
                .filter(models.LoanRepayment.loan_id == loan.id)
                .scalar()
            )
            if count:
                logger.info("Rejected subject type change on loan %s with %d repayments", loan.id, count)
                raise ValidationError(
                    "subject type cannot change once repayments exist",
                    code="subject_type_locked",
                )

        # 변경 전 검증: 필드가 없으면 기존 값 사용
        subject = _validate_subject(
            target_type,
            amount=payload.amount if "amount" in fields else loan.amount,
            item_name=payload.item_name if "item_name" in fields else loan.item_name,
            item_quantity=payload.item_quantity if "item_quantity" in fields else loan.item_quantity,
            item_unit=payload.item_unit if "item_unit" in fields else loan.item_unit,
        )
        counterparty = (
            require_name(payload.counterparty_name, "counterparty_name")
            if "counterparty_name" in fields
            else loan.counterparty_name
        )
        if "direction" in fields and payload.direction is None:
            raise ValidationError("direction is required", code="missing_direction")
        if "occurred_at" in fields and payload.occurred_at is None:
            raise ValidationError("occurred_at is required", code="missing_occurred_at")
        attachment = AttachmentPatch.from_payload(payload)

        try:
            _apply_subject(loan, target_type, subject)
            loan.counterparty_name = counterparty
            if payload.direction is not None:
                loan.direction = payload.direction
            if payload.occurred_at is not None:
                loan.occurred_at = payload.occurred_at
            if "notes" in fields:
                loan.notes = normalize_text(payload.notes)
            superseded = apply_row_attachment(loan, attachment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        release_superseded_blob(self.blobs, superseded)
        return self.get(loan.id, user_id=user_id)

    def delete(self, loan_id: str, *, user_id: str) -> None:
        loan = self._get_loan(loan_id, user_id=user_id)
        keys = [loan.attachment_key] + [r.attachment_key for r in loan.repayments]
        # blob 삭제 실패 시 행은 그대로 둔다
        release_blobs(self.blobs, keys)
        self.db.delete(loan)
        self.db.commit()
        logger.info("Deleted loan %s with %d repayments", loan_id, len(keys) - 1)

    # ---- Repayment writes --------------------------------------------------
    @staticmethod
    def _repayment_value(loan: models.Loan, amount, quantity) -> tuple[Decimal | None, Decimal | None]:
        if loan.subject_type is models.LoanSubjectType.MONEY:
            return normalize_number(amount, NumberRule.POSITIVE, "repaid_amount", MONEY_PLACES), None
        return None, normalize_number(quantity, NumberRule.POSITIVE, "repaid_quantity", QUANTITY_PLACES)

    def add_repayment(self, loan_id: str, payload: schemas.RepaymentCreate, *, user_id: str) -> models.LoanRepayment:
        loan = self._get_loan(loan_id, user_id=user_id)
        repaid_amount, repaid_quantity = self._repayment_value(loan, payload.repaid_amount, payload.repaid_quantity)

        repayment = models.LoanRepayment(
            user_id=user_id,
            loan_id=loan.id,
            repaid_amount=repaid_amount,
            repaid_quantity=repaid_quantity,
            repaid_at=payload.repaid_at,
            notes=normalize_text(payload.notes),
            attachment_key=check_attachment_key(payload.attachment_key),
            attachment_name=normalize_text(payload.attachment_name),
            attachment_type=normalize_text(payload.attachment_type),
        )
        self.db.add(repayment)
        self.db.commit()
        self.db.refresh(repayment)
        return repayment

    def update_repayment(
        self, repayment_id: str, payload: schemas.RepaymentUpdate, *, user_id: str
    ) -> models.LoanRepayment:
        repayment = self._get_repayment(repayment_id, user_id=user_id)
        loan = repayment.loan
        fields = payload.model_fields_set

        repaid_amount, repaid_quantity = self._repayment_value(
            loan,
            payload.repaid_amount if "repaid_amount" in fields else repayment.repaid_amount,
            payload.repaid_quantity if "repaid_quantity" in fields else repayment.repaid_quantity,
        )
        if "repaid_at" in fields and payload.repaid_at is None:
            raise ValidationError("repaid_at is required", code="missing_repaid_at")
        attachment = AttachmentPatch.from_payload(payload)

        try:
            repayment.repaid_amount = repaid_amount
            repayment.repaid_quantity = repaid_quantity
            if payload.repaid_at is not None:
                repayment.repaid_at = payload.repaid_at
            if "notes" in fields:
                repayment.notes = normalize_text(payload.notes)
            superseded = apply_row_attachment(repayment, attachment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        release_superseded_blob(self.blobs, superseded)
        self.db.refresh(repayment)
        return repayment

    def delete_repayment(self, repayment_id: str, *, user_id: str) -> None:
        repayment = self._get_repayment(repayment_id, user_id=user_id)
        release_blobs(self.blobs, [repayment.attachment_key])
        self.db.delete(repayment)
        self.db.commit()
