from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo
from enum import Enum
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Index,
    JSON,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Shanghai"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Asia/Shanghai")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class AttachmentMixin:
    """One optional attachment triple. At most one row per cluster carries it."""

    attachment_key: Mapped[str | None] = mapped_column(String(255))
    attachment_name: Mapped[str | None] = mapped_column(String(255))
    attachment_type: Mapped[str | None] = mapped_column(String(50))

    def clear_attachment(self) -> None:
        self.attachment_key = None
        self.attachment_name = None
        self.attachment_type = None

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_key or self.attachment_name or self.attachment_type)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100))


class LoanDirection(str, Enum):
    OWED = "owed"  # 내가 빌림 (갚아야 함)
    LENT = "lent"  # 내가 빌려줌


class LoanSubjectType(str, Enum):
    MONEY = "money"
    ITEM = "item"


class LoanStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    SETTLED = "settled"


class Loan(Base, TimestampMixin, AttachmentMixin):
    """A debt of money or of an item quantity. Exactly one subject is populated."""

    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    direction: Mapped[LoanDirection] = mapped_column(
        SAEnum(LoanDirection, name="loan_direction", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    subject_type: Mapped[LoanSubjectType] = mapped_column(
        SAEnum(LoanSubjectType, name="loan_subject_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    counterparty_name: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    item_name: Mapped[str | None] = mapped_column(String(255))
    item_quantity: Mapped[Decimal | None] = mapped_column(Numeric(15, 3))
    item_unit: Mapped[str | None] = mapped_column(String(32))
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    repayments: Mapped[list["LoanRepayment"]] = relationship(
        back_populates="loan",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "(subject_type = 'money' AND item_name IS NULL AND item_quantity IS NULL AND item_unit IS NULL)"
            " OR (subject_type = 'item' AND amount IS NULL)",
            name="ck_loan_inactive_subject_null",
        ),
    )

    @property
    def due(self) -> Decimal:
        value = self.amount if self.subject_type is LoanSubjectType.MONEY else self.item_quantity
        return Decimal(value) if value is not None else Decimal("0")


class LoanRepayment(Base, TimestampMixin, AttachmentMixin):
    __tablename__ = "loan_repayments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    loan_id: Mapped[str] = mapped_column(ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    repaid_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    repaid_quantity: Mapped[Decimal | None] = mapped_column(Numeric(15, 3))
    repaid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    loan: Mapped[Loan] = relationship(back_populates="repayments")


class Giftbook(Base, TimestampMixin):
    __tablename__ = "giftbooks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(30))
    event_date: Mapped[date | None] = mapped_column(Date)
    location: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)

    records: Mapped[list["GiftRecord"]] = relationship(
        back_populates="giftbook",
        cascade="all, delete-orphan",
    )


class GiftDirection(str, Enum):
    RECEIVED = "received"
    GIVEN = "given"


class GiftType(str, Enum):
    CASH = "cash"
    ITEM = "item"


class GiftRecord(Base, TimestampMixin, AttachmentMixin):
    """One physical row of a gift group: either the cash line or one item line.

    Rows written before grouping existed carry ``group_id = NULL``; their own
    ``id`` then acts as the group id (see :attr:`cluster_id`).
    """

    __tablename__ = "gift_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    giftbook_id: Mapped[str] = mapped_column(ForeignKey("giftbooks.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id: Mapped[str | None] = mapped_column(String(36), index=True)
    direction: Mapped[GiftDirection] = mapped_column(
        SAEnum(GiftDirection, name="gift_direction", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=GiftDirection.RECEIVED,
    )
    gift_type: Mapped[GiftType] = mapped_column(
        SAEnum(GiftType, name="gift_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    counterparty_name: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    currency: Mapped[str | None] = mapped_column(String(10))
    item_name: Mapped[str | None] = mapped_column(String(255))
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    unit: Mapped[str | None] = mapped_column(String(32))
    estimated_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gift_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    giftbook: Mapped[Giftbook] = relationship(back_populates="records")

    __table_args__ = (
        Index("idx_gift_records_user_group", "user_id", "group_id"),
    )

    @property
    def cluster_id(self) -> str:
        return self.group_id or self.id


class GivenGift(Base, TimestampMixin, AttachmentMixin):
    """Single-row gift given out; items live in a JSON array column."""

    __tablename__ = "given_gifts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_name: Mapped[str] = mapped_column(String(128), nullable=False)
    gift_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    occasion: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    cash_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
