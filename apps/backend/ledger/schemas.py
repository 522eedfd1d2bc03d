from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
)

from .models import (
    GiftType,
    LoanDirection,
    LoanStatus,
    LoanSubjectType,
)


# Amounts and quantities arrive untyped (numbers or numeric strings) and are
# checked by utils.normalization so that type and range errors share one
# message format (a JSON boolean is rejected there, not coerced to 1.0).
NumberInput = Any


class AttachmentFields(BaseModel):
    attachment_key: str | None = Field(default=None, max_length=255)
    attachment_name: str | None = Field(default=None, max_length=255)
    attachment_type: str | None = Field(default=None, max_length=50)


class AttachmentOut(BaseModel):
    attachment_key: str | None = None
    attachment_name: str | None = None
    attachment_type: str | None = None


# ---- Loans -----------------------------------------------------------------


class LoanCreate(AttachmentFields):
    direction: LoanDirection
    subject_type: LoanSubjectType
    counterparty_name: str = Field(min_length=1, max_length=128)
    amount: NumberInput = None
    item_name: str | None = Field(default=None, max_length=255)
    item_quantity: NumberInput = None
    item_unit: str | None = Field(default=None, max_length=32)
    occurred_at: datetime
    notes: str | None = None

    model_config = ConfigDict(extra="ignore")


class LoanUpdate(AttachmentFields):
    direction: LoanDirection | None = None
    subject_type: LoanSubjectType | None = None
    counterparty_name: str | None = Field(default=None, min_length=1, max_length=128)
    amount: NumberInput = None
    item_name: str | None = Field(default=None, max_length=255)
    item_quantity: NumberInput = None
    item_unit: str | None = Field(default=None, max_length=32)
    occurred_at: datetime | None = None
    notes: str | None = None

    model_config = ConfigDict(extra="ignore")


class LoanOut(AttachmentOut):
    id: str
    user_id: str
    direction: LoanDirection
    subject_type: LoanSubjectType
    counterparty_name: str
    amount: float | None
    item_name: str | None
    item_quantity: float | None
    item_unit: str | None
    occurred_at: datetime
    notes: str | None
    created_at: datetime
    updated_at: datetime
    # derived on every read, never stored
    repaid_amount_total: float
    repaid_quantity_total: float
    remaining_amount: float | None
    remaining_quantity: float | None
    status: LoanStatus
    repayment_count: int


class RepaymentCreate(AttachmentFields):
    repaid_at: datetime
    repaid_amount: NumberInput = None
    repaid_quantity: NumberInput = None
    notes: str | None = None


class RepaymentUpdate(AttachmentFields):
    repaid_at: datetime | None = None
    repaid_amount: NumberInput = None
    repaid_quantity: NumberInput = None
    notes: str | None = None


class RepaymentOut(AttachmentOut):
    id: str
    user_id: str
    loan_id: str
    repaid_amount: float | None
    repaid_quantity: float | None
    repaid_at: datetime
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---- Giftbooks -------------------------------------------------------------


class GiftbookCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    event_type: str | None = Field(default=None, max_length=30)
    event_date: date | None = None
    location: str | None = Field(default=None, max_length=255)
    description: str | None = None


class GiftbookUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    event_type: str | None = Field(default=None, max_length=30)
    event_date: date | None = None
    location: str | None = Field(default=None, max_length=255)
    description: str | None = None


class GiftbookSummary(BaseModel):
    cash_total: float = 0
    item_estimated_total: float = 0
    record_count: int = 0


class GiftbookOut(BaseModel):
    id: str
    user_id: str
    name: str
    event_type: str | None
    event_date: date | None
    location: str | None
    description: str | None
    created_at: datetime
    updated_at: datetime
    summary: GiftbookSummary = Field(default_factory=GiftbookSummary)

    model_config = ConfigDict(from_attributes=True)


# ---- Gift record groups ----------------------------------------------------


class GiftItemIn(BaseModel):
    id: str | None = None
    item_name: str | None = None
    quantity: NumberInput = None
    unit: str | None = None
    estimated_value: NumberInput = None


class GiftRecordGroupWrite(AttachmentFields):
    counterparty_name: str | None = None
    gift_date: datetime | None = None
    notes: str | None = None
    has_cash: bool | None = Field(default=None, validation_alias=AliasChoices("has_cash", "hasCash"))
    amount: NumberInput = None
    currency: str | None = Field(default=None, max_length=10)
    has_items: bool | None = Field(default=None, validation_alias=AliasChoices("has_items", "hasItems"))
    items: list[GiftItemIn] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GiftRecordGroupCreate(GiftRecordGroupWrite):
    giftbook_id: str


class GiftRecordGroupUpdate(GiftRecordGroupWrite):
    pass


class GiftItemOut(BaseModel):
    id: str
    item_name: str
    quantity: float
    unit: str
    estimated_value: float


class GiftRecordGroupOut(AttachmentOut):
    id: str
    giftbook_id: str
    counterparty_name: str
    gift_date: datetime
    notes: str | None
    cash_amount: float | None
    currency: str | None
    items: list[GiftItemOut]


class GiftRecordGroupListItem(AttachmentOut):
    id: str
    giftbook_id: str
    counterparty_name: str
    gift_date: datetime
    notes: str | None
    cash_amount: float | None
    currency: str | None
    items_count: int
    items_estimated_total: float
    created_at: datetime


class GiftGroupFilters(BaseModel):
    has_cash: bool | None = None
    has_items: bool | None = None
    gift_type: GiftType | None = None
    q: str | None = None


# ---- Given gifts -----------------------------------------------------------


class GivenGiftItemIn(BaseModel):
    item_name: str | None = None
    quantity: NumberInput = None
    unit: str | None = None
    estimated_value: NumberInput = None


class GivenGiftItemOut(BaseModel):
    item_name: str
    quantity: float
    unit: str
    estimated_value: float


class GivenGiftCreate(AttachmentFields):
    recipient_name: str | None = None
    gift_date: datetime | None = None
    occasion: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    cash_amount: NumberInput = None
    items: list[GivenGiftItemIn] = Field(default_factory=list)


class GivenGiftUpdate(AttachmentFields):
    recipient_name: str | None = None
    gift_date: datetime | None = None
    occasion: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    cash_amount: NumberInput = None
    items: list[GivenGiftItemIn] | None = None


class GivenGiftOut(AttachmentOut):
    id: str
    user_id: str
    recipient_name: str
    gift_date: datetime
    occasion: str | None
    notes: str | None
    cash_amount: float | None
    items: list[GivenGiftItemOut]
    created_at: datetime
    updated_at: datetime


class GivenGiftListItem(AttachmentOut):
    id: str
    user_id: str
    recipient_name: str
    gift_date: datetime
    occasion: str | None
    notes: str | None
    cash_amount: float | None
    items_count: int
    items_estimated_total: float
    created_at: datetime
    updated_at: datetime


class GivenGiftSummary(BaseModel):
    cash_total: float = 0
    item_estimated_total: float = 0
    record_count: int = 0


class GivenGiftListOut(BaseModel):
    data: list[GivenGiftListItem]
    summary: GivenGiftSummary


# ---- Blob ------------------------------------------------------------------


class BlobUploadOut(BaseModel):
    key: str
    url: str
    name: str
    content_type: str
    size_bytes: int
