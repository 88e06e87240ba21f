"""
Pydantic schemas for vouchers.

The request side is deliberately permissive about amounts and
entry counts: the posting engine owns those rules and reports
them as typed validation errors, whether the draft arrived over
HTTP or was built in code.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from dairy_books.models.enums import (
    BalanceSide,
    PaymentMode,
    ReferenceType,
    VoucherStatus,
    VoucherType,
)


# --- Request Schemas ---

class VoucherEntryCreate(BaseModel):
    """One debit or credit line. The ledger is referenced by id only."""
    ledger_id: int
    direction: BalanceSide
    amount: Decimal
    memo: str | None = Field(default=None, max_length=255)
    # Overrides the voucher-level classification for this line
    classification: str | None = Field(default=None, max_length=50)


class VoucherDraft(BaseModel):
    """A proposed voucher: header plus entries."""
    voucher_type: VoucherType
    voucher_date: date = Field(default_factory=date.today)
    narration: str | None = Field(default=None, max_length=500)
    entries: list[VoucherEntryCreate]

    payment_mode: PaymentMode | None = None
    bank_name: str | None = Field(default=None, max_length=100)
    cheque_number: str | None = Field(default=None, max_length=30)
    cheque_date: date | None = None
    transaction_ref: str | None = Field(default=None, max_length=100)

    reference_type: ReferenceType = ReferenceType.MANUAL
    reference_id: str | None = Field(default=None, max_length=64)
    reference_number: str | None = Field(default=None, max_length=50)

    party_id: str | None = Field(default=None, max_length=64)
    party_name: str | None = Field(default=None, max_length=100)

    classification: str | None = Field(default=None, max_length=50)


class ReverseRequest(BaseModel):
    reason: str = Field(default="reversed", min_length=1, max_length=255)


# --- Response Schemas ---

class VoucherEntryResponse(BaseModel):
    id: int
    position: int
    ledger_id: int
    ledger_name: str | None
    direction: BalanceSide
    amount: Decimal
    memo: str | None
    classification: str | None

    model_config = {"from_attributes": True}


class VoucherResponse(BaseModel):
    id: int
    sequence_no: int
    voucher_number: str
    voucher_type: VoucherType
    voucher_date: date
    narration: str | None
    status: VoucherStatus
    payment_mode: PaymentMode | None
    bank_name: str | None
    cheque_number: str | None
    cheque_date: date | None
    transaction_ref: str | None
    reference_type: ReferenceType
    reference_id: str | None
    reference_number: str | None
    party_id: str | None
    party_name: str | None
    total_debit: Decimal
    total_credit: Decimal
    amends_voucher_id: int | None
    posted_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    created_at: datetime
    entries: list[VoucherEntryResponse]

    model_config = {"from_attributes": True}


class VoucherListResponse(BaseModel):
    items: list[VoucherResponse]
    total: int
    page: int
    limit: int
    pages: int
