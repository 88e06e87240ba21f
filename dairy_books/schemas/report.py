"""
Pydantic schemas for read-only ledger reports.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from dairy_books.models.enums import BalanceSide, VoucherType


class StatementLineResponse(BaseModel):
    date: date
    voucher_id: int
    voucher_number: str
    voucher_type: VoucherType
    direction: BalanceSide
    amount: Decimal
    running_balance: Decimal
    narration: str | None

    model_config = {"from_attributes": True}


class StatementResponse(BaseModel):
    ledger_id: int
    ledger_name: str
    start: date | None
    end: date | None
    opening_balance: Decimal
    closing_balance: Decimal
    lines: list[StatementLineResponse]


class OutstandingEntryResponse(BaseModel):
    voucher_id: int
    voucher_number: str
    date: date
    direction: BalanceSide
    amount: Decimal
    effect: Decimal

    model_config = {"from_attributes": True}


class OutstandingBucketResponse(BaseModel):
    amount: Decimal
    contributing_entries: list[OutstandingEntryResponse]

    model_config = {"from_attributes": True}
