"""
Pydantic schemas for ledger administration.

These define the API contract. They are separate from the
database models because the API speaks Decimal amounts while
storage keeps integer minor units.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from dairy_books.models.enums import (
    BalanceSide,
    LedgerGroup,
    LedgerStatus,
    LedgerType,
)
from dairy_books.money import to_minor


def _check_precision(v: Decimal | None) -> Decimal | None:
    if v is not None:
        to_minor(v)
    return v


# --- Request Schemas ---

class LedgerCreate(BaseModel):
    """Request to create a new ledger."""
    name: str = Field(min_length=1, max_length=100)
    code: str | None = Field(default=None, min_length=1, max_length=20)
    group: LedgerGroup
    # Derived from the group when omitted
    ledger_type: LedgerType | None = None
    opening_balance: Decimal = Field(default=Decimal("0"), ge=0)
    opening_balance_type: BalanceSide = BalanceSide.DEBIT
    description: str | None = Field(default=None, max_length=255)

    @field_validator("opening_balance")
    @classmethod
    def opening_within_currency_precision(cls, v):
        return _check_precision(v)


class LedgerUpdate(BaseModel):
    """Partial update of a ledger's own fields. Unset fields are left alone."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    code: str | None = Field(default=None, min_length=1, max_length=20)
    group: LedgerGroup | None = None
    ledger_type: LedgerType | None = None
    opening_balance: Decimal | None = Field(default=None, ge=0)
    opening_balance_type: BalanceSide | None = None
    description: str | None = Field(default=None, max_length=255)

    @field_validator("opening_balance")
    @classmethod
    def opening_within_currency_precision(cls, v):
        return _check_precision(v)


# --- Response Schemas ---

class LedgerResponse(BaseModel):
    """Ledger in API responses."""
    id: int
    name: str
    code: str | None
    group: LedgerGroup
    ledger_type: LedgerType
    opening_balance: Decimal
    opening_balance_type: BalanceSide
    current_balance: Decimal
    status: LedgerStatus
    description: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceCheckResponse(BaseModel):
    """Stored balance against the balance re-derived from history."""
    ledger_id: int
    ledger_name: str
    stored_balance: Decimal
    recomputed_balance: Decimal
    difference: Decimal
    is_consistent: bool


class IntegrityReport(BaseModel):
    """Whole-book check: posted debits equal posted credits, no drift."""
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool
    drifted_ledgers: list[BalanceCheckResponse]
