"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from dairy_books.models.base import Base
from dairy_books.models.enums import (
    BalanceSide,
    LedgerGroup,
    LedgerStatus,
    LedgerType,
    PaymentMode,
    ReferenceType,
    VoucherStatus,
    VoucherType,
)
from dairy_books.models.audit_log import AuditLog
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.models.voucher_entry import VoucherEntry
from dairy_books.models.voucher_sequence import VoucherSequence

__all__ = [
    "Base",
    "BalanceSide",
    "LedgerGroup",
    "LedgerStatus",
    "LedgerType",
    "PaymentMode",
    "ReferenceType",
    "VoucherStatus",
    "VoucherType",
    "AuditLog",
    "Ledger",
    "Voucher",
    "VoucherEntry",
    "VoucherSequence",
]
