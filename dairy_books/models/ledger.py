"""
Ledger model (chart of accounts).

Every account the business keeps (cash, bank, farmers and
customers, sales, purchases, expenses) is a ledger. Voucher
entries are posted against ledgers.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, String, DateTime, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_books.models.base import Base
from dairy_books.models.enums import (
    BalanceSide,
    LedgerGroup,
    LedgerStatus,
    LedgerType,
)
from dairy_books.money import from_minor


class Ledger(Base):
    """
    A single account in the chart of accounts.

    current_balance_minor is signed: positive means the balance
    sits on the ledger type's normal side. It is only ever changed
    by the posting engine's balance primitive, as an atomic
    increment. version is bumped with every such increment.

    A ledger is never deleted, only deactivated, so historical
    vouchers always resolve.
    """

    __tablename__ = "ledgers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    code: Mapped[str | None] = mapped_column(
        String(20), unique=True, nullable=True
    )
    group: Mapped[LedgerGroup] = mapped_column(
        SAEnum(LedgerGroup, name="ledger_group_enum"),
        nullable=False,
        index=True,
    )
    ledger_type: Mapped[LedgerType] = mapped_column(
        SAEnum(LedgerType, name="ledger_type_enum"),
        nullable=False,
        index=True,
    )
    opening_balance_minor: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    opening_balance_type: Mapped[BalanceSide] = mapped_column(
        SAEnum(BalanceSide, name="balance_side_enum"),
        nullable=False,
        default=BalanceSide.DEBIT,
    )
    current_balance_minor: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    version: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    status: Mapped[LedgerStatus] = mapped_column(
        SAEnum(LedgerStatus, name="ledger_status_enum"),
        nullable=False,
        default=LedgerStatus.ACTIVE,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    entries: Mapped[list["VoucherEntry"]] = relationship(
        back_populates="ledger"
    )

    @property
    def opening_balance(self) -> Decimal:
        return from_minor(self.opening_balance_minor)

    @property
    def current_balance(self) -> Decimal:
        return from_minor(self.current_balance_minor)

    @property
    def is_active(self) -> bool:
        return self.status == LedgerStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Ledger {self.name} ({self.ledger_type.value})>"
