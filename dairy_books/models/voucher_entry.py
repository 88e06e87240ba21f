"""
Voucher entry model.

One line of a voucher: a single debit or credit against one
ledger. Entries belong to their voucher and have no lifecycle
of their own.
"""

from decimal import Decimal

from sqlalchemy import (
    BigInteger, String, ForeignKey, Enum as SAEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_books.models.base import Base
from dairy_books.models.enums import BalanceSide
from dairy_books.money import from_minor


class VoucherEntry(Base):
    """
    A debit or credit line within a voucher.

    The ledger's display name is not stored here; it is looked up
    through the relationship so a renamed ledger shows its current
    name on old vouchers.
    """

    __tablename__ = "voucher_entries"
    __table_args__ = (
        UniqueConstraint("voucher_id", "position", name="uq_voucher_entry_position"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    voucher_id: Mapped[int] = mapped_column(
        ForeignKey("vouchers.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(nullable=False)
    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("ledgers.id"), nullable=False, index=True
    )
    direction: Mapped[BalanceSide] = mapped_column(
        SAEnum(BalanceSide, name="balance_side_enum"),
        nullable=False,
    )
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    memo: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Free-form tag ("Cash Advance", "Loan Advance") summed by the
    # outstanding report.
    classification: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True
    )

    voucher: Mapped["Voucher"] = relationship(back_populates="entries")
    ledger: Mapped["Ledger"] = relationship(back_populates="entries")

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)

    @property
    def ledger_name(self) -> str | None:
        return self.ledger.name if self.ledger is not None else None

    def __repr__(self) -> str:
        return (
            f"<VoucherEntry {self.direction.value} "
            f"{self.amount} ledger={self.ledger_id}>"
        )
