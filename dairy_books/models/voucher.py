"""
Voucher model.

A voucher is one business transaction recorded as a balanced set
of debit/credit entries. The voucher header carries the business
context (type, date, narration, payment details, originating
document); the entries carry the accounting.

Only POSTED vouchers affect ledger balances. A CANCELLED voucher
has had its effect reversed. Posted vouchers are never deleted.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger, String, Date, DateTime, ForeignKey, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_books.models.base import Base
from dairy_books.models.enums import (
    PaymentMode,
    ReferenceType,
    VoucherStatus,
    VoucherType,
)
from dairy_books.money import from_minor


class Voucher(Base):
    __tablename__ = "vouchers"

    id: Mapped[int] = mapped_column(primary_key=True)
    # Global, monotonically assigned; orders same-day vouchers.
    sequence_no: Mapped[int] = mapped_column(
        BigInteger, unique=True, nullable=False
    )
    voucher_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )
    voucher_type: Mapped[VoucherType] = mapped_column(
        SAEnum(VoucherType, name="voucher_type_enum"),
        nullable=False,
        index=True,
    )
    voucher_date: Mapped[date] = mapped_column(
        Date, nullable=False, index=True
    )
    narration: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[VoucherStatus] = mapped_column(
        SAEnum(VoucherStatus, name="voucher_status_enum"),
        nullable=False,
        default=VoucherStatus.DRAFT,
        index=True,
    )

    # Payment details
    payment_mode: Mapped[PaymentMode | None] = mapped_column(
        SAEnum(PaymentMode, name="payment_mode_enum"), nullable=True
    )
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    cheque_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    transaction_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Originating business document
    reference_type: Mapped[ReferenceType] = mapped_column(
        SAEnum(ReferenceType, name="reference_type_enum"),
        nullable=False,
        default=ReferenceType.MANUAL,
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    reference_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Counterpart party (farmer, customer, supplier) in the CRUD layer
    party_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    party_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_debit_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_credit_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)

    amends_voucher_id: Mapped[int | None] = mapped_column(
        ForeignKey("vouchers.id"), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    entries: Mapped[list["VoucherEntry"]] = relationship(
        back_populates="voucher",
        order_by="VoucherEntry.position",
        cascade="all, delete-orphan",
    )
    amends_voucher: Mapped["Voucher | None"] = relationship(
        remote_side=[id]
    )

    @property
    def total_debit(self) -> Decimal:
        return from_minor(self.total_debit_minor)

    @property
    def total_credit(self) -> Decimal:
        return from_minor(self.total_credit_minor)

    def __repr__(self) -> str:
        return (
            f"<Voucher {self.voucher_number} "
            f"{self.voucher_type.value} ({self.status.value})>"
        )
