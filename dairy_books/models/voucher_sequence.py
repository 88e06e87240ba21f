"""
Named counters for voucher numbering.

One row per counter. A counter is advanced with a single
"last_value = last_value + 1" update, so two postings can never
be handed the same number.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from dairy_books.models.base import Base


class VoucherSequence(Base):
    __tablename__ = "voucher_sequences"

    name: Mapped[str] = mapped_column(String(40), primary_key=True)
    last_value: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    def __repr__(self) -> str:
        return f"<VoucherSequence {self.name}={self.last_value}>"
