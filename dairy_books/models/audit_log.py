"""
Audit log model.

Records every change to the books: ledger administration and
every voucher post, reversal, and edit. Together with the
vouchers themselves this lets anyone re-derive a ledger's
balance and see who changed what.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from dairy_books.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a change to the books.

    Append-only. Never updated or deleted.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[int | None] = mapped_column(nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
