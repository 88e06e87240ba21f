"""
Query facade: read-only views over posted history.

Nothing here writes. Statements and outstanding amounts are derived
from POSTED vouchers only; drafts and cancelled vouchers never
contribute.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from dairy_books.exceptions import LedgerNotFoundError, VoucherNotFoundError
from dairy_books.models.enums import BalanceSide, VoucherStatus, VoucherType
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.models.voucher_entry import VoucherEntry
from dairy_books.money import from_minor
from dairy_books.services.polarity import balance_delta, signed_opening

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatementLine:
    date: date
    voucher_id: int
    voucher_number: str
    voucher_type: VoucherType
    direction: BalanceSide
    amount: Decimal
    running_balance: Decimal
    narration: str | None


@dataclass(frozen=True)
class OutstandingEntry:
    voucher_id: int
    voucher_number: str
    date: date
    direction: BalanceSide
    amount: Decimal
    effect: Decimal


@dataclass
class OutstandingBucket:
    amount: Decimal = Decimal("0")
    contributing_entries: list[OutstandingEntry] = field(default_factory=list)


class LedgerStatement:
    """
    Running-balance statement for one ledger over a date range.

    Iterating runs the query again, so the statement can be walked
    more than once and always reflects what is committed at the time.
    Balances are signed: positive means the ledger's normal side.
    """

    def __init__(
        self,
        db: Session,
        ledger: Ledger,
        start: date | None = None,
        end: date | None = None,
    ):
        self.db = db
        self.ledger_id = ledger.id
        self.ledger_name = ledger.name
        self.ledger_type = ledger.ledger_type
        self.opening_type = ledger.opening_balance_type
        self.opening_minor = ledger.opening_balance_minor
        self.start = start
        self.end = end

    def _posted_rows(self):
        return (
            select(
                Voucher.voucher_date,
                Voucher.id,
                Voucher.voucher_number,
                Voucher.voucher_type,
                Voucher.narration,
                VoucherEntry.direction,
                VoucherEntry.amount_minor,
                VoucherEntry.memo,
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == self.ledger_id,
                Voucher.status == VoucherStatus.POSTED,
            )
        )

    def _opening_minor(self) -> int:
        balance = signed_opening(
            self.ledger_type, self.opening_type, self.opening_minor
        )
        if self.start is None:
            return balance

        rows = self.db.execute(
            select(
                VoucherEntry.direction,
                func.coalesce(func.sum(VoucherEntry.amount_minor), 0),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == self.ledger_id,
                Voucher.status == VoucherStatus.POSTED,
                Voucher.voucher_date < self.start,
            )
            .group_by(VoucherEntry.direction)
        ).all()
        for direction, total in rows:
            balance += balance_delta(self.ledger_type, direction, int(total))
        return balance

    @property
    def opening_balance(self) -> Decimal:
        """Balance carried into the range: opening plus everything before start."""
        return from_minor(self._opening_minor())

    @property
    def closing_balance(self) -> Decimal:
        closing = self.opening_balance
        for line in self:
            closing = line.running_balance
        return closing

    def __iter__(self):
        query = self._posted_rows()
        if self.start is not None:
            query = query.where(Voucher.voucher_date >= self.start)
        if self.end is not None:
            query = query.where(Voucher.voucher_date <= self.end)
        query = query.order_by(
            Voucher.voucher_date, Voucher.sequence_no, VoucherEntry.position
        )

        running = self._opening_minor()
        for row in self.db.execute(query):
            running += balance_delta(
                self.ledger_type, row.direction, row.amount_minor
            )
            yield StatementLine(
                date=row.voucher_date,
                voucher_id=row.id,
                voucher_number=row.voucher_number,
                voucher_type=row.voucher_type,
                direction=row.direction,
                amount=from_minor(row.amount_minor),
                running_balance=from_minor(running),
                narration=row.memo or row.narration,
            )


class QueryService:

    def __init__(self, db: Session):
        self.db = db

    def _get_ledger(self, ledger_id: int) -> Ledger:
        ledger = self.db.get(Ledger, ledger_id)
        if not ledger:
            raise LedgerNotFoundError(ledger_id)
        return ledger

    def get_voucher(self, voucher_id: int) -> Voucher:
        voucher = self.db.get(Voucher, voucher_id)
        if not voucher:
            raise VoucherNotFoundError(voucher_id)
        return voucher

    def list_vouchers(
        self,
        voucher_type: VoucherType | None = None,
        status: VoucherStatus | None = None,
        start: date | None = None,
        end: date | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Voucher], int]:
        """
        Filtered page of vouchers, newest first.

        Returns (items, total) where total counts every match,
        not just this page.
        """
        query = select(Voucher)
        if voucher_type is not None:
            query = query.where(Voucher.voucher_type == voucher_type)
        if status is not None:
            query = query.where(Voucher.status == status)
        if start is not None:
            query = query.where(Voucher.voucher_date >= start)
        if end is not None:
            query = query.where(Voucher.voucher_date <= end)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Voucher.voucher_number.ilike(pattern),
                Voucher.narration.ilike(pattern),
                Voucher.party_name.ilike(pattern),
            ))

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        items = self.db.execute(
            query
            .options(selectinload(Voucher.entries))
            .order_by(Voucher.voucher_date.desc(), Voucher.sequence_no.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(items), total

    def statement(
        self,
        ledger_id: int,
        start: date | None = None,
        end: date | None = None,
    ) -> LedgerStatement:
        """Statement for a ledger. Raises LedgerNotFoundError for an unknown id."""
        ledger = self._get_ledger(ledger_id)
        logger.debug("Statement for ledger %d from %s to %s", ledger_id, start, end)
        return LedgerStatement(self.db, ledger, start, end)

    def outstanding_by_classification(
        self, ledger_id: int, labels=None
    ) -> dict[str, OutstandingBucket]:
        """
        Net posted effect on a ledger, grouped by entry classification.

        Untagged entries are left out. When labels are given, only
        those labels are reported, and a label with no entries comes
        back as a zero bucket.
        """
        ledger = self._get_ledger(ledger_id)
        query = (
            select(
                VoucherEntry.classification,
                VoucherEntry.direction,
                VoucherEntry.amount_minor,
                Voucher.id,
                Voucher.voucher_number,
                Voucher.voucher_date,
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == ledger_id,
                VoucherEntry.classification.is_not(None),
                Voucher.status == VoucherStatus.POSTED,
            )
            .order_by(
                Voucher.voucher_date, Voucher.sequence_no, VoucherEntry.position
            )
        )
        if labels is not None:
            labels = list(labels)
            query = query.where(VoucherEntry.classification.in_(labels))

        totals: dict[str, int] = {}
        buckets: dict[str, OutstandingBucket] = {}
        for row in self.db.execute(query):
            effect = balance_delta(ledger.ledger_type, row.direction, row.amount_minor)
            totals[row.classification] = totals.get(row.classification, 0) + effect
            bucket = buckets.setdefault(row.classification, OutstandingBucket())
            bucket.contributing_entries.append(OutstandingEntry(
                voucher_id=row.id,
                voucher_number=row.voucher_number,
                date=row.voucher_date,
                direction=row.direction,
                amount=from_minor(row.amount_minor),
                effect=from_minor(effect),
            ))

        for label, total in totals.items():
            buckets[label].amount = from_minor(total)

        if labels is not None:
            for label in labels:
                buckets.setdefault(label, OutstandingBucket())
        return buckets
