"""
Posting engine: the core of the books.

This service turns a proposed voucher into a durable fact:

1. Every voucher has at least two entries, all amounts positive
2. Total debits equal total credits, compared in minor units
3. Every referenced ledger exists and is active
4. Ledger balances change by atomic increment, in ledger-id order
5. Balance changes and the voucher row become visible together

Validation runs before anything is written. The write phase runs
inside a SAVEPOINT, so a failure at any step leaves no trace, not
even in the caller's open transaction. The caller still decides
when to commit.

No other code writes ledger balances. The reversal engine and
ledger maintenance go through apply_balance_deltas().
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import inspect, select, update
from sqlalchemy.exc import (
    IntegrityError as SAIntegrityError,
    OperationalError,
)
from sqlalchemy.orm import Session

from dairy_books.exceptions import (
    ConcurrentModificationError,
    DuplicateVoucherNumberError,
    InactiveLedgerError,
    InvalidEntryError,
    LedgerReferenceError,
    UnbalancedEntriesError,
    UnknownLedgerError,
    ValidationError,
    VoucherNotFoundError,
    VoucherStateError,
)
from dairy_books.models.enums import BalanceSide, LedgerStatus, VoucherStatus
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.models.voucher_entry import VoucherEntry
from dairy_books.money import from_minor, to_minor
from dairy_books.schemas.voucher import VoucherDraft
from dairy_books.services.audit import record_event
from dairy_books.services.polarity import balance_delta
from dairy_books.services.sequence import allocate_voucher_number

logger = logging.getLogger(__name__)

_BALANCE_ATTRS = ["current_balance_minor", "version", "updated_at"]


@dataclass(frozen=True)
class PendingEntry:
    """An entry with its amount already converted to minor units."""
    ledger_id: int
    direction: BalanceSide
    amount_minor: int
    memo: str | None = None
    classification: str | None = None


@dataclass(frozen=True)
class PreparedPosting:
    """A draft that passed every check, with its balance effect."""
    draft: VoucherDraft
    entries: list[PendingEntry]
    total_debit: int
    total_credit: int
    deltas: dict[int, int]


def entries_from_draft(draft: VoucherDraft) -> list[PendingEntry]:
    """
    Convert draft entries to minor units.

    Amounts finer than the smallest currency unit are rejected
    rather than rounded.
    """
    pending = []
    for index, entry in enumerate(draft.entries):
        try:
            amount_minor = to_minor(entry.amount)
        except ValueError as e:
            raise InvalidEntryError(f"Entry {index + 1}: {e}") from e
        pending.append(PendingEntry(
            ledger_id=entry.ledger_id,
            direction=entry.direction,
            amount_minor=amount_minor,
            memo=entry.memo,
            classification=entry.classification or draft.classification,
        ))
    return pending


def validate_entries(entries: list[PendingEntry]) -> tuple[int, int]:
    """
    Check the double-entry rules. Returns (total_debit, total_credit).

    Raises InvalidEntryError or UnbalancedEntriesError.
    """
    if len(entries) < 2:
        raise InvalidEntryError("At least two entries are required")

    for index, entry in enumerate(entries):
        if entry.amount_minor <= 0:
            raise InvalidEntryError(
                f"Entry {index + 1}: amount must be positive"
            )

    sides = {e.direction for e in entries}
    if BalanceSide.DEBIT not in sides or BalanceSide.CREDIT not in sides:
        raise InvalidEntryError(
            "Voucher must contain at least one debit and one credit"
        )

    total_debit = sum(
        e.amount_minor for e in entries if e.direction == BalanceSide.DEBIT
    )
    total_credit = sum(
        e.amount_minor for e in entries if e.direction == BalanceSide.CREDIT
    )
    if total_debit != total_credit:
        raise UnbalancedEntriesError(
            from_minor(total_debit), from_minor(total_credit)
        )
    return total_debit, total_credit


def compute_deltas(
    entries: list[PendingEntry], ledgers: dict[int, Ledger], sign: int = 1
) -> dict[int, int]:
    """
    Net balance change per ledger for a set of entries.

    sign=-1 gives the exact inverse, which is what reversal applies.
    """
    deltas: dict[int, int] = defaultdict(int)
    for entry in entries:
        ledger = ledgers[entry.ledger_id]
        deltas[entry.ledger_id] += sign * balance_delta(
            ledger.ledger_type, entry.direction, entry.amount_minor
        )
    return dict(deltas)


class PostingEngine:
    """
    Posts vouchers and owns the ledger balance primitive.

    The engine takes a database session as a constructor argument.
    The caller controls the outer transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db

    # --- Ledger balance primitive ---

    def apply_balance_deltas(
        self, deltas: dict[int, int], require_active=()
    ) -> None:
        """
        Add each delta to its ledger's current balance.

        Ledgers are updated in ascending id order so that two
        postings touching the same ledgers always take row locks
        in the same order. Must be called inside a transaction
        that the caller rolls back on failure.

        Ledgers listed in require_active are only updated while
        ACTIVE, so a ledger deactivated after the posting was
        validated still refuses it (InactiveLedgerError).
        """
        require_active = set(require_active)
        for ledger_id in sorted(deltas):
            delta = deltas[ledger_id]
            if delta == 0:
                continue
            self._apply_delta(ledger_id, delta, ledger_id in require_active)

    def _apply_delta(
        self, ledger_id: int, delta: int, require_active: bool = False
    ) -> None:
        query = update(Ledger).where(Ledger.id == ledger_id)
        if require_active:
            query = query.where(Ledger.status == LedgerStatus.ACTIVE)
        result = self.db.execute(
            query
            .values(
                current_balance_minor=Ledger.current_balance_minor + delta,
                version=Ledger.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        row = self.db.execute(
            select(Ledger.name, Ledger.status).where(Ledger.id == ledger_id)
        ).first()
        if row is not None and row.status != LedgerStatus.ACTIVE:
            logger.warning(
                "Ledger %s was deactivated before its balance was updated",
                row.name,
            )
            raise InactiveLedgerError(ledger_id, row.name)
        raise ConcurrentModificationError(
            f"Ledger {ledger_id} disappeared while its balance was "
            f"being updated"
        )

    def expire_balances(self, ledger_ids) -> None:
        """
        Drop cached balances so the next read comes from the database.

        Balance updates bypass the ORM, so loaded Ledger objects
        don't see them until expired.
        """
        ledger_ids = set(ledger_ids)
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, Ledger) and inspect(obj).identity[0] in ledger_ids:
                self.db.expire(obj, _BALANCE_ATTRS)

    # --- Lookups ---

    def resolve_ledgers(
        self, ledger_ids, require_active: bool = True
    ) -> dict[int, Ledger]:
        """
        Load every referenced ledger.

        Raises UnknownLedgerError for ids that don't exist and,
        when require_active, InactiveLedgerError for the first
        inactive one (lowest id).
        """
        ledger_ids = set(ledger_ids)
        ledgers = self.db.execute(
            select(Ledger).where(Ledger.id.in_(ledger_ids))
        ).scalars().all()
        ledgers_by_id = {ledger.id: ledger for ledger in ledgers}

        missing = ledger_ids - set(ledgers_by_id)
        if missing:
            raise UnknownLedgerError(missing)

        if require_active:
            for ledger_id in sorted(ledgers_by_id):
                ledger = ledgers_by_id[ledger_id]
                if not ledger.is_active:
                    raise InactiveLedgerError(ledger.id, ledger.name)

        return ledgers_by_id

    def _get_voucher(self, voucher_id: int) -> Voucher:
        voucher = self.db.get(Voucher, voucher_id, populate_existing=True)
        if not voucher:
            raise VoucherNotFoundError(voucher_id)
        return voucher

    # --- Posting ---

    def post(
        self, draft: VoucherDraft, amends: Voucher | None = None
    ) -> Voucher:
        """
        Validate a draft, apply its balance effect, and record it as POSTED.

        If any check fails, nothing is written. If a write fails,
        the savepoint is rolled back and nothing is visible.
        """
        prepared = self.prepare(draft)
        deltas = prepared.deltas

        try:
            with self.db.begin_nested():
                self.apply_balance_deltas(deltas, require_active=deltas)
                voucher = self.record_posted(prepared, amends=amends)
        except SAIntegrityError as e:
            self.expire_balances(deltas)
            raise DuplicateVoucherNumberError(
                f"Voucher number collision while posting: {e.orig}"
            ) from e
        except OperationalError as e:
            self.expire_balances(deltas)
            raise ConcurrentModificationError(
                f"Posting lost a race with another writer: {e.orig}"
            ) from e
        except Exception:
            self.expire_balances(deltas)
            raise

        self.expire_balances(deltas)
        logger.info(
            "Posted %s (%s) for %s across %d ledgers",
            voucher.voucher_number, voucher.voucher_type.value,
            from_minor(prepared.total_debit), len(deltas),
        )
        return voucher

    def prepare(self, draft: VoucherDraft) -> PreparedPosting:
        """
        Run every check on a draft and work out its balance effect.

        Reads only. Raises ValidationError or LedgerReferenceError.
        """
        try:
            entries = entries_from_draft(draft)
            total_debit, total_credit = validate_entries(entries)
            ledgers = self.resolve_ledgers(e.ledger_id for e in entries)
        except (ValidationError, LedgerReferenceError) as e:
            logger.warning("Rejected %s voucher: %s", draft.voucher_type.value, e)
            raise
        return PreparedPosting(
            draft=draft,
            entries=entries,
            total_debit=total_debit,
            total_credit=total_credit,
            deltas=compute_deltas(entries, ledgers),
        )

    def record_posted(
        self, prepared: PreparedPosting, amends: Voucher | None = None
    ) -> Voucher:
        """
        Number and store a POSTED voucher whose balance effect the
        caller has already applied, in the same savepoint.
        """
        draft = prepared.draft
        sequence_no, voucher_number = allocate_voucher_number(
            self.db, draft.voucher_type, draft.voucher_date
        )
        voucher = self._build_voucher(
            draft, prepared.entries, prepared.total_debit,
            prepared.total_credit, sequence_no, voucher_number,
        )
        voucher.status = VoucherStatus.POSTED
        voucher.posted_at = datetime.utcnow()
        if amends is not None:
            voucher.amends_voucher_id = amends.id
        self.db.add(voucher)
        self.db.flush()
        record_event(
            self.db, "VOUCHER_POSTED", voucher.id,
            voucher_number=voucher_number,
            total=str(from_minor(prepared.total_debit)),
            deltas={str(k): v for k, v in prepared.deltas.items()},
            amends=amends.id if amends is not None else None,
        )
        return voucher

    def save_draft(self, draft: VoucherDraft) -> Voucher:
        """
        Store a voucher as DRAFT without touching any balance.

        The draft must already balance and reference existing
        ledgers; whether those ledgers are active is checked when
        the draft is posted.
        """
        entries = entries_from_draft(draft)
        total_debit, total_credit = validate_entries(entries)
        self.resolve_ledgers((e.ledger_id for e in entries), require_active=False)

        try:
            with self.db.begin_nested():
                sequence_no, voucher_number = allocate_voucher_number(
                    self.db, draft.voucher_type, draft.voucher_date
                )
                voucher = self._build_voucher(
                    draft, entries, total_debit, total_credit,
                    sequence_no, voucher_number,
                )
                voucher.status = VoucherStatus.DRAFT
                self.db.add(voucher)
                self.db.flush()
                record_event(
                    self.db, "VOUCHER_DRAFTED", voucher.id,
                    voucher_number=voucher_number,
                )
        except SAIntegrityError as e:
            raise DuplicateVoucherNumberError(
                f"Voucher number collision while saving draft: {e.orig}"
            ) from e
        except OperationalError as e:
            raise ConcurrentModificationError(
                f"Saving draft lost a race with another writer: {e.orig}"
            ) from e

        logger.info("Saved draft %s", voucher.voucher_number)
        return voucher

    def post_draft(self, voucher_id: int) -> Voucher:
        """
        Post a previously saved draft, keeping its number.

        The stored entries are validated again and every ledger
        must be active at the time of posting.
        """
        voucher = self._get_voucher(voucher_id)
        if voucher.status != VoucherStatus.DRAFT:
            raise VoucherStateError(
                f"Voucher {voucher_id} is not a draft "
                f"(status: {voucher.status.value})"
            )

        entries = [
            PendingEntry(
                ledger_id=e.ledger_id,
                direction=e.direction,
                amount_minor=e.amount_minor,
                memo=e.memo,
                classification=e.classification,
            )
            for e in voucher.entries
        ]
        validate_entries(entries)
        ledgers = self.resolve_ledgers(e.ledger_id for e in entries)
        deltas = compute_deltas(entries, ledgers)

        try:
            with self.db.begin_nested():
                # Only one caller may move the draft to POSTED
                result = self.db.execute(
                    update(Voucher)
                    .where(
                        Voucher.id == voucher_id,
                        Voucher.status == VoucherStatus.DRAFT,
                    )
                    .values(
                        status=VoucherStatus.POSTED,
                        posted_at=datetime.utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentModificationError(
                        f"Draft {voucher_id} changed while it was being posted"
                    )
                self.apply_balance_deltas(deltas, require_active=deltas)
                record_event(
                    self.db, "VOUCHER_POSTED", voucher.id,
                    voucher_number=voucher.voucher_number,
                    total=str(voucher.total_debit),
                    deltas={str(k): v for k, v in deltas.items()},
                    from_draft=True,
                )
        except OperationalError as e:
            self.expire_balances(deltas)
            raise ConcurrentModificationError(
                f"Posting draft lost a race with another writer: {e.orig}"
            ) from e
        except Exception:
            self.expire_balances(deltas)
            raise

        self.expire_balances(deltas)
        self.db.expire(voucher)
        logger.info("Posted draft %s", voucher.voucher_number)
        return voucher

    def _build_voucher(
        self,
        draft: VoucherDraft,
        entries: list[PendingEntry],
        total_debit: int,
        total_credit: int,
        sequence_no: int,
        voucher_number: str,
    ) -> Voucher:
        voucher = Voucher(
            sequence_no=sequence_no,
            voucher_number=voucher_number,
            voucher_type=draft.voucher_type,
            voucher_date=draft.voucher_date,
            narration=draft.narration,
            payment_mode=draft.payment_mode,
            bank_name=draft.bank_name,
            cheque_number=draft.cheque_number,
            cheque_date=draft.cheque_date,
            transaction_ref=draft.transaction_ref,
            reference_type=draft.reference_type,
            reference_id=draft.reference_id,
            reference_number=draft.reference_number,
            party_id=draft.party_id,
            party_name=draft.party_name,
            total_debit_minor=total_debit,
            total_credit_minor=total_credit,
        )
        voucher.entries = [
            VoucherEntry(
                position=position,
                ledger_id=entry.ledger_id,
                direction=entry.direction,
                amount_minor=entry.amount_minor,
                memo=entry.memo,
                classification=entry.classification,
            )
            for position, entry in enumerate(entries, start=1)
        ]
        return voucher
