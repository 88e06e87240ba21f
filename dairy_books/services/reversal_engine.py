"""
Reversal engine: undo a posted voucher's effect on the books.

Reversal applies the exact inverse of every balance change the
voucher made (same ledger, same amount, opposite sign) and marks
the voucher CANCELLED, all inside one savepoint. The voucher row
and its entries are kept for the audit trail.

Delete and edit are both built on the same steps:

- delete: reverse, nothing else
- edit:   cancel the original and post the replacement as one unit,
          applying both balance effects in a single ledger-id ordered
          pass; if the replacement fails the cancellation goes with it

Reversing against an inactive ledger is allowed: it corrects the
books rather than posting new business. A ledger row that has
vanished is an integrity failure and stops the reversal.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import (
    IntegrityError as SAIntegrityError,
    OperationalError,
)
from sqlalchemy.orm import Session

from dairy_books.exceptions import (
    ConcurrentModificationError,
    DuplicateVoucherNumberError,
    LedgerMissingError,
    VoucherNotFoundError,
    VoucherNotPostedError,
)
from dairy_books.models.enums import VoucherStatus
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.schemas.voucher import VoucherDraft
from dairy_books.services.audit import record_event
from dairy_books.services.posting_engine import (
    PendingEntry,
    PostingEngine,
    compute_deltas,
)

logger = logging.getLogger(__name__)


class ReversalEngine:

    def __init__(self, db: Session):
        self.db = db
        self.posting = PostingEngine(db)

    def _get_voucher(self, voucher_id: int) -> Voucher:
        voucher = self.db.get(Voucher, voucher_id, populate_existing=True)
        if not voucher:
            raise VoucherNotFoundError(voucher_id)
        return voucher

    def _prepare_reversal(self, voucher_id: int) -> tuple[Voucher, dict[int, int]]:
        """
        Load a POSTED voucher and work out the inverse of its effect.

        Reads only. Raises VoucherNotPostedError or LedgerMissingError.
        """
        voucher = self._get_voucher(voucher_id)
        if voucher.status != VoucherStatus.POSTED:
            logger.warning(
                "Refused to reverse %s: status is %s",
                voucher.voucher_number, voucher.status.value,
            )
            raise VoucherNotPostedError(voucher_id, voucher.status.value)

        entries = [
            PendingEntry(
                ledger_id=e.ledger_id,
                direction=e.direction,
                amount_minor=e.amount_minor,
            )
            for e in voucher.entries
        ]
        ledger_ids = {e.ledger_id for e in entries}
        ledgers = {
            ledger.id: ledger
            for ledger in self.db.execute(
                select(Ledger).where(Ledger.id.in_(ledger_ids))
            ).scalars().all()
        }
        missing = ledger_ids - set(ledgers)
        if missing:
            logger.error(
                "Cannot reverse %s: ledgers %s no longer exist",
                voucher.voucher_number, sorted(missing),
            )
            raise LedgerMissingError(voucher_id, missing)

        return voucher, compute_deltas(entries, ledgers, sign=-1)

    def _mark_cancelled(
        self, voucher: Voucher, reason: str, deltas: dict[int, int]
    ) -> None:
        # The status guard stops two concurrent reversals of the
        # same voucher from both applying the inverse.
        result = self.db.execute(
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.status == VoucherStatus.POSTED,
            )
            .values(
                status=VoucherStatus.CANCELLED,
                cancelled_at=datetime.utcnow(),
                cancel_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                f"Voucher {voucher.id} changed while it was being reversed"
            )
        record_event(
            self.db, "VOUCHER_REVERSED", voucher.id,
            voucher_number=voucher.voucher_number,
            reason=reason,
            deltas={str(k): v for k, v in deltas.items()},
        )

    def reverse(self, voucher_id: int, reason: str = "reversed") -> Voucher:
        """
        Reverse a POSTED voucher and mark it CANCELLED.

        Raises VoucherNotPostedError for DRAFT or CANCELLED vouchers
        and LedgerMissingError if a referenced ledger row is gone.
        In both cases no balance is touched.
        """
        voucher, deltas = self._prepare_reversal(voucher_id)

        try:
            with self.db.begin_nested():
                self._mark_cancelled(voucher, reason, deltas)
                self.posting.apply_balance_deltas(deltas)
        except OperationalError as e:
            self.posting.expire_balances(deltas)
            raise ConcurrentModificationError(
                f"Reversal lost a race with another writer: {e.orig}"
            ) from e
        except Exception:
            self.posting.expire_balances(deltas)
            raise

        self.posting.expire_balances(deltas)
        self.db.expire(voucher)
        logger.info(
            "Reversed %s (%s) across %d ledgers",
            voucher.voucher_number, reason, len(deltas),
        )
        return voucher

    def delete(self, voucher_id: int) -> Voucher:
        """
        Delete a voucher by cancelling it.

        A POSTED voucher is reversed first; if reversal fails the
        delete does not happen. A DRAFT never touched any balance
        and is simply cancelled. Rows are never removed.

        A draft that gets posted while it is being deleted is
        reversed instead, so its balance effect never outlives it.
        """
        voucher = self._get_voucher(voucher_id)
        if voucher.status != VoucherStatus.DRAFT:
            return self.reverse(voucher_id, reason="deleted")

        with self.db.begin_nested():
            result = self.db.execute(
                update(Voucher)
                .where(
                    Voucher.id == voucher_id,
                    Voucher.status == VoucherStatus.DRAFT,
                )
                .values(
                    status=VoucherStatus.CANCELLED,
                    cancelled_at=datetime.utcnow(),
                    cancel_reason="deleted",
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                record_event(
                    self.db, "VOUCHER_DRAFT_DISCARDED", voucher.id,
                    voucher_number=voucher.voucher_number,
                )

        if result.rowcount != 1:
            current = self.db.execute(
                select(Voucher.status).where(Voucher.id == voucher_id)
            ).scalar_one()
            if current == VoucherStatus.POSTED:
                logger.info(
                    "Draft %s was posted before it could be discarded; "
                    "reversing it", voucher.voucher_number,
                )
                return self.reverse(voucher_id, reason="deleted")
            raise ConcurrentModificationError(
                f"Draft {voucher_id} changed while it was being deleted "
                f"(status: {current.value})"
            )

        self.db.expire(voucher)
        logger.info("Discarded draft %s", voucher.voucher_number)
        return voucher

    def edit(self, voucher_id: int, draft: VoucherDraft) -> Voucher:
        """
        Replace a POSTED voucher with a new one.

        The original is cancelled and the replacement is posted with
        amends_voucher_id pointing at it, in one savepoint. The
        inverse of the original and the effect of the replacement are
        merged and applied in a single pass in ledger-id order. If
        anything fails, the original is left posted and every balance
        is untouched.
        """
        original, inverse = self._prepare_reversal(voucher_id)
        prepared = self.posting.prepare(draft)

        combined = dict(inverse)
        for ledger_id, delta in prepared.deltas.items():
            combined[ledger_id] = combined.get(ledger_id, 0) + delta

        try:
            with self.db.begin_nested():
                self._mark_cancelled(original, "edited", inverse)
                self.posting.apply_balance_deltas(
                    combined, require_active=prepared.deltas,
                )
                replacement = self.posting.record_posted(prepared, amends=original)
        except SAIntegrityError as e:
            self._discard_edit(original, combined, e)
            raise DuplicateVoucherNumberError(
                f"Voucher number collision while editing: {e.orig}"
            ) from e
        except OperationalError as e:
            self._discard_edit(original, combined, e)
            raise ConcurrentModificationError(
                f"Edit lost a race with another writer: {e.orig}"
            ) from e
        except Exception as e:
            self._discard_edit(original, combined, e)
            raise

        self.posting.expire_balances(combined)
        self.db.expire(original)
        logger.info(
            "Edited %s: replaced by %s",
            original.voucher_number, replacement.voucher_number,
        )
        return replacement

    def _discard_edit(self, original: Voucher, deltas, error) -> None:
        self.posting.expire_balances(deltas)
        self.db.expire(original)
        logger.warning(
            "Edit of %s rolled back: %s", original.voucher_number, error,
        )
