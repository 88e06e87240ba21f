"""
Ledger service: the chart of accounts.

This service manages ledgers as records:
1. Names are unique (case-insensitive), codes are unique if set
2. Ledgers are never deleted, only deactivated
3. A ledger's type is fixed once anything has been posted to it
4. current_balance is only changed through the posting engine

It also carries the maintenance checks that re-derive balances
from history. Those are not part of normal posting, which never
recomputes a balance from scratch.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dairy_books.exceptions import (
    DuplicateLedgerError,
    LedgerNotFoundError,
    ValidationError,
)
from dairy_books.models.enums import (
    DEFAULT_TYPE_FOR_GROUP,
    BalanceSide,
    LedgerGroup,
    LedgerStatus,
    LedgerType,
    VoucherStatus,
)
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.models.voucher_entry import VoucherEntry
from dairy_books.money import from_minor, to_minor
from dairy_books.schemas.ledger import (
    BalanceCheckResponse,
    IntegrityReport,
    LedgerCreate,
    LedgerUpdate,
)
from dairy_books.services.audit import record_event
from dairy_books.services.polarity import balance_delta, signed_opening
from dairy_books.services.posting_engine import PostingEngine

logger = logging.getLogger(__name__)


class LedgerService:
    """
    All ledger administration passes through this service.

    The caller controls the transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db
        self.posting = PostingEngine(db)

    # --- Lookups ---

    def get_ledger(self, ledger_id: int) -> Ledger:
        ledger = self.db.get(Ledger, ledger_id)
        if not ledger:
            raise LedgerNotFoundError(ledger_id)
        return ledger

    def list_ledgers(
        self,
        group: LedgerGroup | None = None,
        ledger_type: LedgerType | None = None,
        status: LedgerStatus | None = None,
        search: str | None = None,
    ) -> list[Ledger]:
        """Return ledgers matching every given filter, sorted by name."""
        query = select(Ledger)
        if group is not None:
            query = query.where(Ledger.group == group)
        if ledger_type is not None:
            query = query.where(Ledger.ledger_type == ledger_type)
        if status is not None:
            query = query.where(Ledger.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                Ledger.name.ilike(pattern) | Ledger.code.ilike(pattern)
            )
        return list(self.db.execute(query.order_by(Ledger.name)).scalars().all())

    def _check_unique(
        self, name: str | None, code: str | None, exclude_id: int | None = None
    ) -> None:
        if name is not None:
            query = select(Ledger).where(func.lower(Ledger.name) == name.lower())
            if exclude_id is not None:
                query = query.where(Ledger.id != exclude_id)
            if self.db.execute(query).scalars().first():
                raise DuplicateLedgerError(
                    f"Ledger with name '{name}' already exists"
                )
        if code is not None:
            query = select(Ledger).where(Ledger.code == code)
            if exclude_id is not None:
                query = query.where(Ledger.id != exclude_id)
            if self.db.execute(query).scalars().first():
                raise DuplicateLedgerError(
                    f"Ledger with code '{code}' already exists"
                )

    def has_entries(self, ledger_id: int) -> bool:
        """True if any voucher, in any status, has a line on this ledger."""
        return self.db.execute(
            select(VoucherEntry.id).where(VoucherEntry.ledger_id == ledger_id).limit(1)
        ).first() is not None

    # --- Administration ---

    def create_ledger(self, request: LedgerCreate) -> Ledger:
        """
        Create a new ledger.

        current_balance starts at the signed opening balance.
        Raises DuplicateLedgerError if the name or code is taken.
        """
        self._check_unique(request.name, request.code)

        ledger_type = request.ledger_type or DEFAULT_TYPE_FOR_GROUP[request.group]
        opening_minor = to_minor(request.opening_balance)

        ledger = Ledger(
            name=request.name,
            code=request.code,
            group=request.group,
            ledger_type=ledger_type,
            opening_balance_minor=opening_minor,
            opening_balance_type=request.opening_balance_type,
            current_balance_minor=signed_opening(
                ledger_type, request.opening_balance_type, opening_minor
            ),
            status=LedgerStatus.ACTIVE,
            description=request.description,
        )
        self.db.add(ledger)
        self.db.flush()
        record_event(
            self.db, "LEDGER_CREATED", ledger.id,
            name=ledger.name, group=ledger.group.value,
            ledger_type=ledger_type.value,
            opening=str(request.opening_balance),
            opening_type=request.opening_balance_type.value,
        )
        logger.info("Created ledger %s (%s)", ledger.name, ledger_type.value)
        return ledger

    def update_ledger(self, ledger_id: int, request: LedgerUpdate) -> Ledger:
        """
        Update a ledger's own fields.

        Changing the opening balance moves current_balance by the
        signed difference, through the posting engine. Changing the
        type is refused once the ledger has entries, since every
        past entry's effect depends on it.
        """
        ledger = self.get_ledger(ledger_id)
        changes = request.model_dump(exclude_unset=True)

        self._check_unique(changes.get("name"), changes.get("code"), exclude_id=ledger.id)

        new_type = changes.get("ledger_type") or ledger.ledger_type
        if new_type != ledger.ledger_type and self.has_entries(ledger.id):
            raise ValidationError(
                f"Cannot change type of ledger {ledger.name}: "
                f"it already has entries"
            )

        old_opening = signed_opening(
            ledger.ledger_type, ledger.opening_balance_type,
            ledger.opening_balance_minor,
        )
        new_opening_minor = (
            to_minor(changes["opening_balance"])
            if changes.get("opening_balance") is not None
            else ledger.opening_balance_minor
        )
        new_opening_type = changes.get("opening_balance_type") or ledger.opening_balance_type
        new_opening = signed_opening(new_type, new_opening_type, new_opening_minor)

        for field in ("name", "group"):
            if changes.get(field) is not None:
                setattr(ledger, field, changes[field])
        for field in ("code", "description"):
            if field in changes:
                setattr(ledger, field, changes[field])
        ledger.ledger_type = new_type
        ledger.opening_balance_minor = new_opening_minor
        ledger.opening_balance_type = new_opening_type

        with self.db.begin_nested():
            self.db.flush()
            # A type change is only allowed on a ledger without entries,
            # so moving by the opening difference re-signs it correctly.
            if new_opening != old_opening:
                self.posting.apply_balance_deltas({ledger.id: new_opening - old_opening})
            record_event(
                self.db, "LEDGER_UPDATED", ledger.id,
                changes=request.model_dump(mode="json", exclude_unset=True),
            )
        self.posting.expire_balances([ledger.id])
        logger.info("Updated ledger %s", ledger.name)
        return ledger

    def set_status(self, ledger_id: int, status: LedgerStatus) -> Ledger:
        """Activate or deactivate a ledger. History is untouched."""
        ledger = self.get_ledger(ledger_id)
        if ledger.status != status:
            ledger.status = status
            record_event(
                self.db, "LEDGER_STATUS_CHANGED", ledger.id,
                status=status.value,
            )
            self.db.flush()
            logger.info("Ledger %s is now %s", ledger.name, status.value)
        return ledger

    # --- Maintenance ---

    def recompute_balance(self, ledger_id: int) -> int:
        """
        Re-derive a ledger's balance in minor units from history.

        Opening balance plus the effect of every POSTED entry.
        Read-only; does not touch current_balance.
        """
        ledger = self.get_ledger(ledger_id)
        rows = self.db.execute(
            select(
                VoucherEntry.direction,
                func.coalesce(func.sum(VoucherEntry.amount_minor), 0),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == ledger_id,
                Voucher.status == VoucherStatus.POSTED,
            )
            .group_by(VoucherEntry.direction)
        ).all()

        balance = signed_opening(
            ledger.ledger_type, ledger.opening_balance_type,
            ledger.opening_balance_minor,
        )
        for direction, total in rows:
            balance += balance_delta(ledger.ledger_type, direction, int(total))
        return balance

    def verify_balance(self, ledger_id: int) -> BalanceCheckResponse:
        """Compare the stored balance with the one re-derived from history."""
        ledger = self.get_ledger(ledger_id)
        self.db.refresh(ledger)
        recomputed = self.recompute_balance(ledger_id)
        stored = ledger.current_balance_minor
        return BalanceCheckResponse(
            ledger_id=ledger.id,
            ledger_name=ledger.name,
            stored_balance=from_minor(stored),
            recomputed_balance=from_minor(recomputed),
            difference=from_minor(stored - recomputed),
            is_consistent=stored == recomputed,
        )

    def find_balance_drift(self) -> list[BalanceCheckResponse]:
        """Every ledger whose stored balance disagrees with its history."""
        ledger_ids = self.db.execute(
            select(Ledger.id).order_by(Ledger.id)
        ).scalars().all()
        checks = [self.verify_balance(ledger_id) for ledger_id in ledger_ids]
        return [check for check in checks if not check.is_consistent]

    def repair_balance(self, ledger_id: int) -> BalanceCheckResponse:
        """
        Reset a drifted ledger to its recomputed balance.

        A maintenance operation for operators, not part of normal
        flow. The correction goes through the balance primitive and
        is recorded in the audit log.
        """
        ledger = self.get_ledger(ledger_id)
        with self.db.begin_nested():
            # Lock the row before reading it, so no posting can land
            # between the stored read and the recompute.
            stored = self.db.execute(
                select(Ledger.current_balance_minor)
                .where(Ledger.id == ledger_id)
                .with_for_update()
            ).scalar_one()
            recomputed = self.recompute_balance(ledger_id)
            correction = recomputed - stored
            if correction:
                self.posting.apply_balance_deltas({ledger_id: correction})
                record_event(
                    self.db, "LEDGER_BALANCE_REPAIRED", ledger_id,
                    correction=correction,
                    stored=str(from_minor(stored)),
                    recomputed=str(from_minor(recomputed)),
                )

        if not correction:
            return self.verify_balance(ledger_id)

        self.posting.expire_balances([ledger_id])
        logger.warning(
            "Repaired balance of ledger %s by %s",
            ledger.name, from_minor(correction),
        )
        return self.verify_balance(ledger_id)

    def check_integrity(self) -> IntegrityReport:
        """
        Verify the whole book.

        Total posted debits must equal total posted credits, and no
        ledger may have drifted from its history.
        """
        totals = dict(self.db.execute(
            select(
                VoucherEntry.direction,
                func.coalesce(func.sum(VoucherEntry.amount_minor), 0),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(Voucher.status == VoucherStatus.POSTED)
            .group_by(VoucherEntry.direction)
        ).all())
        total_debits = int(totals.get(BalanceSide.DEBIT, 0))
        total_credits = int(totals.get(BalanceSide.CREDIT, 0))
        drifted = self.find_balance_drift()

        return IntegrityReport(
            total_debits=from_minor(total_debits),
            total_credits=from_minor(total_credits),
            difference=from_minor(total_debits - total_credits),
            is_balanced=total_debits == total_credits and not drifted,
            drifted_ledgers=drifted,
        )
