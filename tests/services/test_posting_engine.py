"""
Tests for the PostingEngine.

Tests cover:
- Balance effects for every polarity (asset, income, expense)
- Rejection of unbalanced, malformed and mis-referenced vouchers
  with no change to any balance
- Voucher numbering
- Randomised balanced and unbalanced drafts
- Failure part-way through the balance updates
- Concurrent postings against the same ledger
- Drafts
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from dairy_books.api.errors import run_in_transaction
from dairy_books.exceptions import (
    ConcurrentModificationError,
    InactiveLedgerError,
    InvalidEntryError,
    UnbalancedEntriesError,
    UnknownLedgerError,
    ValidationError,
    VoucherStateError,
)
from dairy_books.models.enums import (
    BalanceSide,
    LedgerGroup,
    LedgerStatus,
    VoucherStatus,
    VoucherType,
)
from dairy_books.models.ledger import Ledger
from dairy_books.models.voucher import Voucher
from dairy_books.schemas.voucher import VoucherDraft, VoucherEntryCreate
from dairy_books.services.ledger_service import LedgerService
from dairy_books.services.posting_engine import PostingEngine

DEBIT = BalanceSide.DEBIT
CREDIT = BalanceSide.CREDIT


def make_draft(*lines, voucher_type=VoucherType.JOURNAL, **header):
    """Build a draft from (ledger_id, direction, amount) tuples."""
    return VoucherDraft(
        voucher_type=voucher_type,
        entries=[
            VoucherEntryCreate(
                ledger_id=ledger_id, direction=direction, amount=Decimal(amount),
            )
            for ledger_id, direction, amount in lines
        ],
        **header,
    )


def voucher_count(db_session):
    return db_session.execute(select(func.count(Voucher.id))).scalar_one()


def deactivate_after_check(monkeypatch, ledger_id):
    """Deactivate a ledger right after the engine has checked it is active."""
    original = PostingEngine.resolve_ledgers

    def resolve_then_deactivate(self, ledger_ids, require_active=True):
        ledgers = original(self, ledger_ids, require_active)
        self.db.execute(
            update(Ledger).where(Ledger.id == ledger_id)
            .values(status=LedgerStatus.INACTIVE)
        )
        return ledgers

    monkeypatch.setattr(PostingEngine, "resolve_ledgers", resolve_then_deactivate)


@pytest.fixture
def scenario(make_ledger):
    """A: expense at 0. B: cash with 1000 opening. C: income at 0."""
    return {
        "A": make_ledger("Veterinary", LedgerGroup.DIRECT_EXPENSES),
        "B": make_ledger("Cash", LedgerGroup.CASH_IN_HAND, opening="1000"),
        "C": make_ledger(
            "Commission", LedgerGroup.INDIRECT_INCOMES,
            opening_type=BalanceSide.CREDIT,
        ),
    }


# --- Posting ---

class TestPost:

    def test_expense_paid_from_cash(self, scenario, db_session, balance_of):
        a, b = scenario["A"].id, scenario["B"].id
        voucher = PostingEngine(db_session).post(
            make_draft((a, DEBIT, "200"), (b, CREDIT, "200"))
        )
        db_session.commit()

        assert voucher.status == VoucherStatus.POSTED
        assert voucher.posted_at is not None
        assert balance_of(a) == Decimal("200.00")
        assert balance_of(b) == Decimal("800.00")

    def test_unbalanced_voucher_changes_nothing(self, scenario, db_session, balance_of):
        a, b = scenario["A"].id, scenario["B"].id
        with pytest.raises(UnbalancedEntriesError) as exc_info:
            PostingEngine(db_session).post(
                make_draft((a, DEBIT, "150"), (b, CREDIT, "100"))
            )

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.total_debit == Decimal("150.00")
        assert exc_info.value.total_credit == Decimal("100.00")
        assert balance_of(a) == Decimal("0.00")
        assert balance_of(b) == Decimal("1000.00")
        assert voucher_count(db_session) == 0

    def test_debit_to_income_moves_it_below_zero(self, scenario, db_session, balance_of):
        a, b, c = (scenario[k].id for k in "ABC")
        PostingEngine(db_session).post(make_draft(
            (a, DEBIT, "300"), (c, DEBIT, "50"), (b, CREDIT, "350"),
        ))
        db_session.commit()

        assert balance_of(a) == Decimal("300.00")
        assert balance_of(b) == Decimal("650.00")
        assert balance_of(c) == Decimal("-50.00")

    def test_entries_keep_their_order(self, books, db_session):
        voucher = PostingEngine(db_session).post(make_draft(
            (books["feed"].id, DEBIT, "30"),
            (books["cash"].id, CREDIT, "10"),
            (books["bank"].id, CREDIT, "20"),
        ))
        db_session.commit()

        assert [e.position for e in voucher.entries] == [1, 2, 3]
        assert [e.ledger_name for e in voucher.entries] == [
            "Cattle Feed", "Cash", "HDFC Bank",
        ]
        assert voucher.total_debit == voucher.total_credit == Decimal("30.00")

    def test_header_fields_are_stored(self, books, db_session):
        voucher = PostingEngine(db_session).post(make_draft(
            (books["cash"].id, DEBIT, "500"),
            (books["sales"].id, CREDIT, "500"),
            voucher_type=VoucherType.SALES,
            narration="Milk sold to Gokul Sweets",
            party_id="C-17",
            party_name="Gokul Sweets",
            reference_number="INV-0042",
        ))
        db_session.commit()

        assert voucher.narration == "Milk sold to Gokul Sweets"
        assert voucher.party_name == "Gokul Sweets"
        assert voucher.reference_number == "INV-0042"

    def test_voucher_classification_applies_to_untagged_entries(self, books, db_session):
        draft = make_draft(
            (books["farmer"].id, DEBIT, "100"),
            (books["cash"].id, CREDIT, "100"),
            classification="Cash Advance",
        )
        draft.entries[1].classification = "Cash Paid"
        voucher = PostingEngine(db_session).post(draft)
        db_session.commit()

        assert [e.classification for e in voucher.entries] == ["Cash Advance", "Cash Paid"]

    def test_ledger_version_counts_increments(self, books, db_session):
        engine = PostingEngine(db_session)
        for _ in range(3):
            engine.post(make_draft(
                (books["cash"].id, DEBIT, "1"), (books["sales"].id, CREDIT, "1"),
            ))
        db_session.commit()

        db_session.refresh(books["cash"])
        assert books["cash"].version == 3


class TestRejection:

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount(self, books, db_session, balance_of, amount):
        with pytest.raises(InvalidEntryError, match="must be positive"):
            PostingEngine(db_session).post(make_draft(
                (books["cash"].id, DEBIT, amount),
                (books["sales"].id, CREDIT, amount),
            ))
        assert balance_of(books["cash"].id) == Decimal("0.00")

    def test_single_entry(self, books, db_session):
        with pytest.raises(InvalidEntryError, match="At least two"):
            PostingEngine(db_session).post(make_draft((books["cash"].id, DEBIT, "5")))

    def test_no_entries(self, db_session):
        with pytest.raises(InvalidEntryError):
            PostingEngine(db_session).post(make_draft())

    def test_one_sided(self, books, db_session):
        with pytest.raises(InvalidEntryError, match="one debit and one credit"):
            PostingEngine(db_session).post(make_draft(
                (books["cash"].id, DEBIT, "5"), (books["bank"].id, DEBIT, "5"),
            ))

    def test_excess_precision(self, books, db_session):
        with pytest.raises(InvalidEntryError, match="Entry 1"):
            PostingEngine(db_session).post(make_draft(
                (books["cash"].id, DEBIT, "1.005"),
                (books["sales"].id, CREDIT, "1.005"),
            ))

    def test_unknown_ledger(self, books, db_session, balance_of):
        with pytest.raises(UnknownLedgerError) as exc_info:
            PostingEngine(db_session).post(make_draft(
                (books["cash"].id, DEBIT, "5"), (999, CREDIT, "5"),
            ))
        assert exc_info.value.ledger_ids == [999]
        assert balance_of(books["cash"].id) == Decimal("0.00")

    def test_inactive_ledger(self, books, db_session, balance_of):
        LedgerService(db_session).set_status(books["bank"].id, LedgerStatus.INACTIVE)
        db_session.commit()

        with pytest.raises(InactiveLedgerError, match="is inactive"):
            PostingEngine(db_session).post(make_draft(
                (books["cash"].id, DEBIT, "5"), (books["bank"].id, CREDIT, "5"),
            ))
        assert balance_of(books["cash"].id) == Decimal("0.00")
        assert voucher_count(db_session) == 0

    def test_ledger_deactivated_after_check_is_refused(
        self, books, db_session, balance_of, monkeypatch,
    ):
        cash, bank = books["cash"].id, books["bank"].id
        deactivate_after_check(monkeypatch, bank)

        with pytest.raises(InactiveLedgerError, match="HDFC Bank"):
            PostingEngine(db_session).post(make_draft(
                (cash, DEBIT, "5"), (bank, CREDIT, "5"),
            ))
        # Cash sorts first and was already incremented; the savepoint undoes it
        assert balance_of(cash) == Decimal("0.00")
        assert balance_of(bank) == Decimal("0.00")
        assert voucher_count(db_session) == 0

    def test_rejection_is_logged(self, books, db_session, caplog):
        with caplog.at_level("WARNING", logger="dairy_books.services.posting_engine"):
            with pytest.raises(UnbalancedEntriesError):
                PostingEngine(db_session).post(make_draft(
                    (books["cash"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "4"),
                ))
        assert "Rejected JOURNAL voucher" in caplog.text


# --- Numbering ---

class TestNumbering:

    def test_number_has_type_prefix_and_month(self, books, db_session):
        voucher = PostingEngine(db_session).post(make_draft(
            (books["cash"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "5"),
            voucher_date=date(2025, 10, 3),
        ))
        db_session.commit()
        assert voucher.voucher_number == "BJV25100001"

    def test_each_type_and_month_counts_separately(self, books, db_session):
        engine = PostingEngine(db_session)
        lines = ((books["cash"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "5"))

        numbers = [
            engine.post(make_draft(*lines, voucher_date=date(2025, 10, 1))).voucher_number,
            engine.post(make_draft(*lines, voucher_date=date(2025, 10, 2))).voucher_number,
            engine.post(make_draft(
                *lines, voucher_type=VoucherType.SALES, voucher_date=date(2025, 10, 2),
            )).voucher_number,
            engine.post(make_draft(*lines, voucher_date=date(2025, 11, 1))).voucher_number,
        ]
        db_session.commit()

        assert numbers == ["BJV25100001", "BJV25100002", "BSL25100001", "BJV25110001"]

    def test_sequence_is_global_and_increasing(self, books, db_session):
        engine = PostingEngine(db_session)
        lines = ((books["cash"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "5"))
        first = engine.post(make_draft(*lines))
        second = engine.post(make_draft(*lines, voucher_type=VoucherType.INCOME))
        db_session.commit()
        assert second.sequence_no == first.sequence_no + 1

    def test_rejected_voucher_does_not_consume_a_number(self, books, db_session):
        engine = PostingEngine(db_session)
        lines = ((books["cash"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "5"))
        LedgerService(db_session).set_status(books["bank"].id, LedgerStatus.INACTIVE)
        with pytest.raises(InactiveLedgerError):
            engine.post(make_draft(
                (books["bank"].id, DEBIT, "5"), (books["sales"].id, CREDIT, "5"),
                voucher_date=date(2025, 10, 1),
            ))
        voucher = engine.post(make_draft(*lines, voucher_date=date(2025, 10, 1)))
        db_session.commit()
        assert voucher.voucher_number == "BJV25100001"
        assert voucher.sequence_no == 1


# --- Randomised drafts ---

class TestRandomisedDrafts:

    def _random_balanced_lines(self, rng, ledger_ids):
        debit_ids = rng.sample(ledger_ids, rng.randint(1, 2))
        credit_ids = rng.sample(
            [i for i in ledger_ids if i not in debit_ids], rng.randint(1, 2)
        )
        debits = [rng.randint(1, 100000) for _ in debit_ids]
        total = sum(debits)
        # Split the debit total across the credit lines
        cut = rng.randint(1, total - 1) if len(credit_ids) == 2 and total > 1 else total
        credits = [cut, total - cut] if len(credit_ids) == 2 and total > 1 else [total]
        lines = [(i, DEBIT, a) for i, a in zip(debit_ids, debits)]
        lines += [(i, CREDIT, a) for i, a in zip(credit_ids, credits)]
        rng.shuffle(lines)
        return lines

    def _draft_from_minor(self, lines):
        return make_draft(*[
            (ledger_id, direction, Decimal(amount) / 100)
            for ledger_id, direction, amount in lines
        ])

    def test_balanced_drafts_keep_books_consistent(self, books, db_session):
        rng = random.Random(20251001)
        ledger_ids = [ledger.id for ledger in books.values()]
        engine = PostingEngine(db_session)

        for _ in range(40):
            engine.post(self._draft_from_minor(
                self._random_balanced_lines(rng, ledger_ids)
            ))
        db_session.commit()

        report = LedgerService(db_session).check_integrity()
        assert report.is_balanced is True
        assert report.difference == Decimal("0.00")

    def test_unbalanced_drafts_are_all_rejected(self, books, db_session, balance_of):
        rng = random.Random(7)
        ledger_ids = [ledger.id for ledger in books.values()]
        engine = PostingEngine(db_session)

        for _ in range(40):
            lines = self._random_balanced_lines(rng, ledger_ids)
            index = rng.randrange(len(lines))
            ledger_id, direction, amount = lines[index]
            lines[index] = (ledger_id, direction, amount + rng.choice([-1, 1]))
            if lines[index][2] <= 0:
                continue
            with pytest.raises(UnbalancedEntriesError):
                engine.post(self._draft_from_minor(lines))

        assert voucher_count(db_session) == 0
        for ledger_id in ledger_ids:
            assert balance_of(ledger_id) == Decimal("0.00")


# --- Failure during the write phase ---

class TestFaultInjection:

    @pytest.mark.parametrize("fail_on", [1, 2, 3])
    def test_failure_on_nth_update_rolls_back_all(
        self, books, db_session, balance_of, monkeypatch, fail_on,
    ):
        original = PostingEngine._apply_delta
        calls = {"n": 0}

        def flaky_apply_delta(self, ledger_id, delta, require_active=False):
            calls["n"] += 1
            if calls["n"] == fail_on:
                raise ConcurrentModificationError("injected failure")
            return original(self, ledger_id, delta, require_active)

        monkeypatch.setattr(PostingEngine, "_apply_delta", flaky_apply_delta)

        with pytest.raises(ConcurrentModificationError, match="injected"):
            PostingEngine(db_session).post(make_draft(
                (books["feed"].id, DEBIT, "60"),
                (books["cash"].id, CREDIT, "25"),
                (books["bank"].id, CREDIT, "35"),
            ))

        for name in ("feed", "cash", "bank"):
            assert balance_of(books[name].id) == Decimal("0.00")
        assert voucher_count(db_session) == 0

    def test_session_stays_usable_after_failure(
        self, books, db_session, balance_of, monkeypatch,
    ):
        original = PostingEngine._apply_delta

        def failing_apply_delta(self, ledger_id, delta, require_active=False):
            if ledger_id == books["bank"].id:
                raise ConcurrentModificationError("injected failure")
            return original(self, ledger_id, delta, require_active)

        monkeypatch.setattr(PostingEngine, "_apply_delta", failing_apply_delta)
        engine = PostingEngine(db_session)
        with pytest.raises(ConcurrentModificationError):
            engine.post(make_draft(
                (books["cash"].id, DEBIT, "10"), (books["bank"].id, CREDIT, "10"),
            ))

        engine.post(make_draft(
            (books["cash"].id, DEBIT, "10"), (books["sales"].id, CREDIT, "10"),
        ))
        db_session.commit()
        assert balance_of(books["cash"].id) == Decimal("10.00")
        assert balance_of(books["bank"].id) == Decimal("0.00")


# --- Concurrency ---

class TestConcurrentPosting:

    def test_no_lost_update_on_shared_ledger(
        self, scenario, db_session, session_factory, balance_of,
    ):
        a, b, c = (scenario[k].id for k in "ABC")
        # Release this session's read lock before the writers start
        db_session.commit()

        rounds = 10
        barrier = threading.Barrier(2)

        def worker(lines):
            session = session_factory()
            try:
                barrier.wait()
                for _ in range(rounds):
                    run_in_transaction(
                        session,
                        lambda: PostingEngine(session).post(make_draft(*lines)),
                        max_retries=50,
                    )
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(worker, ((b, DEBIT, "100"), (c, CREDIT, "100"))),
                pool.submit(worker, ((a, DEBIT, "50"), (b, CREDIT, "50"))),
            ]
            for future in futures:
                future.result()

        assert balance_of(b) == Decimal("1000.00") + rounds * Decimal("50")
        assert balance_of(a) == rounds * Decimal("50")
        assert balance_of(c) == rounds * Decimal("100")

        sequence_numbers = db_session.execute(
            select(Voucher.sequence_no)
        ).scalars().all()
        assert sorted(sequence_numbers) == list(range(1, 2 * rounds + 1))


# --- Drafts ---

class TestDrafts:

    def test_draft_does_not_touch_balances(self, books, db_session, balance_of):
        voucher = PostingEngine(db_session).save_draft(make_draft(
            (books["cash"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "40"),
        ))
        db_session.commit()

        assert voucher.status == VoucherStatus.DRAFT
        assert voucher.voucher_number.startswith("BJV")
        assert voucher.posted_at is None
        assert balance_of(books["cash"].id) == Decimal("0.00")

    def test_draft_must_balance(self, books, db_session):
        with pytest.raises(UnbalancedEntriesError):
            PostingEngine(db_session).save_draft(make_draft(
                (books["cash"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "41"),
            ))

    def test_draft_may_reference_inactive_ledger(self, books, db_session):
        LedgerService(db_session).set_status(books["bank"].id, LedgerStatus.INACTIVE)
        voucher = PostingEngine(db_session).save_draft(make_draft(
            (books["bank"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "40"),
        ))
        db_session.commit()
        assert voucher.status == VoucherStatus.DRAFT

    def test_post_draft_applies_balances_and_keeps_number(
        self, books, db_session, balance_of,
    ):
        engine = PostingEngine(db_session)
        draft = engine.save_draft(make_draft(
            (books["cash"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "40"),
        ))
        db_session.commit()
        number = draft.voucher_number

        posted = engine.post_draft(draft.id)
        db_session.commit()

        assert posted.status == VoucherStatus.POSTED
        assert posted.voucher_number == number
        assert balance_of(books["cash"].id) == Decimal("40.00")
        assert balance_of(books["sales"].id) == Decimal("40.00")

    def test_post_draft_twice_rejected(self, books, db_session, balance_of):
        engine = PostingEngine(db_session)
        draft = engine.save_draft(make_draft(
            (books["cash"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "40"),
        ))
        engine.post_draft(draft.id)
        db_session.commit()

        with pytest.raises(VoucherStateError, match="not a draft"):
            engine.post_draft(draft.id)
        assert balance_of(books["cash"].id) == Decimal("40.00")

    def test_post_draft_against_inactive_ledger_rejected(
        self, books, db_session, balance_of,
    ):
        engine = PostingEngine(db_session)
        draft = engine.save_draft(make_draft(
            (books["bank"].id, DEBIT, "40"), (books["sales"].id, CREDIT, "40"),
        ))
        LedgerService(db_session).set_status(books["bank"].id, LedgerStatus.INACTIVE)
        db_session.commit()

        with pytest.raises(InactiveLedgerError):
            engine.post_draft(draft.id)
        assert balance_of(books["bank"].id) == Decimal("0.00")

    def test_post_draft_refused_if_ledger_deactivated_after_check(
        self, books, db_session, balance_of, monkeypatch,
    ):
        cash, bank = books["cash"].id, books["bank"].id
        engine = PostingEngine(db_session)
        draft = engine.save_draft(make_draft(
            (cash, DEBIT, "40"), (bank, CREDIT, "40"),
        ))
        db_session.commit()
        deactivate_after_check(monkeypatch, bank)

        with pytest.raises(InactiveLedgerError):
            engine.post_draft(draft.id)
        assert balance_of(cash) == Decimal("0.00")
        assert db_session.execute(
            select(Voucher.status).where(Voucher.id == draft.id)
        ).scalar_one() == VoucherStatus.DRAFT
