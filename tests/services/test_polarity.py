"""
Tests for debit/credit polarity.

Every balance change in the system is computed from these
functions, so they are tested for every ledger type.
"""

import pytest

from dairy_books.models.enums import BalanceSide, LedgerType
from dairy_books.services.polarity import (
    balance_delta,
    normal_side,
    side_of,
    signed_opening,
)


class TestNormalSide:

    @pytest.mark.parametrize("ledger_type", [LedgerType.ASSET, LedgerType.EXPENSE])
    def test_debit_normal(self, ledger_type):
        assert normal_side(ledger_type) == BalanceSide.DEBIT

    @pytest.mark.parametrize(
        "ledger_type",
        [LedgerType.LIABILITY, LedgerType.INCOME, LedgerType.EQUITY],
    )
    def test_credit_normal(self, ledger_type):
        assert normal_side(ledger_type) == BalanceSide.CREDIT


class TestBalanceDelta:

    def test_debit_increases_asset(self):
        assert balance_delta(LedgerType.ASSET, BalanceSide.DEBIT, 200) == 200

    def test_credit_decreases_asset(self):
        assert balance_delta(LedgerType.ASSET, BalanceSide.CREDIT, 200) == -200

    def test_credit_increases_income(self):
        assert balance_delta(LedgerType.INCOME, BalanceSide.CREDIT, 50) == 50

    def test_debit_decreases_income(self):
        assert balance_delta(LedgerType.INCOME, BalanceSide.DEBIT, 50) == -50

    def test_opposite_sides_cancel(self):
        for ledger_type in LedgerType:
            debit = balance_delta(ledger_type, BalanceSide.DEBIT, 700)
            credit = balance_delta(ledger_type, BalanceSide.CREDIT, 700)
            assert debit + credit == 0


class TestOpening:

    def test_debit_opening_on_asset_is_positive(self):
        assert signed_opening(LedgerType.ASSET, BalanceSide.DEBIT, 1000) == 1000

    def test_debit_opening_on_liability_is_negative(self):
        assert signed_opening(LedgerType.LIABILITY, BalanceSide.DEBIT, 1000) == -1000

    def test_side_of(self):
        assert side_of(LedgerType.ASSET, 10) == BalanceSide.DEBIT
        assert side_of(LedgerType.ASSET, -10) == BalanceSide.CREDIT
        assert side_of(LedgerType.INCOME, -50) == BalanceSide.DEBIT
        assert side_of(LedgerType.INCOME, 0) == BalanceSide.CREDIT
