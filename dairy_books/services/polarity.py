"""
Debit/credit polarity rules.

This is the only place that decides which side increases a
ledger. Everything else (posting, reversal, statements,
maintenance) asks these functions instead of comparing
strings or guessing from the ledger group.
"""

from dairy_books.models.enums import BalanceSide, LedgerType


_DEBIT_NORMAL = frozenset({LedgerType.ASSET, LedgerType.EXPENSE})


def normal_side(ledger_type: LedgerType) -> BalanceSide:
    """
    Side that increases a ledger of this type.

    DEBIT for ASSET and EXPENSE; CREDIT for LIABILITY, INCOME
    and EQUITY.
    """
    if ledger_type in _DEBIT_NORMAL:
        return BalanceSide.DEBIT
    return BalanceSide.CREDIT


def balance_delta(
    ledger_type: LedgerType, direction: BalanceSide, amount_minor: int
) -> int:
    """
    Signed change to current_balance for one entry.

    Positive when the entry is on the ledger's normal side.
    """
    if direction == normal_side(ledger_type):
        return amount_minor
    return -amount_minor


def signed_opening(
    ledger_type: LedgerType, opening_type: BalanceSide, opening_minor: int
) -> int:
    """Opening balance expressed in the same signed convention."""
    return balance_delta(ledger_type, opening_type, opening_minor)


def side_of(ledger_type: LedgerType, signed_minor: int) -> BalanceSide:
    """Which side (Dr/Cr) a signed balance sits on, for display."""
    side = normal_side(ledger_type)
    return side if signed_minor >= 0 else side.opposite
