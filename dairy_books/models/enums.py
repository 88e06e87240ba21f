"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored.
"""

import enum


class LedgerType(str, enum.Enum):
    """The five fundamental accounting natures."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    EQUITY = "EQUITY"


class BalanceSide(str, enum.Enum):
    """Debit or credit. Used for entry direction and opening balances."""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    @property
    def opposite(self) -> "BalanceSide":
        return BalanceSide.CREDIT if self is BalanceSide.DEBIT else BalanceSide.DEBIT


class LedgerGroup(str, enum.Enum):
    """Flat chart-of-accounts classification."""
    CASH_IN_HAND = "Cash-in-Hand"
    BANK_ACCOUNTS = "Bank Accounts"
    SUNDRY_DEBTORS = "Sundry Debtors"
    SUNDRY_CREDITORS = "Sundry Creditors"
    SALES_ACCOUNTS = "Sales Accounts"
    PURCHASE_ACCOUNTS = "Purchase Accounts"
    DIRECT_EXPENSES = "Direct Expenses"
    INDIRECT_EXPENSES = "Indirect Expenses"
    DIRECT_INCOMES = "Direct Incomes"
    INDIRECT_INCOMES = "Indirect Incomes"
    FIXED_ASSETS = "Fixed Assets"
    CURRENT_ASSETS = "Current Assets"
    CURRENT_LIABILITIES = "Current Liabilities"
    CAPITAL_ACCOUNT = "Capital Account"
    LOANS_AND_ADVANCES = "Loans & Advances"
    INVESTMENTS = "Investments"
    DUTIES_AND_TAXES = "Duties & Taxes"
    PROVISIONS = "Provisions"
    RESERVES_AND_SURPLUS = "Reserves & Surplus"
    SUSPENSE_ACCOUNT = "Suspense Account"
    STOCK_IN_HAND = "Stock-in-Hand"


# Used when a ledger is created without an explicit type.
DEFAULT_TYPE_FOR_GROUP: dict[LedgerGroup, LedgerType] = {
    LedgerGroup.CASH_IN_HAND: LedgerType.ASSET,
    LedgerGroup.BANK_ACCOUNTS: LedgerType.ASSET,
    LedgerGroup.SUNDRY_DEBTORS: LedgerType.ASSET,
    LedgerGroup.SUNDRY_CREDITORS: LedgerType.LIABILITY,
    LedgerGroup.SALES_ACCOUNTS: LedgerType.INCOME,
    LedgerGroup.PURCHASE_ACCOUNTS: LedgerType.EXPENSE,
    LedgerGroup.DIRECT_EXPENSES: LedgerType.EXPENSE,
    LedgerGroup.INDIRECT_EXPENSES: LedgerType.EXPENSE,
    LedgerGroup.DIRECT_INCOMES: LedgerType.INCOME,
    LedgerGroup.INDIRECT_INCOMES: LedgerType.INCOME,
    LedgerGroup.FIXED_ASSETS: LedgerType.ASSET,
    LedgerGroup.CURRENT_ASSETS: LedgerType.ASSET,
    LedgerGroup.CURRENT_LIABILITIES: LedgerType.LIABILITY,
    LedgerGroup.CAPITAL_ACCOUNT: LedgerType.EQUITY,
    LedgerGroup.LOANS_AND_ADVANCES: LedgerType.ASSET,
    LedgerGroup.INVESTMENTS: LedgerType.ASSET,
    LedgerGroup.DUTIES_AND_TAXES: LedgerType.LIABILITY,
    LedgerGroup.PROVISIONS: LedgerType.LIABILITY,
    LedgerGroup.RESERVES_AND_SURPLUS: LedgerType.EQUITY,
    LedgerGroup.SUSPENSE_ACCOUNT: LedgerType.ASSET,
    LedgerGroup.STOCK_IN_HAND: LedgerType.ASSET,
}


class LedgerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class VoucherType(str, enum.Enum):
    """Intent of a voucher. Posting mechanics are identical for all."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    JOURNAL = "JOURNAL"
    CONTRA = "CONTRA"
    SALES = "SALES"
    PURCHASE = "PURCHASE"


# Prefix of the human-facing voucher number, e.g. BJV25100001
VOUCHER_NUMBER_PREFIX: dict[VoucherType, str] = {
    VoucherType.INCOME: "BIN",
    VoucherType.EXPENSE: "BEX",
    VoucherType.JOURNAL: "BJV",
    VoucherType.CONTRA: "BCT",
    VoucherType.SALES: "BSL",
    VoucherType.PURCHASE: "BPU",
}


class VoucherStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    CANCELLED = "CANCELLED"


class PaymentMode(str, enum.Enum):
    CASH = "CASH"
    BANK = "BANK"
    UPI = "UPI"
    CARD = "CARD"
    CHEQUE = "CHEQUE"


class ReferenceType(str, enum.Enum):
    """Business document that originated a voucher."""
    MANUAL = "MANUAL"
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    OPENING = "OPENING"
