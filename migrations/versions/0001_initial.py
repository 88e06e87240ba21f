"""Initial schema: ledgers, vouchers, entries, sequences, audit log

Revision ID: 0001
Revises:
Create Date: 2025-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

# Enum columns store member names
LEDGER_GROUPS = (
    "CASH_IN_HAND", "BANK_ACCOUNTS", "SUNDRY_DEBTORS", "SUNDRY_CREDITORS",
    "SALES_ACCOUNTS", "PURCHASE_ACCOUNTS", "DIRECT_EXPENSES",
    "INDIRECT_EXPENSES", "DIRECT_INCOMES", "INDIRECT_INCOMES",
    "FIXED_ASSETS", "CURRENT_ASSETS", "CURRENT_LIABILITIES",
    "CAPITAL_ACCOUNT", "LOANS_AND_ADVANCES", "INVESTMENTS",
    "DUTIES_AND_TAXES", "PROVISIONS", "RESERVES_AND_SURPLUS",
    "SUSPENSE_ACCOUNT", "STOCK_IN_HAND",
)
LEDGER_TYPES = ("ASSET", "LIABILITY", "INCOME", "EXPENSE", "EQUITY")
BALANCE_SIDES = ("DEBIT", "CREDIT")
LEDGER_STATUSES = ("ACTIVE", "INACTIVE")
VOUCHER_TYPES = ("INCOME", "EXPENSE", "JOURNAL", "CONTRA", "SALES", "PURCHASE")
VOUCHER_STATUSES = ("DRAFT", "POSTED", "CANCELLED")
PAYMENT_MODES = ("CASH", "BANK", "UPI", "CARD", "CHEQUE")
REFERENCE_TYPES = ("MANUAL", "SALES", "PURCHASE", "OPENING")


def _existing_enum(*values, name):
    # balance_side_enum is shared by two tables; postgres must only create it once
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def upgrade() -> None:
    op.create_table(
        "ledgers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("code", sa.String(20), nullable=True, unique=True),
        sa.Column("group", sa.Enum(*LEDGER_GROUPS, name="ledger_group_enum"), nullable=False),
        sa.Column("ledger_type", sa.Enum(*LEDGER_TYPES, name="ledger_type_enum"), nullable=False),
        sa.Column("opening_balance_minor", sa.BigInteger(), nullable=False),
        sa.Column(
            "opening_balance_type",
            sa.Enum(*BALANCE_SIDES, name="balance_side_enum"),
            nullable=False,
        ),
        sa.Column("current_balance_minor", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.Enum(*LEDGER_STATUSES, name="ledger_status_enum"), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ledgers_group", "ledgers", ["group"])
    op.create_index("ix_ledgers_ledger_type", "ledgers", ["ledger_type"])
    op.create_index("ix_ledgers_status", "ledgers", ["status"])

    op.create_table(
        "vouchers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sequence_no", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("voucher_number", sa.String(20), nullable=False),
        sa.Column("voucher_type", sa.Enum(*VOUCHER_TYPES, name="voucher_type_enum"), nullable=False),
        sa.Column("voucher_date", sa.Date(), nullable=False),
        sa.Column("narration", sa.String(500), nullable=True),
        sa.Column("status", sa.Enum(*VOUCHER_STATUSES, name="voucher_status_enum"), nullable=False),
        sa.Column("payment_mode", sa.Enum(*PAYMENT_MODES, name="payment_mode_enum"), nullable=True),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("cheque_number", sa.String(30), nullable=True),
        sa.Column("cheque_date", sa.Date(), nullable=True),
        sa.Column("transaction_ref", sa.String(100), nullable=True),
        sa.Column(
            "reference_type",
            sa.Enum(*REFERENCE_TYPES, name="reference_type_enum"),
            nullable=False,
        ),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("reference_number", sa.String(50), nullable=True),
        sa.Column("party_id", sa.String(64), nullable=True),
        sa.Column("party_name", sa.String(100), nullable=True),
        sa.Column("total_debit_minor", sa.BigInteger(), nullable=False),
        sa.Column("total_credit_minor", sa.BigInteger(), nullable=False),
        sa.Column("amends_voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=True),
        sa.Column("posted_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_vouchers_voucher_number", "vouchers", ["voucher_number"], unique=True)
    op.create_index("ix_vouchers_voucher_type", "vouchers", ["voucher_type"])
    op.create_index("ix_vouchers_voucher_date", "vouchers", ["voucher_date"])
    op.create_index("ix_vouchers_status", "vouchers", ["status"])
    op.create_index("ix_vouchers_reference_id", "vouchers", ["reference_id"])

    op.create_table(
        "voucher_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("voucher_id", sa.Integer(), sa.ForeignKey("vouchers.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id"), nullable=False),
        sa.Column(
            "direction",
            _existing_enum(*BALANCE_SIDES, name="balance_side_enum"),
            nullable=False,
        ),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("memo", sa.String(255), nullable=True),
        sa.Column("classification", sa.String(50), nullable=True),
        sa.UniqueConstraint("voucher_id", "position", name="uq_voucher_entry_position"),
    )
    op.create_index("ix_voucher_entries_voucher_id", "voucher_entries", ["voucher_id"])
    op.create_index("ix_voucher_entries_ledger_id", "voucher_entries", ["ledger_id"])
    op.create_index("ix_voucher_entries_classification", "voucher_entries", ["classification"])

    op.create_table(
        "voucher_sequences",
        sa.Column("name", sa.String(40), primary_key=True),
        sa.Column("last_value", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("voucher_sequences")
    op.drop_table("voucher_entries")
    op.drop_table("vouchers")
    op.drop_table("ledgers")
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in (
            "balance_side_enum", "ledger_group_enum", "ledger_type_enum",
            "ledger_status_enum", "voucher_type_enum", "voucher_status_enum",
            "payment_mode_enum", "reference_type_enum",
        ):
            op.execute(f"DROP TYPE IF EXISTS {name}")
