"""
Voucher numbering.

Two counters are advanced for every voucher:

- "voucher": global sequence_no, unique and monotonic across all
  vouchers, used to order vouchers dated the same day
- "<PREFIX><YY><MM>": per type and month, used for the human-facing
  number, e.g. BJV25100007 is the 7th journal of October 2025

Each counter is advanced by one atomic increment on its row, so
concurrent postings serialise on the counter row instead of
reading the last voucher and guessing the next number.
"""

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm import Session

from dairy_books.exceptions import DuplicateVoucherNumberError
from dairy_books.models.enums import VOUCHER_NUMBER_PREFIX, VoucherType
from dairy_books.models.voucher_sequence import VoucherSequence

logger = logging.getLogger(__name__)

GLOBAL_SEQUENCE = "voucher"


def next_value(db: Session, name: str) -> int:
    """
    Advance the named counter and return its new value.

    Creates the counter on first use. If two sessions create the
    same counter at once, the loser gets a DuplicateVoucherNumberError
    and retries the whole posting.
    """
    result = db.execute(
        update(VoucherSequence)
        .where(VoucherSequence.name == name)
        .values(last_value=VoucherSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        try:
            with db.begin_nested():
                db.add(VoucherSequence(name=name, last_value=1))
        except SAIntegrityError as e:
            raise DuplicateVoucherNumberError(
                f"Sequence '{name}' was created concurrently"
            ) from e
        return 1

    return db.execute(
        select(VoucherSequence.last_value).where(VoucherSequence.name == name)
    ).scalar_one()


def number_prefix(voucher_type: VoucherType, voucher_date: date) -> str:
    """Type prefix plus two-digit year and month, e.g. BJV2510."""
    return (
        f"{VOUCHER_NUMBER_PREFIX[voucher_type]}"
        f"{voucher_date:%y}{voucher_date:%m}"
    )


def allocate_voucher_number(
    db: Session, voucher_type: VoucherType, voucher_date: date
) -> tuple[int, str]:
    """Return (sequence_no, voucher_number) for a new voucher."""
    sequence_no = next_value(db, GLOBAL_SEQUENCE)
    prefix = number_prefix(voucher_type, voucher_date)
    serial = next_value(db, prefix)
    voucher_number = f"{prefix}{serial:04d}"
    logger.debug("Allocated %s (sequence %d)", voucher_number, sequence_no)
    return sequence_no, voucher_number
