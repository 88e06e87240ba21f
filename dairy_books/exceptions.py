"""
Error taxonomy for the posting and reversal engines.

Every failure the engines raise is a LedgerError. The ``kind``
attribute groups them the way callers need to react:

- validation: the draft itself is wrong, fix it and resubmit
- reference:  the draft points at a ledger that can't take postings
- conflict:   lost a race with another writer, safe to retry
- integrity:  stored data no longer matches the books, needs a human
- not_found:  the id doesn't exist

LedgerError subclasses ValueError, so code that only cares about
"bad input" can keep catching ValueError.
"""


class LedgerError(ValueError):
    kind = "error"
    retryable = False


# --- Validation ---

class ValidationError(LedgerError):
    kind = "validation"


class UnbalancedEntriesError(ValidationError):
    def __init__(self, total_debit, total_credit):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Debit/credit mismatch: debits={total_debit}, "
            f"credits={total_credit}"
        )


class InvalidEntryError(ValidationError):
    pass


class DuplicateLedgerError(ValidationError):
    pass


# --- Reference ---

class LedgerReferenceError(LedgerError):
    kind = "reference"


class UnknownLedgerError(LedgerReferenceError):
    def __init__(self, ledger_ids):
        self.ledger_ids = sorted(ledger_ids)
        super().__init__(f"Ledgers not found: {self.ledger_ids}")


class InactiveLedgerError(LedgerReferenceError):
    def __init__(self, ledger_id, name):
        self.ledger_id = ledger_id
        super().__init__(
            f"Ledger {ledger_id} ({name}) is inactive and cannot "
            f"accept postings"
        )


# --- Conflict ---

class ConflictError(LedgerError):
    kind = "conflict"
    retryable = True


class DuplicateVoucherNumberError(ConflictError):
    pass


class ConcurrentModificationError(ConflictError):
    pass


# --- Integrity ---

class IntegrityError(LedgerError):
    kind = "integrity"


class VoucherStateError(IntegrityError):
    pass


class VoucherNotPostedError(VoucherStateError):
    def __init__(self, voucher_id, status):
        self.voucher_id = voucher_id
        self.status = status
        super().__init__(
            f"Voucher {voucher_id} is not posted (status: {status})"
        )


class LedgerMissingError(IntegrityError):
    def __init__(self, voucher_id, ledger_ids):
        self.voucher_id = voucher_id
        self.ledger_ids = sorted(ledger_ids)
        super().__init__(
            f"Voucher {voucher_id} references ledgers that no longer "
            f"exist: {self.ledger_ids}"
        )


# --- Lookup ---

class NotFoundError(LedgerError):
    kind = "not_found"


class LedgerNotFoundError(NotFoundError):
    def __init__(self, ledger_id):
        self.ledger_id = ledger_id
        super().__init__(f"Ledger {ledger_id} not found")


class VoucherNotFoundError(NotFoundError):
    def __init__(self, voucher_id):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher {voucher_id} not found")
