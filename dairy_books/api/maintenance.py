"""
Maintenance endpoints for operators.

These re-derive balances from posted history. They are not part
of normal posting, which never recomputes a balance.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dairy_books.api.errors import run_in_transaction
from dairy_books.models.base import get_db
from dairy_books.schemas.ledger import BalanceCheckResponse, IntegrityReport
from dairy_books.services.ledger_service import LedgerService

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.get("/integrity", response_model=IntegrityReport)
def check_integrity(db: Session = Depends(get_db)):
    """
    Check the whole book.

    Posted debits must equal posted credits and every stored
    balance must match its history.
    """
    return LedgerService(db).check_integrity()


@router.post(
    "/ledgers/{ledger_id}/repair",
    response_model=BalanceCheckResponse,
)
def repair_ledger_balance(
    ledger_id: int,
    db: Session = Depends(get_db),
):
    """Reset a drifted ledger to the balance recomputed from history."""
    service = LedgerService(db)
    return run_in_transaction(db, lambda: service.repair_balance(ledger_id))
