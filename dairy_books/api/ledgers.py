"""
Ledger API endpoints.

These endpoints expose ledger administration and the read-only
ledger reports. The API layer is thin: it handles HTTP concerns
and delegates to LedgerService and QueryService.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dairy_books.api.errors import run_in_transaction, to_http_error
from dairy_books.exceptions import LedgerError
from dairy_books.models.base import get_db
from dairy_books.models.enums import LedgerGroup, LedgerStatus, LedgerType
from dairy_books.schemas.ledger import (
    BalanceCheckResponse,
    LedgerCreate,
    LedgerResponse,
    LedgerUpdate,
)
from dairy_books.schemas.report import (
    OutstandingBucketResponse,
    StatementLineResponse,
    StatementResponse,
)
from dairy_books.services.ledger_service import LedgerService
from dairy_books.services.query_service import QueryService

router = APIRouter(prefix="/ledgers", tags=["Ledgers"])


@router.post("", response_model=LedgerResponse, status_code=201)
def create_ledger(
    request: LedgerCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new ledger.

    The current balance starts at the opening balance, signed
    according to the ledger's normal side.
    """
    service = LedgerService(db)
    return run_in_transaction(db, lambda: service.create_ledger(request))


@router.get("", response_model=list[LedgerResponse])
def list_ledgers(
    group: LedgerGroup | None = None,
    ledger_type: LedgerType | None = None,
    status: LedgerStatus | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
):
    """List ledgers, sorted by name."""
    return LedgerService(db).list_ledgers(group, ledger_type, status, search)


@router.get("/{ledger_id}", response_model=LedgerResponse)
def get_ledger(
    ledger_id: int,
    db: Session = Depends(get_db),
):
    try:
        return LedgerService(db).get_ledger(ledger_id)
    except LedgerError as e:
        raise to_http_error(e)


@router.patch("/{ledger_id}", response_model=LedgerResponse)
def update_ledger(
    ledger_id: int,
    request: LedgerUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a ledger.

    Changing the opening balance moves the current balance by
    the same signed amount. The type cannot change once the
    ledger has entries.
    """
    service = LedgerService(db)
    return run_in_transaction(
        db, lambda: service.update_ledger(ledger_id, request)
    )


@router.post("/{ledger_id}/deactivate", response_model=LedgerResponse)
def deactivate_ledger(
    ledger_id: int,
    db: Session = Depends(get_db),
):
    """Stop a ledger from accepting new postings. History is kept."""
    service = LedgerService(db)
    return run_in_transaction(
        db, lambda: service.set_status(ledger_id, LedgerStatus.INACTIVE)
    )


@router.post("/{ledger_id}/activate", response_model=LedgerResponse)
def activate_ledger(
    ledger_id: int,
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    return run_in_transaction(
        db, lambda: service.set_status(ledger_id, LedgerStatus.ACTIVE)
    )


@router.get("/{ledger_id}/statement", response_model=StatementResponse)
def get_statement(
    ledger_id: int,
    start: date | None = None,
    end: date | None = None,
    db: Session = Depends(get_db),
):
    """
    Running-balance statement over posted vouchers.

    The opening balance includes everything posted before start.
    """
    try:
        statement = QueryService(db).statement(ledger_id, start, end)
    except LedgerError as e:
        raise to_http_error(e)

    opening = statement.opening_balance
    lines = [StatementLineResponse.model_validate(line) for line in statement]
    return StatementResponse(
        ledger_id=statement.ledger_id,
        ledger_name=statement.ledger_name,
        start=start,
        end=end,
        opening_balance=opening,
        closing_balance=lines[-1].running_balance if lines else opening,
        lines=lines,
    )


@router.get(
    "/{ledger_id}/outstanding",
    response_model=dict[str, OutstandingBucketResponse],
)
def get_outstanding(
    ledger_id: int,
    labels: list[str] | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Net posted amount per classification tag, with the entries behind it."""
    try:
        return QueryService(db).outstanding_by_classification(ledger_id, labels)
    except LedgerError as e:
        raise to_http_error(e)


@router.get("/{ledger_id}/verify", response_model=BalanceCheckResponse)
def verify_ledger_balance(
    ledger_id: int,
    db: Session = Depends(get_db),
):
    """Compare the stored balance with one recomputed from posted history."""
    try:
        return LedgerService(db).verify_balance(ledger_id)
    except LedgerError as e:
        raise to_http_error(e)
