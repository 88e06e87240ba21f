"""
Voucher API endpoints.

Posting, drafts, reversal, edit and delete. Every write goes
through run_in_transaction(), which commits on success, rolls
back on error and retries postings that lost a race.
"""

from datetime import date
from math import ceil

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dairy_books.api.errors import run_in_transaction, to_http_error
from dairy_books.exceptions import LedgerError
from dairy_books.models.base import get_db
from dairy_books.models.enums import VoucherStatus, VoucherType
from dairy_books.schemas.voucher import (
    ReverseRequest,
    VoucherDraft,
    VoucherListResponse,
    VoucherResponse,
)
from dairy_books.services.posting_engine import PostingEngine
from dairy_books.services.query_service import QueryService
from dairy_books.services.reversal_engine import ReversalEngine

router = APIRouter(prefix="/vouchers", tags=["Vouchers"])


@router.post("", response_model=VoucherResponse, status_code=201)
def post_voucher(
    draft: VoucherDraft,
    db: Session = Depends(get_db),
):
    """
    Validate and post a voucher.

    Debits must equal credits, every amount must be positive and
    every ledger must exist and be active. On any failure no
    balance changes.
    """
    engine = PostingEngine(db)
    return run_in_transaction(db, lambda: engine.post(draft))


@router.post("/drafts", response_model=VoucherResponse, status_code=201)
def save_draft(
    draft: VoucherDraft,
    db: Session = Depends(get_db),
):
    """Save a balanced voucher without touching any balance."""
    engine = PostingEngine(db)
    return run_in_transaction(db, lambda: engine.save_draft(draft))


@router.post("/{voucher_id}/post", response_model=VoucherResponse)
def post_draft(
    voucher_id: int,
    db: Session = Depends(get_db),
):
    engine = PostingEngine(db)
    return run_in_transaction(db, lambda: engine.post_draft(voucher_id))


@router.get("", response_model=VoucherListResponse)
def list_vouchers(
    voucher_type: VoucherType | None = None,
    status: VoucherStatus | None = None,
    start: date | None = None,
    end: date | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """List vouchers, newest first."""
    items, total = QueryService(db).list_vouchers(
        voucher_type, status, start, end, search, page, limit
    )
    return VoucherListResponse(
        items=[VoucherResponse.model_validate(v) for v in items],
        total=total,
        page=page,
        limit=limit,
        pages=ceil(total / limit) if total else 0,
    )


@router.get("/{voucher_id}", response_model=VoucherResponse)
def get_voucher(
    voucher_id: int,
    db: Session = Depends(get_db),
):
    try:
        return QueryService(db).get_voucher(voucher_id)
    except LedgerError as e:
        raise to_http_error(e)


@router.put("/{voucher_id}", response_model=VoucherResponse)
def edit_voucher(
    voucher_id: int,
    draft: VoucherDraft,
    db: Session = Depends(get_db),
):
    """
    Replace a posted voucher.

    The original is reversed and cancelled and the replacement is
    posted with a new number, as one unit. Returns the replacement.
    """
    engine = ReversalEngine(db)
    return run_in_transaction(db, lambda: engine.edit(voucher_id, draft))


@router.post("/{voucher_id}/reverse", response_model=VoucherResponse)
def reverse_voucher(
    voucher_id: int,
    request: ReverseRequest | None = None,
    db: Session = Depends(get_db),
):
    """Undo a posted voucher's balance effect and mark it cancelled."""
    reason = request.reason if request is not None else "reversed"
    engine = ReversalEngine(db)
    return run_in_transaction(db, lambda: engine.reverse(voucher_id, reason))


@router.delete("/{voucher_id}", response_model=VoucherResponse)
def delete_voucher(
    voucher_id: int,
    db: Session = Depends(get_db),
):
    """
    Delete a voucher by reversing it.

    The row is kept, marked CANCELLED. If the reversal fails the
    voucher stays posted.
    """
    engine = ReversalEngine(db)
    return run_in_transaction(db, lambda: engine.delete(voucher_id))
