"""Business logic services."""

from dairy_books.services.ledger_service import LedgerService
from dairy_books.services.posting_engine import PostingEngine
from dairy_books.services.query_service import QueryService
from dairy_books.services.reversal_engine import ReversalEngine

__all__ = ["LedgerService", "PostingEngine", "QueryService", "ReversalEngine"]
