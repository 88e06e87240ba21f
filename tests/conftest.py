"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the real
one. Tables are created before each test and dropped after it.
"""

import os

# Must be set before dairy_books builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from dairy_books.main import app
from dairy_books.models.base import Base, enable_sqlite_savepoints, get_db
from dairy_books.models.enums import BalanceSide, LedgerGroup, LedgerType
from dairy_books.models.ledger import Ledger
from dairy_books.money import from_minor
from dairy_books.schemas.ledger import LedgerCreate
from dairy_books.services.ledger_service import LedgerService


# File-backed so that the concurrency tests can open several
# connections from different threads.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = enable_sqlite_savepoints(create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
))

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    """For tests that need more than one session, e.g. one per thread."""
    return TestSessionLocal


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    The get_db dependency is overridden so the app uses the
    test session.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Helpers ---

def _make_ledger(
    db_session,
    name,
    group,
    ledger_type=None,
    opening="0",
    opening_type=BalanceSide.DEBIT,
):
    """Create and commit a ledger."""
    ledger = LedgerService(db_session).create_ledger(LedgerCreate(
        name=name,
        group=group,
        ledger_type=ledger_type,
        opening_balance=Decimal(opening),
        opening_balance_type=opening_type,
    ))
    db_session.commit()
    return ledger


def _balance_of(db_session, ledger_id) -> Decimal:
    minor = db_session.execute(
        select(Ledger.current_balance_minor).where(Ledger.id == ledger_id)
    ).scalar_one()
    return from_minor(minor)


@pytest.fixture
def make_ledger(db_session):
    """Factory: make_ledger(name, group, ...) creates and commits a ledger."""
    def make(name, group, **kwargs):
        return _make_ledger(db_session, name, group, **kwargs)
    return make


@pytest.fixture
def balance_of(db_session):
    """Current balance as stored in the database, bypassing the ORM cache."""
    def balance(ledger_id):
        return _balance_of(db_session, ledger_id)
    return balance


@pytest.fixture
def books(db_session):
    """
    A small chart of accounts:

    cash (asset), bank (asset), sales (income), farmer (liability),
    feed (expense).
    """
    return {
        "cash": _make_ledger(db_session, "Cash", LedgerGroup.CASH_IN_HAND),
        "bank": _make_ledger(db_session, "HDFC Bank", LedgerGroup.BANK_ACCOUNTS),
        "sales": _make_ledger(db_session, "Milk Sales", LedgerGroup.SALES_ACCOUNTS),
        "farmer": _make_ledger(
            db_session, "Ramesh (Farmer)", LedgerGroup.SUNDRY_CREDITORS,
        ),
        "feed": _make_ledger(
            db_session, "Cattle Feed", LedgerGroup.DIRECT_EXPENSES,
            ledger_type=LedgerType.EXPENSE,
        ),
    }
