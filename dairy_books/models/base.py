"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. Every request gets a session
from get_db().
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from dairy_books.config import get_settings

settings = get_settings()


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Make SQLite honour BEGIN/SAVEPOINT the way SQLAlchemy expects.

    The stdlib sqlite3 driver starts transactions lazily and on its
    own terms, which breaks SAVEPOINT rollback. Posting and reversal
    run inside savepoints, so the driver's transaction handling is
    switched off and SQLAlchemy emits BEGIN itself.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles cases where the database restarted or a
# connection went stale.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)

# --- Session Factory ---
# autocommit=False: the caller decides when a posting becomes
# durable. autoflush=False: nothing is sent to the database
# until we flush or commit, so validation can run before any
# write is issued.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, preventing connection leaks.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
