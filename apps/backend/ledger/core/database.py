"""
Database engine and session

Loans, giftbooks and gift rows are removed through ``ON DELETE CASCADE``
foreign keys, so on SQLite every connection switches enforcement on.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import settings


class Base(DeclarativeBase):
    pass


def enable_sqlite_pragmas(bind: Engine, *, wal: bool = True) -> None:
    @event.listens_for(bind, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[override]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def create_ledger_engine(url: str, *, wal: bool = True) -> Engine:
    """Engine for ``url``; SQLite gets thread sharing off and FK enforcement on."""
    if not url.startswith("sqlite"):
        return create_engine(url)
    bind = create_engine(url, connect_args={"check_same_thread": False})
    # WAL needs a database file
    enable_sqlite_pragmas(bind, wal=wal and bind.url.database not in (None, "", ":memory:"))
    return bind


engine = create_ledger_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create missing tables. Safe to call repeatedly."""
    from .. import models  # noqa: F401 - register mappers

    Base.metadata.create_all(bind or engine)
