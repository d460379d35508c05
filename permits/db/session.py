from __future__ import annotations

from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from permits.core.config import get_settings


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite starts transactions lazily; let SQLAlchemy own BEGIN so
    # SAVEPOINTs and SELECT-then-UPDATE stay inside one transaction
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str) -> Engine:
    """
    Engine for the permit store.

    PostgreSQL is the production target (row locks, JSONB). SQLite is
    accepted for local runs and tests, with foreign keys enforced and a
    busy timeout so concurrent writers wait instead of failing at once.
    """
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 5})
        _install_sqlite_hooks(engine)
        return engine
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(get_settings().database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db() -> Iterator[Session]:
    """Request-scoped session. Services commit; anything left open is rolled back."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
