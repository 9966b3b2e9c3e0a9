"""
Engine, session factory and declarative Base.

SQLite note: pysqlite's implicit transaction handling breaks SAVEPOINT
semantics, and the ledger depends on savepoints. On SQLite we switch the
driver to autocommit and emit `BEGIN IMMEDIATE` ourselves, which also
serializes writers the way a unique-insert race expects.
"""
from __future__ import annotations

from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings


class Base(DeclarativeBase):
    pass


def enable_sqlite_transactions(engine: Engine) -> None:
    """Take over BEGIN from pysqlite so SAVEPOINT / ROLLBACK TO behave."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        enable_sqlite_transactions(engine)
        return engine
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
