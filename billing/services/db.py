"""Database engine and session management."""

from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing.services.config import get_settings


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the ledger store.

    SQLite gets foreign key enforcement switched on for every connection; an
    in-memory URL shares one connection (StaticPool) so all sessions see the
    same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory; ledger services flush explicitly before reading sums."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


_session_factory: Optional[sessionmaker] = None


def get_session_factory() -> sessionmaker:
    """Get or create the process-wide session factory from settings."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(create_db_engine(get_settings().database_url))
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


__all__ = ["create_db_engine", "create_session_factory", "get_session_factory", "get_db"]
