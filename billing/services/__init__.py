"""Ledger services: database sessions, allocation ledger, status reconciliation, audit."""

from billing.services.db import create_db_engine, create_session_factory, get_db, get_session_factory

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "get_session_factory",
]
