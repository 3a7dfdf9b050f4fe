"""Shared fixtures: in-memory ledger database, fixed clock and record factories."""

import itertools
import logging
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from billing.models import Base
from billing.models.member import Member
from billing.services.allocation_service import AllocationService
from billing.services.clock import FixedClock
from billing.services.config import DunningPolicy, reset_settings
from billing.services.db import create_db_engine, create_session_factory
from billing.services.invoice_service import InvoiceService
from billing.services.payment_service import PaymentService
from billing.services.reconciliation_service import StatusReconciler
from billing.services.status_seeding import seed_invoice_statuses

# Business "today" for all tests unless a test moves the clock
TODAY = date(2025, 6, 15)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep settings independent of the developer's .env and environment."""
    monkeypatch.chdir(tmp_path)
    for name in ("DATABASE_URL", "LOG_LEVEL", "LOG_FILE", "BUSINESS_TIMEZONE", "DUNNING_POLICY"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def root_logger():
    """Root logger, restored to its previous handlers and levels afterwards."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    sql_logger = logging.getLogger("sqlalchemy.engine")
    saved_sql_level = sql_logger.level
    yield root
    sql_logger.setLevel(saved_sql_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


@pytest.fixture
def engine():
    """In-memory SQLite engine with the ledger schema."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session with the status lookup seeded."""
    session = create_session_factory(engine)()
    seed_invoice_statuses(session)
    session.commit()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def dunning_policy():
    """Override in a test module to run the ledger under another policy."""
    return DunningPolicy.STICKY_UNTIL_PAID


@pytest.fixture
def reconciler(db_session, clock, dunning_policy):
    return StatusReconciler(db_session, clock, dunning_policy)


@pytest.fixture
def ledger(db_session, reconciler):
    """Allocation ledger on the test session."""
    return AllocationService(db_session, reconciler=reconciler)


@pytest.fixture
def invoice_service(db_session, reconciler):
    return InvoiceService(db_session, reconciler=reconciler)


@pytest.fixture
def payment_service(db_session, clock):
    return PaymentService(db_session, clock=clock)


@pytest.fixture
def member(db_session):
    """Create a member for tests."""
    member = Member(name="Test Member", email="member@example.com", is_active=True)
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def make_invoice(invoice_service, member):
    """Factory: flat-total invoice, due today unless told otherwise."""
    numbers = itertools.count(1)

    def _make(total="100.00", due_date=TODAY, number=None, member_id=None):
        return invoice_service.create_invoice(
            member_id=member_id or member.id,
            number=number or f"INV-{next(numbers):04d}",
            issue_date=date(2025, 6, 1),
            due_date=due_date,
            total_amount=Decimal(total),
        )

    return _make


@pytest.fixture
def make_payment(payment_service, member):
    """Factory: payment received today."""

    def _make(amount="100.00", member_id=None):
        return payment_service.record_payment(
            member_id=member_id or member.id,
            payment_date=TODAY,
            amount=Decimal(amount),
        )

    return _make
