"""Two sessions racing on the same payment: the version token lets only one win."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from billing.models import Base
from billing.models.allocation import Allocation
from billing.models.member import Member
from billing.models.payment import Payment
from billing.services.allocation_service import AllocationService
from billing.services.clock import FixedClock
from billing.services.config import DunningPolicy
from billing.services.db import create_db_engine, create_session_factory
from billing.services.errors import ConcurrentModificationError, OverAllocationError
from billing.services.invoice_service import InvoiceService
from billing.services.payment_service import PaymentService
from billing.services.reconciliation_service import StatusReconciler
from billing.services.status_seeding import seed_invoice_statuses

TODAY = date(2025, 6, 15)


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so each session gets its own connection."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(file_engine):
    factory = create_session_factory(file_engine)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()


@pytest.fixture
def seeded(sessions):
    """One member, two invoices and a 100.00 payment, committed."""
    db, _ = sessions
    clock = FixedClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))
    seed_invoice_statuses(db)
    member = Member(name="Racer")
    db.add(member)
    db.commit()

    reconciler = StatusReconciler(db, clock, DunningPolicy.STICKY_UNTIL_PAID)
    invoices = InvoiceService(db, reconciler=reconciler)
    first = invoices.create_invoice(member.id, "R-1", TODAY, TODAY, total_amount=Decimal("100.00"))
    second = invoices.create_invoice(member.id, "R-2", TODAY, TODAY, total_amount=Decimal("100.00"))
    payment = PaymentService(db, clock=clock).record_payment(member.id, TODAY, Decimal("100.00"))
    return {"clock": clock, "invoices": (first.id, second.id), "payment_id": payment.id}


def make_ledger(db, clock):
    return AllocationService(db, reconciler=StatusReconciler(db, clock, DunningPolicy.STICKY_UNTIL_PAID))


def test_interleaved_replace_loses_to_committed_writer(sessions, seeded, monkeypatch):
    """B commits while A is between reading the payment and writing; A must fail cleanly."""
    db_a, db_b = sessions
    ledger_a = make_ledger(db_a, seeded["clock"])
    ledger_b = make_ledger(db_b, seeded["clock"])
    first_id, second_id = seeded["invoices"]
    payment_id = seeded["payment_id"]

    original_validate = AllocationService._validate_lines

    def validate_after_concurrent_commit(self, payment, lines):
        if self is ledger_a:
            ledger_b.replace_allocations(payment_id, [(second_id, Decimal("70.00"))])
        return original_validate(self, payment, lines)

    monkeypatch.setattr(AllocationService, "_validate_lines", validate_after_concurrent_commit)

    with pytest.raises(ConcurrentModificationError) as exc_info:
        ledger_a.replace_allocations(payment_id, [(first_id, Decimal("60.00"))])

    assert exc_info.value.payment_id == payment_id

    # B's allocation set survives untouched
    rows = db_b.query(Allocation).filter(Allocation.payment_id == payment_id).all()
    assert [(row.invoice_id, row.amount) for row in rows] == [(second_id, Decimal("70.00"))]
    assert db_b.get(Payment, payment_id).version == 2


def test_stale_session_rereads_payment_before_writing(sessions, seeded):
    """A session holding an old Payment object still sees the committed headroom."""
    db_a, db_b = sessions
    ledger_a = make_ledger(db_a, seeded["clock"])
    ledger_b = make_ledger(db_b, seeded["clock"])
    first_id, second_id = seeded["invoices"]
    payment_id = seeded["payment_id"]

    stale = db_a.get(Payment, payment_id)
    assert stale.version == 1
    db_a.commit()

    ledger_b.add_allocation(payment_id, first_id, Decimal("80.00"))

    with pytest.raises(OverAllocationError) as exc_info:
        ledger_a.add_allocation(payment_id, second_id, Decimal("30.00"))

    assert exc_info.value.remaining == Decimal("20.00")
    ledger_a.add_allocation(payment_id, second_id, Decimal("20.00"))
    assert ledger_a.allocated_total(payment_id) == Decimal("100.00")


def test_expected_version_from_other_session(sessions, seeded):
    db_a, db_b = sessions
    ledger_a = make_ledger(db_a, seeded["clock"])
    ledger_b = make_ledger(db_b, seeded["clock"])
    first_id, second_id = seeded["invoices"]
    payment_id = seeded["payment_id"]

    seen_version = db_a.get(Payment, payment_id).version
    db_a.commit()
    ledger_b.add_allocation(payment_id, first_id, Decimal("10.00"))

    with pytest.raises(ConcurrentModificationError):
        ledger_a.replace_allocations(
            payment_id, [(second_id, Decimal("10.00"))], expected_version=seen_version
        )

    assert ledger_a.allocated_total(payment_id) == Decimal("10.00")
