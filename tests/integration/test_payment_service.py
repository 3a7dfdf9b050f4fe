"""Integration tests for recording payments and summarizing their allocation."""

from datetime import date
from decimal import Decimal

import pytest

from billing.models.audit_log import AuditLog
from billing.services.errors import InvalidAmountError, NotFoundError
from billing.services.payment_service import PaymentAllocationState, allocation_state

TODAY = date(2025, 6, 15)


def test_record_payment(db_session, payment_service, member, clock):
    payment = payment_service.record_payment(
        member_id=member.id,
        payment_date=TODAY,
        amount="250.00",
        payer_name="  Jane Doe ",
        method="   ",
    )

    assert payment.amount == Decimal("250.00")
    assert payment.payer_name == "Jane Doe"
    assert payment.method is None
    assert payment.import_batch_id is None
    assert payment.version == 1

    entry = db_session.query(AuditLog).filter(AuditLog.action == "payment_recorded").one()
    assert entry.entity_id == str(payment.id)
    assert entry.changes["after"]["amount"] == "250.00"
    assert entry.changes["after"]["payment_date"] == "2025-06-15"


def test_record_payment_in_import_batch(payment_service, member, clock):
    batch = payment_service.create_import_batch("csv", "bank-2025-06.csv")

    payment = payment_service.record_payment(member.id, TODAY, Decimal("10.00"), import_batch_id=batch.id)

    assert batch.source == "CSV"
    assert batch.imported_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)
    assert payment.import_batch_id == batch.id
    assert [p.id for p in batch.payments] == [payment.id]


@pytest.mark.parametrize("amount", ["0", "-10", "x"])
def test_record_payment_rejects_bad_amount(payment_service, member, amount):
    with pytest.raises(InvalidAmountError):
        payment_service.record_payment(member.id, TODAY, amount)


def test_record_payment_rejects_unknown_member(payment_service):
    with pytest.raises(NotFoundError) as exc_info:
        payment_service.record_payment(999, TODAY, Decimal("10.00"))

    assert exc_info.value.entity_type == "member"


def test_record_payment_rejects_unknown_batch(payment_service, member):
    with pytest.raises(NotFoundError):
        payment_service.record_payment(member.id, TODAY, Decimal("10.00"), import_batch_id=42)


def test_create_import_batch_requires_source(payment_service):
    with pytest.raises(ValueError):
        payment_service.create_import_batch("  ")


class TestAllocationSummary:
    """get_allocation_summary reflects the current allocation set."""

    def test_unallocated(self, payment_service, make_payment):
        payment = make_payment("100.00")

        summary = payment_service.get_allocation_summary(payment.id)

        assert summary.allocated == Decimal("0.00")
        assert summary.unallocated == Decimal("100.00")
        assert summary.state == PaymentAllocationState.UNALLOCATED
        assert summary.allocations == []

    def test_partial_summary_ordered_by_invoice_number(
        self, payment_service, ledger, make_invoice, make_payment
    ):
        late = make_invoice(number="INV-B")
        early = make_invoice(number="INV-A")
        payment = make_payment("100.00")
        ledger.replace_allocations(
            payment.id, [(late.id, Decimal("30.00")), (early.id, Decimal("20.00"))]
        )

        summary = payment_service.get_allocation_summary(payment.id)

        assert summary.state == PaymentAllocationState.PARTIAL
        assert summary.allocated == Decimal("50.00")
        assert summary.unallocated == Decimal("50.00")
        assert summary.version == 2
        assert [(a.invoice_number, a.amount) for a in summary.allocations] == [
            ("INV-A", Decimal("20.00")),
            ("INV-B", Decimal("30.00")),
        ]

    def test_fully_allocated(self, payment_service, ledger, make_invoice, make_payment):
        payment = make_payment("40.00")
        ledger.add_allocation(payment.id, make_invoice().id, Decimal("40.00"))

        summary = payment_service.get_allocation_summary(payment.id)

        assert summary.state == PaymentAllocationState.ALLOCATED
        assert summary.unallocated == Decimal("0.00")

    def test_missing_payment(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.get_allocation_summary(999)


@pytest.mark.parametrize(
    "amount, allocated, expected",
    [
        ("100", "0", PaymentAllocationState.UNALLOCATED),
        ("100", "0.01", PaymentAllocationState.PARTIAL),
        ("100", "100", PaymentAllocationState.ALLOCATED),
    ],
)
def test_allocation_state(amount, allocated, expected):
    assert allocation_state(Decimal(amount), Decimal(allocated)) == expected
