"""Payment service for recording money received and summarizing its allocation.

Provides methods for:
- Recording payments (manual entry or as part of an import batch)
- Recording import batches
- Summarizing how much of a payment is allocated and where
"""

import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.models.allocation import Allocation
from billing.models.invoice import Invoice
from billing.models.member import Member
from billing.models.payment import Payment, PaymentImportBatch
from billing.services.allocation_service import to_money
from billing.services.audit_service import SYSTEM_ACTOR, AuditActor, AuditService, AuditSink
from billing.services.clock import Clock, SystemClock
from billing.services.config import get_settings
from billing.services.errors import NotFoundError
from billing.services.unit_of_work import record_audit, unit_of_work

logger = logging.getLogger(__name__)


class PaymentAllocationState(str, Enum):
    """How much of a payment has been applied to invoices."""

    UNALLOCATED = "UNALLOCATED"
    PARTIAL = "PARTIAL"
    ALLOCATED = "ALLOCATED"


class AllocationView(NamedTuple):
    """One allocation line as shown on a payment."""

    allocation_id: int
    invoice_id: int
    invoice_number: str
    amount: Decimal


class PaymentAllocationSummary(NamedTuple):
    """Allocation state of a payment."""

    payment_id: int
    amount: Decimal
    allocated: Decimal
    unallocated: Decimal  # floored at 0
    state: PaymentAllocationState
    version: int
    allocations: list[AllocationView]


def allocation_state(amount: Decimal, allocated: Decimal) -> PaymentAllocationState:
    """Classify a payment by its allocated sum."""
    if allocated <= 0:
        return PaymentAllocationState.UNALLOCATED
    if allocated >= amount:
        return PaymentAllocationState.ALLOCATED
    return PaymentAllocationState.PARTIAL


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


class PaymentService:
    """Payment operations bound to one session."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        """Initialize payment service.

        Args:
            db: SQLAlchemy database session
            clock: Clock for timestamps (wall clock by default)
            audit_sink: Where audit entries go (AuditLog rows in db by default)
        """
        self.db = db
        self.clock = clock or SystemClock(get_settings().business_timezone)
        self.audit_sink = audit_sink or AuditService(db)

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID, or None."""
        return self.db.get(Payment, payment_id)

    def create_import_batch(self, source: str = "CSV", file_name: Optional[str] = None) -> PaymentImportBatch:
        """Record a payment import batch.

        Args:
            source: Import source (CSV, MANUAL, ...)
            file_name: Imported file name, if any

        Returns:
            Created PaymentImportBatch
        """
        source = (source or "").strip().upper()
        if not source:
            raise ValueError("Import source is required")

        with unit_of_work(self.db, "create_import_batch"):
            batch = PaymentImportBatch(
                source=source,
                file_name=_clean_text(file_name),
                imported_at=self.clock.now(),
            )
            self.db.add(batch)
            self.db.commit()

        logger.info("Created payment import batch %d (source=%s, file=%s)", batch.id, source, file_name)
        return batch

    def record_payment(
        self,
        member_id: int,
        payment_date: date,
        amount,
        actor: AuditActor = SYSTEM_ACTOR,
        payer_name: Optional[str] = None,
        method: Optional[str] = None,
        import_batch_id: Optional[int] = None,
    ) -> Payment:
        """Record money received from a member.

        The amount cannot be changed afterwards.

        Args:
            member_id: Member who paid
            payment_date: Date the money arrived
            amount: Amount received (> 0)
            actor: Who is recording the payment (audit)
            payer_name: Name on the transfer (blank becomes None)
            method: Transfer, cash, card, ... (blank becomes None)
            import_batch_id: Import batch, None for manual entry

        Returns:
            Created Payment

        Raises:
            InvalidAmountError: amount <= 0 or not in cents
            NotFoundError: Member or import batch does not exist
        """
        if payment_date is None:
            raise ValueError("payment_date is required")

        with unit_of_work(self.db, "record_payment"):
            money = to_money(amount)
            if self.db.get(Member, member_id) is None:
                raise NotFoundError("member", member_id)
            if import_batch_id is not None and self.db.get(PaymentImportBatch, import_batch_id) is None:
                raise NotFoundError("payment import batch", import_batch_id)

            now = self.clock.now()
            payment = Payment(
                member_id=member_id,
                payment_date=payment_date,
                amount=money,
                payer_name=_clean_text(payer_name),
                method=_clean_text(method),
                import_batch_id=import_batch_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(payment)
            self.db.flush()

            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "payment_recorded",
                "payment",
                payment.id,
                f"Payment {payment.id} of {money} recorded for member {member_id}",
                {
                    "before": None,
                    "after": {
                        "amount": money,
                        "payment_date": payment_date,
                        "import_batch_id": import_batch_id,
                    },
                },
            )
            self.db.commit()

        logger.info(
            "Recorded payment %d: member=%d, amount=%s, date=%s", payment.id, member_id, money, payment_date
        )
        return payment

    def get_allocation_summary(self, payment_id: int) -> PaymentAllocationSummary:
        """Summarize a payment's allocations, ordered by invoice number.

        Raises:
            NotFoundError: Payment does not exist
        """
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)

        rows = self.db.execute(
            select(Allocation.id, Allocation.invoice_id, Invoice.number, Allocation.amount)
            .join(Invoice, Invoice.id == Allocation.invoice_id)
            .where(Allocation.payment_id == payment_id)
            .order_by(Invoice.number)
        ).all()
        allocations = [
            AllocationView(row[0], row[1], row[2], Decimal(str(row[3]))) for row in rows
        ]

        amount = Decimal(payment.amount)
        allocated = sum((a.amount for a in allocations), Decimal("0.00"))
        return PaymentAllocationSummary(
            payment_id=payment_id,
            amount=amount,
            allocated=allocated,
            unallocated=max(amount - allocated, Decimal("0.00")),
            state=allocation_state(amount, allocated),
            version=payment.version,
            allocations=allocations,
        )


__all__ = [
    "AllocationView",
    "PaymentAllocationState",
    "PaymentAllocationSummary",
    "PaymentService",
    "allocation_state",
]
