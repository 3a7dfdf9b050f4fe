"""Invoice status reconciliation.

Status is a deterministic function of the invoice total, the sum of its current
allocations, its due date, today's date and its current status:

    CANCELLED                 -> unchanged (terminal)
    DUNNING                   -> per DunningPolicy, otherwise recomputed
    paid >= total             -> PAID (overpayment included)
    0 < paid < total          -> PARTIAL
    paid == 0, due < today    -> OVERDUE (calendar dates, strict)
    paid == 0, due >= today   -> UNPAID

The reconciler writes only when the derived status differs, so running it twice
with unchanged inputs produces no second write.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing.models.allocation import Allocation
from billing.models.invoice import Invoice
from billing.models.invoice_status import StatusCode
from billing.services.audit_service import SYSTEM_ACTOR, AuditActor, AuditService, AuditSink
from billing.services.clock import Clock, SystemClock
from billing.services.config import DunningPolicy, get_settings
from billing.services.unit_of_work import record_audit

logger = logging.getLogger(__name__)

# Statuses fully derived from money and dates
_DERIVED_STATUSES = frozenset(
    {StatusCode.UNPAID, StatusCode.PARTIAL, StatusCode.PAID, StatusCode.OVERDUE}
)


class ReconcileResult(NamedTuple):
    """Outcome of reconciling one invoice."""

    invoice_id: int
    previous: StatusCode
    status: StatusCode
    changed: bool


def derive_status(
    total: Decimal,
    paid: Decimal,
    due_date: date,
    today: date,
    current: StatusCode,
    dunning_policy: DunningPolicy = DunningPolicy.STICKY_UNTIL_PAID,
) -> StatusCode:
    """Compute the status an invoice should have.

    Args:
        total: Invoice total amount
        paid: Sum of allocation amounts for the invoice
        due_date: Invoice due date (calendar date)
        today: Today's date in the business timezone
        current: Status currently stored on the invoice
        dunning_policy: How a manually set DUNNING status is treated

    Returns:
        The status to store (may equal current)
    """
    if current == StatusCode.CANCELLED:
        return current

    if current == StatusCode.DUNNING:
        if dunning_policy == DunningPolicy.STICKY:
            return current
        elif dunning_policy == DunningPolicy.STICKY_UNTIL_PAID:
            if paid < total:
                return current
        elif dunning_policy != DunningPolicy.TRANSIENT:
            raise ValueError(f"Unknown dunning policy: {dunning_policy}")
    elif current not in _DERIVED_STATUSES:
        raise ValueError(f"Unknown invoice status: {current}")

    if paid >= total:
        return StatusCode.PAID
    if paid > 0:
        return StatusCode.PARTIAL
    if due_date < today:
        return StatusCode.OVERDUE
    return StatusCode.UNPAID


class StatusReconciler:
    """Writes derived invoice statuses.

    Does not commit: reconcile() runs inside the unit of work of the mutation
    that triggered it. reconcile_all() is the exception, it is a top-level
    sweep and commits itself.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        dunning_policy: DunningPolicy | None = None,
    ):
        self.db = db
        if clock is None:
            clock = SystemClock(get_settings().business_timezone)
        self.clock = clock
        if dunning_policy is None:
            dunning_policy = get_settings().dunning_policy
        self.dunning_policy = dunning_policy

    def paid_total(self, invoice_id: int) -> Decimal:
        """Sum of current allocation amounts for an invoice (0 when none)."""
        stmt = select(func.coalesce(func.sum(Allocation.amount), 0)).where(
            Allocation.invoice_id == invoice_id
        )
        return Decimal(str(self.db.execute(stmt).scalar_one())).quantize(Decimal("0.01"))

    def reconcile(self, invoice_id: int) -> ReconcileResult | None:
        """Recompute and store one invoice's status.

        Returns:
            ReconcileResult, or None if the invoice no longer exists
        """
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            logger.debug("Invoice %d vanished before reconciliation, skipping", invoice_id)
            return None

        previous = invoice.status_code
        paid = self.paid_total(invoice_id)
        status = derive_status(
            Decimal(invoice.total_amount),
            paid,
            invoice.due_date,
            self.clock.today(),
            previous,
            self.dunning_policy,
        )

        if status == previous:
            return ReconcileResult(invoice_id, previous, status, False)

        invoice.status_code = status
        invoice.updated_at = self.clock.now()
        logger.info(
            "Invoice %d status %s -> %s (paid=%s, total=%s)",
            invoice_id,
            previous.value,
            status.value,
            paid,
            invoice.total_amount,
        )
        return ReconcileResult(invoice_id, previous, status, True)

    def reconcile_many(self, invoice_ids: Iterable[int]) -> list[ReconcileResult]:
        """Reconcile each invoice once, in ascending id order."""
        results = []
        for invoice_id in sorted(set(invoice_ids)):
            result = self.reconcile(invoice_id)
            if result is not None:
                results.append(result)
        return results

    def reconcile_all(
        self,
        actor: AuditActor = SYSTEM_ACTOR,
        audit_sink: AuditSink | None = None,
    ) -> list[ReconcileResult]:
        """Re-derive every non-cancelled invoice and commit.

        Picks up date-driven transitions (UNPAID -> OVERDUE) that no allocation
        change would trigger. One audit entry lists the changes, if any.

        Returns:
            Results for invoices whose status changed
        """
        sink = audit_sink or AuditService(self.db)
        invoice_ids = self.db.execute(
            select(Invoice.id).where(Invoice.status_code != StatusCode.CANCELLED)
        ).scalars().all()

        try:
            changed = [r for r in self.reconcile_many(invoice_ids) if r.changed]
            if changed:
                record_audit(
                    self.db,
                    sink,
                    actor,
                    "statuses_reconciled",
                    "invoice",
                    "*",
                    f"Reconciled {len(invoice_ids)} invoices, {len(changed)} changed",
                    {
                        "changes": [
                            {"invoice_id": r.invoice_id, "before": r.previous, "after": r.status}
                            for r in changed
                        ]
                    },
                )
            self.db.commit()
        except Exception as e:
            logger.error("Status sweep failed, rolling back: %s", e, exc_info=True)
            self.db.rollback()
            raise

        logger.info("Status sweep: %d invoices checked, %d changed", len(invoice_ids), len(changed))
        return changed


__all__ = ["ReconcileResult", "StatusReconciler", "derive_status"]
