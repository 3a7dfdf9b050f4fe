"""Collections: reminder history per invoice and the dunning snapshot.

Logging a reminder is what moves a collectible invoice into DUNNING. The
reminder row, the status write and the audit entry share one unit of work.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.models.invoice import Invoice
from billing.models.invoice_status import StatusCode
from billing.models.reminder import ReminderHistory, ReminderMethod, ReminderTone
from billing.services.audit_service import SYSTEM_ACTOR, AuditActor, AuditService, AuditSink
from billing.services.clock import Clock
from billing.services.errors import InvalidStatusTransitionError, NotFoundError
from billing.services.invoice_service import COLLECTIBLE_STATUSES
from billing.services.reconciliation_service import StatusReconciler
from billing.services.unit_of_work import record_audit, unit_of_work

logger = logging.getLogger(__name__)


class InvoiceSnapshot(NamedTuple):
    """What a collector needs on screen before contacting a member."""

    invoice_id: int
    number: str
    member_name: str
    member_email: str | None
    issue_date: date
    due_date: date
    total: Decimal
    paid_total: Decimal
    status_code: StatusCode


def _optional_text(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


class CollectionService:
    """Dunning operations bound to one session."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        reconciler: StatusReconciler | None = None,
    ):
        self.db = db
        self.reconciler = reconciler or StatusReconciler(db, clock)
        self.clock = self.reconciler.clock
        self.audit_sink = audit_sink or AuditService(db)

    def get_snapshot(self, invoice_id: int) -> InvoiceSnapshot:
        """Invoice, member and paid total in one read.

        Raises:
            NotFoundError: Invoice does not exist
        """
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)

        return InvoiceSnapshot(
            invoice_id=invoice.id,
            number=invoice.number,
            member_name=invoice.member.name,
            member_email=invoice.member.email,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            total=Decimal(invoice.total_amount),
            paid_total=self.reconciler.paid_total(invoice_id),
            status_code=invoice.status_code,
        )

    def list_reminders(self, invoice_id: int) -> list[ReminderHistory]:
        """Reminder history of an invoice, newest first."""
        stmt = (
            select(ReminderHistory)
            .where(ReminderHistory.invoice_id == invoice_id)
            .order_by(ReminderHistory.reminded_at.desc(), ReminderHistory.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def record_reminder(
        self,
        invoice_id: int,
        method: ReminderMethod | str,
        actor: AuditActor = SYSTEM_ACTOR,
        tone: ReminderTone | str | None = None,
        title: str | None = None,
        note: str | None = None,
        next_action_date: date | None = None,
        subject: str | None = None,
        body_text: str | None = None,
    ) -> ReminderHistory:
        """Log a collections contact and put the invoice into DUNNING.

        UNPAID, PARTIAL and OVERDUE invoices move to DUNNING. A DUNNING or
        PAID invoice keeps its status; the reminder is still recorded.

        Args:
            invoice_id: Invoice the reminder is about
            method: EMAIL, PHONE or LETTER
            actor: Who made the contact (audit)
            tone: SOFT, NORMAL or STRONG (optional)
            title: Short heading for the history list
            note: Collector's memo
            next_action_date: Planned follow-up
            subject: Message subject as sent
            body_text: Message body as sent

        Returns:
            Created ReminderHistory

        Raises:
            ValueError: Unknown method or tone
            NotFoundError: Invoice does not exist
            InvalidStatusTransitionError: Invoice is CANCELLED
        """
        method = ReminderMethod(method)
        tone = ReminderTone(tone) if tone is not None else None

        with unit_of_work(self.db, "record_reminder"):
            invoice = self.db.get(Invoice, invoice_id)
            if invoice is None:
                raise NotFoundError("invoice", invoice_id)
            previous = invoice.status_code
            if previous == StatusCode.CANCELLED:
                raise InvalidStatusTransitionError(
                    f"Invoice {invoice_id} is cancelled; reminders are not recorded"
                )

            now = self.clock.now()
            reminder = ReminderHistory(
                reminded_at=now,
                method=method,
                tone=tone,
                title=_optional_text(title),
                note=_optional_text(note),
                next_action_date=next_action_date,
                subject=_optional_text(subject),
                body_text=body_text,
                created_at=now,
                updated_at=now,
            )
            reminder.invoice = invoice
            self.db.add(reminder)

            status_change = None
            if previous in COLLECTIBLE_STATUSES:
                invoice.status_code = StatusCode.DUNNING
                invoice.updated_at = now
                status_change = {"before": previous, "after": StatusCode.DUNNING}
            self.db.flush()

            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "reminder_recorded",
                "invoice",
                invoice_id,
                f"Invoice {invoice.number} reminder by {method.value}"
                + (f", status {previous.value} -> DUNNING" if status_change else ""),
                {
                    "reminder": {
                        "reminder_id": reminder.id,
                        "method": method,
                        "tone": tone,
                        "next_action_date": next_action_date,
                    },
                    "status": status_change,
                },
            )
            self.db.commit()

        logger.info(
            "Recorded %s reminder %d for invoice %d (status %s)",
            method.value,
            reminder.id,
            invoice_id,
            invoice.status_code.value,
        )
        return reminder


__all__ = ["CollectionService", "InvoiceSnapshot"]
