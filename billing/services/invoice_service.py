"""Invoice service: creation from lines, line edits, deletion and manual status overrides.

The invoice total is always recomputed from its lines on the server side.
Manual status changes (collections, cancellation, admin override) are the only
writes to status_code besides the reconciler.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing.models.allocation import Allocation
from billing.models.invoice import Invoice, InvoiceLine
from billing.models.invoice_status import StatusCode
from billing.models.member import Member
from billing.services.audit_service import SYSTEM_ACTOR, AuditActor, AuditService, AuditSink
from billing.services.clock import Clock
from billing.services.errors import (
    DuplicateInvoiceNumberError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    InvoiceInUseError,
    InvoiceLockedError,
    NotFoundError,
)
from billing.services.reconciliation_service import StatusReconciler
from billing.services.unit_of_work import record_audit, unit_of_work

logger = logging.getLogger(__name__)

# Statuses that refuse line edits
LOCKED_STATUSES = frozenset({StatusCode.PAID, StatusCode.CANCELLED})

# Statuses from which an invoice can be sent to collections
COLLECTIBLE_STATUSES = frozenset({StatusCode.UNPAID, StatusCode.PARTIAL, StatusCode.OVERDUE})


class InvoiceLineInput(NamedTuple):
    """Requested invoice line; line_no only orders lines, it is renumbered 1..n."""

    name: str
    qty: int
    unit_price: Decimal
    line_no: int | None = None


def _build_lines(lines: Iterable[InvoiceLineInput]) -> list[InvoiceLine]:
    requested = list(lines)
    # Stable sort keeps input order for lines without a number
    ordered = sorted(
        enumerate(requested),
        key=lambda pair: (pair[1].line_no if pair[1].line_no is not None else pair[0]),
    )

    built = []
    for position, (_, line) in enumerate(ordered, start=1):
        if isinstance(line.qty, bool) or not isinstance(line.qty, int) or line.qty <= 0:
            raise InvalidAmountError(f"Line quantity must be a positive integer: {line.qty!r}")
        try:
            unit_price = Decimal(str(line.unit_price))
        except (InvalidOperation, ValueError) as e:
            raise InvalidAmountError(f"Invalid unit price: {line.unit_price!r}") from e
        if not unit_price.is_finite() or unit_price < 0:
            raise InvalidAmountError(f"Invalid unit price: {line.unit_price!r}")
        if not line.name or not line.name.strip():
            raise InvalidAmountError("Line name is required")

        built.append(
            InvoiceLine(
                line_no=position,
                name=line.name.strip(),
                qty=line.qty,
                unit_price=unit_price.quantize(Decimal("0.01")),
            )
        )
    return built


def _lines_total(lines: Iterable[InvoiceLine]) -> Decimal:
    return sum((line.amount for line in lines), Decimal("0.00")).quantize(Decimal("0.01"))


class InvoiceService:
    """Invoice operations bound to one session."""

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

    def get_invoice(self, invoice_id: int) -> Invoice | None:
        """Get invoice by ID, or None."""
        return self.db.get(Invoice, invoice_id)

    def get_by_number(self, number: str) -> Invoice | None:
        """Get invoice by its human-readable number, or None."""
        return self.db.execute(select(Invoice).where(Invoice.number == number)).scalar_one_or_none()

    def create_invoice(
        self,
        member_id: int,
        number: str,
        issue_date: date,
        due_date: date,
        lines: Iterable[InvoiceLineInput] | None = None,
        actor: AuditActor = SYSTEM_ACTOR,
        remarks: str | None = None,
        total_amount: Decimal | None = None,
    ) -> Invoice:
        """Create an UNPAID invoice.

        When lines are given the total is their sum of qty × unit_price and
        total_amount must be omitted. Without lines, total_amount is required.

        Args:
            member_id: Member the invoice is issued to
            number: Globally unique invoice number
            issue_date: Issue date
            due_date: Payment due date
            lines: Invoice lines (optional)
            actor: Who is creating the invoice (audit)
            remarks: Free-text remarks
            total_amount: Flat total for an invoice without lines

        Returns:
            Created Invoice

        Raises:
            NotFoundError: Member does not exist
            DuplicateInvoiceNumberError: Number already used
            InvalidAmountError: Bad line values, or a bad / conflicting total
            ValueError: Empty invoice number
        """
        number = (number or "").strip()
        if not number:
            raise ValueError("Invoice number is required")

        with unit_of_work(self.db, "create_invoice"):
            if self.db.get(Member, member_id) is None:
                raise NotFoundError("member", member_id)
            if self.get_by_number(number) is not None:
                raise DuplicateInvoiceNumberError(f"Invoice number {number!r} already exists")

            built = _build_lines(lines or [])
            if built:
                if total_amount is not None:
                    raise InvalidAmountError("total_amount cannot be set when lines are given")
                total = _lines_total(built)
            else:
                if total_amount is None:
                    raise InvalidAmountError("total_amount is required for an invoice without lines")
                total = Decimal(str(total_amount))
                if not total.is_finite() or total < 0:
                    raise InvalidAmountError(f"Invalid total amount: {total_amount!r}")
                total = total.quantize(Decimal("0.01"))

            now = self.clock.now()
            invoice = Invoice(
                member_id=member_id,
                number=number,
                issue_date=issue_date,
                due_date=due_date,
                total_amount=total,
                status_code=StatusCode.UNPAID,
                remarks=remarks,
                created_at=now,
                updated_at=now,
            )
            invoice.lines = built
            self.db.add(invoice)
            self.db.flush()

            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "invoice_created",
                "invoice",
                invoice.id,
                f"Invoice {number} created for member {member_id}, total {total}",
                {"before": None, "after": {"number": number, "total": total, "due_date": due_date}},
            )
            self.db.commit()

        logger.info("Created invoice %s (id=%d, total=%s, due=%s)", number, invoice.id, total, due_date)
        return invoice

    def replace_lines(
        self,
        invoice_id: int,
        lines: Iterable[InvoiceLineInput],
        actor: AuditActor = SYSTEM_ACTOR,
    ) -> Invoice:
        """Replace an invoice's lines and recompute its total.

        The status is reconciled afterwards since the total changed.

        Raises:
            NotFoundError: Invoice does not exist
            InvoiceLockedError: Invoice is PAID or CANCELLED
            InvalidAmountError: Bad line values
        """
        with unit_of_work(self.db, "replace_invoice_lines"):
            invoice = self._get_or_raise(invoice_id)
            if invoice.status_code in LOCKED_STATUSES:
                raise InvoiceLockedError(
                    f"Invoice {invoice_id} is {invoice.status_code.value} and cannot be edited"
                )

            built = _build_lines(lines)
            before_total = Decimal(invoice.total_amount)
            invoice.lines = built
            invoice.total_amount = _lines_total(built)
            invoice.updated_at = self.clock.now()
            self.db.flush()

            result = self.reconciler.reconcile(invoice_id)
            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "invoice_lines_replaced",
                "invoice",
                invoice_id,
                f"Invoice {invoice.number} lines replaced, total {before_total} -> {invoice.total_amount}",
                {
                    "before": {"total": before_total},
                    "after": {"total": invoice.total_amount, "lines": len(built)},
                    "status": {"before": result.previous, "after": result.status} if result else None,
                },
            )
            self.db.commit()

        logger.info("Replaced lines of invoice %d, total now %s", invoice_id, invoice.total_amount)
        return invoice

    def mark_in_collections(self, invoice_id: int, actor: AuditActor = SYSTEM_ACTOR) -> bool:
        """Put an unpaid, partially paid or overdue invoice into DUNNING.

        Returns:
            True if the status changed, False if it was already DUNNING

        Raises:
            NotFoundError: Invoice does not exist
            InvalidStatusTransitionError: Invoice is PAID or CANCELLED
        """
        with unit_of_work(self.db, "mark_in_collections"):
            invoice = self._get_or_raise(invoice_id)
            current = invoice.status_code
            if current == StatusCode.DUNNING:
                self.db.rollback()
                return False
            if current not in COLLECTIBLE_STATUSES:
                raise InvalidStatusTransitionError(
                    f"Invoice {invoice_id} is {current.value}; only unpaid, partial or "
                    f"overdue invoices go to collections"
                )
            self._write_status(invoice, StatusCode.DUNNING, actor, "invoice_sent_to_collections")
            self.db.commit()

        logger.info("Invoice %d sent to collections (was %s)", invoice_id, current.value)
        return True

    def cancel_invoice(self, invoice_id: int, actor: AuditActor = SYSTEM_ACTOR) -> Invoice:
        """Cancel an invoice. CANCELLED is terminal; cancelling twice is a no-op."""
        with unit_of_work(self.db, "cancel_invoice"):
            invoice = self._get_or_raise(invoice_id)
            if invoice.status_code == StatusCode.CANCELLED:
                self.db.rollback()
                return invoice
            self._write_status(invoice, StatusCode.CANCELLED, actor, "invoice_cancelled")
            self.db.commit()

        logger.info("Invoice %d cancelled", invoice_id)
        return invoice

    def set_status(
        self,
        invoice_id: int,
        status: StatusCode,
        actor: AuditActor = SYSTEM_ACTOR,
    ) -> Invoice:
        """Administrative status override.

        The reconciler may re-derive the status on the next allocation change,
        except for CANCELLED and, depending on the dunning policy, DUNNING.

        Raises:
            NotFoundError: Invoice does not exist
            InvalidStatusTransitionError: Invoice is CANCELLED and status differs
        """
        status = StatusCode(status)
        with unit_of_work(self.db, "set_invoice_status"):
            invoice = self._get_or_raise(invoice_id)
            if invoice.status_code == status:
                self.db.rollback()
                return invoice
            if invoice.status_code == StatusCode.CANCELLED:
                raise InvalidStatusTransitionError(f"Invoice {invoice_id} is cancelled")
            self._write_status(invoice, status, actor, "invoice_status_set")
            self.db.commit()

        logger.info("Invoice %d status set to %s", invoice_id, status.value)
        return invoice

    def delete_invoice(self, invoice_id: int, actor: AuditActor = SYSTEM_ACTOR) -> None:
        """Delete an invoice that no payment has been allocated to.

        Lines and reminder history go with it.

        Raises:
            NotFoundError: Invoice does not exist
            InvoiceInUseError: Payment allocations still reference the invoice
        """
        with unit_of_work(self.db, "delete_invoice"):
            invoice = self._get_or_raise(invoice_id)
            allocation_count = self.db.execute(
                select(func.count(Allocation.id)).where(Allocation.invoice_id == invoice_id)
            ).scalar_one()
            if allocation_count:
                raise InvoiceInUseError(invoice_id, allocation_count)

            removed = {
                "number": invoice.number,
                "member_id": invoice.member_id,
                "total": invoice.total_amount,
                "status": invoice.status_code,
                "lines": len(invoice.lines),
            }
            self.db.delete(invoice)
            self.db.flush()

            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "invoice_deleted",
                "invoice",
                invoice_id,
                f"Invoice {removed['number']} deleted",
                {"before": removed, "after": None},
            )
            self.db.commit()

        logger.info("Deleted invoice %s (id=%d)", removed["number"], invoice_id)

    def _get_or_raise(self, invoice_id: int) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def _write_status(
        self,
        invoice: Invoice,
        status: StatusCode,
        actor: AuditActor,
        action: str,
    ) -> None:
        previous = invoice.status_code
        invoice.status_code = status
        invoice.updated_at = self.clock.now()
        self.db.flush()
        record_audit(
            self.db,
            self.audit_sink,
            actor,
            action,
            "invoice",
            invoice.id,
            f"Invoice {invoice.number} status {previous.value} -> {status.value}",
            {"before": {"status": previous}, "after": {"status": status}},
        )


__all__ = ["InvoiceLineInput", "InvoiceService", "COLLECTIBLE_STATUSES", "LOCKED_STATUSES"]
