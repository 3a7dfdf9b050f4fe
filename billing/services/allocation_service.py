"""Allocation ledger: the only writer of payment-to-invoice allocations.

Operations:
- add_allocation: apply part of a payment to one invoice
- delete_allocation: remove one allocation line
- replace_allocations: re-specify a payment's whole allocation set (all-or-nothing)
- get_invoice_balance: derived total / paid / remaining / status for an invoice

Every mutation is one unit of work: allocation rows, invoice status writes and
the audit entry commit together or not at all. Conservation holds after every
commit: for each payment, sum(allocations) <= payment.amount.

Per-payment serialization uses Payment.version (SQLAlchemy version_id_col).
Each mutation touches the payment row, so a concurrent writer on the same
payment fails at flush with StaleDataError, reported as
ConcurrentModificationError.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from billing.models.allocation import Allocation
from billing.models.invoice import Invoice
from billing.models.invoice_status import StatusCode
from billing.models.payment import Payment
from billing.services.audit_service import SYSTEM_ACTOR, AuditActor, AuditService, AuditSink
from billing.services.clock import Clock
from billing.services.config import DunningPolicy
from billing.services.errors import (
    ConcurrentModificationError,
    DuplicateAllocationError,
    InvalidAmountError,
    InvalidInvoiceError,
    NotFoundError,
    OverAllocationError,
)
from billing.services.reconciliation_service import ReconcileResult, StatusReconciler
from billing.services.unit_of_work import record_audit, unit_of_work

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class AllocationLine(NamedTuple):
    """One requested line of a replace batch."""

    invoice_id: int
    amount: Decimal


class InvoiceBalance(NamedTuple):
    """Derived money state of an invoice."""

    invoice_id: int
    total: Decimal
    paid: Decimal
    remaining: Decimal  # floored at 0 when overpaid
    status_code: StatusCode


def to_money(amount) -> Decimal:
    """Parse a positive money amount with at most two decimal places.

    Raises:
        InvalidAmountError: If amount is not a finite number > 0 in cents
    """
    if isinstance(amount, bool):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if value <= 0:
        raise InvalidAmountError("Amount must be > 0")
    if value != value.quantize(CENT):
        raise InvalidAmountError(f"Amount has more than two decimal places: {amount}")
    return value.quantize(CENT)


def _snapshot(allocations: Iterable[Allocation]) -> list[dict]:
    return [
        {"allocation_id": a.id, "invoice_id": a.invoice_id, "amount": a.amount}
        for a in sorted(allocations, key=lambda a: a.invoice_id)
    ]


class AllocationService:
    """Allocation ledger bound to one session."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        reconciler: StatusReconciler | None = None,
        dunning_policy: DunningPolicy | None = None,
    ):
        """Initialize with database session.

        Args:
            db: Session used for every read and write of this service
            clock: Clock for status dates and timestamps (settings timezone by default)
            audit_sink: Where audit entries go (AuditLog rows in db by default)
            reconciler: Status reconciler (built from clock and policy by default)
            dunning_policy: Passed to the default reconciler
        """
        self.db = db
        self.reconciler = reconciler or StatusReconciler(db, clock, dunning_policy)
        self.clock = self.reconciler.clock
        self.audit_sink = audit_sink or AuditService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_payment_allocations(self, payment_id: int) -> list[Allocation]:
        """Current allocations of a payment, ordered by invoice id."""
        stmt = (
            select(Allocation)
            .where(Allocation.payment_id == payment_id)
            .order_by(Allocation.invoice_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def allocated_total(self, payment_id: int) -> Decimal:
        """Sum of current allocations of a payment."""
        stmt = select(func.coalesce(func.sum(Allocation.amount), 0)).where(
            Allocation.payment_id == payment_id
        )
        return Decimal(str(self.db.execute(stmt).scalar_one())).quantize(CENT)

    def get_invoice_balance(self, invoice_id: int) -> InvoiceBalance:
        """Recompute an invoice's balance from its current allocations.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)

        total = Decimal(invoice.total_amount)
        paid = self.reconciler.paid_total(invoice_id)
        remaining = max(total - paid, Decimal("0.00"))
        return InvoiceBalance(invoice_id, total, paid, remaining, invoice.status_code)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_allocation(
        self,
        payment_id: int,
        invoice_id: int,
        amount,
        actor: AuditActor = SYSTEM_ACTOR,
        expected_version: int | None = None,
    ) -> int:
        """Apply part of a payment to an invoice.

        Args:
            payment_id: Payment to spend from
            invoice_id: Invoice to apply to
            amount: Amount to apply (> 0)
            actor: Who is making the change (audit)
            expected_version: Payment version the caller last saw (optional)

        Returns:
            New allocation id

        Raises:
            InvalidAmountError: amount <= 0 or not in cents
            NotFoundError: payment or invoice missing
            DuplicateAllocationError: payment already allocated to this invoice
            OverAllocationError: amount exceeds the payment's remaining headroom
            ConcurrentModificationError: payment changed concurrently
        """
        with unit_of_work(self.db, "add_allocation", payment_id):
            money = to_money(amount)
            payment = self._lock_payment(payment_id, expected_version)

            if self.db.get(Invoice, invoice_id) is None:
                raise NotFoundError("invoice", invoice_id)

            existing = self.list_payment_allocations(payment_id)
            if any(a.invoice_id == invoice_id for a in existing):
                raise DuplicateAllocationError(payment_id, invoice_id)

            remaining = Decimal(payment.amount) - sum((a.amount for a in existing), Decimal("0"))
            if money > remaining:
                raise OverAllocationError(payment_id, money, remaining)

            allocation = Allocation(payment_id=payment_id, invoice_id=invoice_id, amount=money)
            self.db.add(allocation)
            self._touch_payment(payment)
            self.db.flush()

            result = self.reconciler.reconcile(invoice_id)
            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "allocation_added",
                "allocation",
                allocation.id,
                f"Payment {payment_id} -> invoice {invoice_id} amount {money}",
                {
                    "payment_id": payment_id,
                    "before": None,
                    "after": {"invoice_id": invoice_id, "amount": money},
                    "status": self._status_change(result),
                },
            )
            self.db.commit()

        logger.info(
            "Allocated %s of payment %d to invoice %d (allocation %d, remaining %s)",
            money,
            payment_id,
            invoice_id,
            allocation.id,
            remaining - money,
        )
        return allocation.id

    def delete_allocation(
        self,
        payment_id: int,
        allocation_id: int,
        actor: AuditActor = SYSTEM_ACTOR,
        expected_version: int | None = None,
    ) -> None:
        """Remove one allocation of a payment.

        Raises:
            NotFoundError: payment missing, or allocation missing or owned by another payment
            ConcurrentModificationError: payment changed concurrently
        """
        with unit_of_work(self.db, "delete_allocation", payment_id):
            payment = self._lock_payment(payment_id, expected_version)

            allocation = self.db.execute(
                select(Allocation).where(
                    Allocation.id == allocation_id,
                    Allocation.payment_id == payment_id,
                )
            ).scalar_one_or_none()
            if allocation is None:
                raise NotFoundError("allocation", allocation_id)

            invoice_id = allocation.invoice_id
            removed = {"invoice_id": invoice_id, "amount": allocation.amount}

            self.db.delete(allocation)
            self._touch_payment(payment)
            self.db.flush()

            result = self.reconciler.reconcile(invoice_id)
            record_audit(
                self.db,
                self.audit_sink,
                actor,
                "allocation_deleted",
                "allocation",
                allocation_id,
                f"Allocation {allocation_id} deleted: payment {payment_id} "
                f"invoice {invoice_id} amount {removed['amount']}",
                {
                    "payment_id": payment_id,
                    "before": removed,
                    "after": None,
                    "status": self._status_change(result),
                },
            )
            self.db.commit()

        logger.info(
            "Deleted allocation %d (payment %d, invoice %d, amount %s)",
            allocation_id,
            payment_id,
            invoice_id,
            removed["amount"],
        )

    def replace_allocations(
        self,
        payment_id: int,
        lines: Iterable,
        actor: AuditActor = SYSTEM_ACTOR,
        expected_version: int | None = None,
    ) -> list[int]:
        """Replace a payment's whole allocation set.

        The batch is validated before any write; on failure the payment's
        existing allocations stay untouched. Invoices that lost an allocation
        are reconciled along with the ones that gained one. An empty batch
        clears the payment.

        Args:
            payment_id: Payment whose allocations are re-specified
            lines: (invoice_id, amount) pairs or AllocationLine items
            actor: Who is making the change (audit)
            expected_version: Payment version the caller last saw (optional)

        Returns:
            Ids of the new allocations, in line order

        Raises:
            NotFoundError: payment missing
            InvalidAmountError: any amount <= 0 or not in cents
            InvalidInvoiceError: duplicate invoice ids, or invoices that do not exist
            OverAllocationError: sum of lines exceeds the payment amount
            ConcurrentModificationError: payment changed concurrently
        """
        with unit_of_work(self.db, "replace_allocations", payment_id):
            payment = self._lock_payment(payment_id, expected_version)
            requested = self._validate_lines(payment, lines)

            existing = self.list_payment_allocations(payment_id)
            before = _snapshot(existing)

            for allocation in existing:
                self.db.delete(allocation)
            # Deletes must reach the store before inserts reuse (payment, invoice) pairs
            self.db.flush()

            created = []
            for line in requested:
                allocation = Allocation(
                    payment_id=payment_id, invoice_id=line.invoice_id, amount=line.amount
                )
                self.db.add(allocation)
                created.append(allocation)
            self._touch_payment(payment)
            self.db.flush()

            affected = {a["invoice_id"] for a in before} | {line.invoice_id for line in requested}
            results = self.reconciler.reconcile_many(affected)

            action = "allocations_replaced" if requested else "allocations_cleared"
            record_audit(
                self.db,
                self.audit_sink,
                actor,
                action,
                "payment",
                payment_id,
                f"Payment {payment_id} allocations "
                f"{'replaced' if requested else 'cleared'}: "
                f"{len(before)} -> {len(requested)} lines",
                {
                    "payment_id": payment_id,
                    "before": before,
                    "after": _snapshot(created),
                    "statuses": [self._status_change(r) for r in results if r.changed],
                },
            )
            self.db.commit()

        logger.info(
            "Replaced allocations of payment %d: %d -> %d lines, %d invoices reconciled",
            payment_id,
            len(before),
            len(created),
            len(affected),
        )
        return [a.id for a in created]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_payment(self, payment_id: int, expected_version: int | None) -> Payment:
        payment = self.db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise NotFoundError("payment", payment_id)
        if expected_version is not None and payment.version != expected_version:
            raise ConcurrentModificationError(payment_id, expected_version, payment.version)
        return payment

    def _touch_payment(self, payment: Payment) -> None:
        payment.updated_at = self.clock.now()
        # An equal timestamp would not emit the UPDATE that bumps the version
        flag_modified(payment, "updated_at")

    def _validate_lines(self, payment: Payment, lines: Iterable) -> list[AllocationLine]:
        requested = []
        for inv, amt in lines:
            if isinstance(inv, bool):
                raise InvalidInvoiceError([inv], "Invalid invoice id")
            try:
                invoice_id = int(inv)
            except (TypeError, ValueError) as e:
                raise InvalidInvoiceError([inv], "Invalid invoice id") from e
            requested.append(AllocationLine(invoice_id, to_money(amt)))

        seen: set[int] = set()
        duplicates = []
        for line in requested:
            if line.invoice_id in seen and line.invoice_id not in duplicates:
                duplicates.append(line.invoice_id)
            seen.add(line.invoice_id)
        if duplicates:
            raise InvalidInvoiceError(duplicates, "Duplicate invoice ids in allocation lines")

        if seen:
            found = set(
                self.db.execute(select(Invoice.id).where(Invoice.id.in_(seen))).scalars().all()
            )
            missing = sorted(seen - found)
            if missing:
                raise InvalidInvoiceError(missing, "Invoices not found")

        total = sum((line.amount for line in requested), Decimal("0"))
        if total > payment.amount:
            raise OverAllocationError(payment.id, total, Decimal(payment.amount))
        return requested

    @staticmethod
    def _status_change(result: ReconcileResult | None) -> dict | None:
        if result is None:
            return None
        return {"invoice_id": result.invoice_id, "before": result.previous, "after": result.status}


__all__ = ["AllocationLine", "AllocationService", "InvoiceBalance", "to_money"]
