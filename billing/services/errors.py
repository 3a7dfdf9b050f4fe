"""Exception classes for ledger operations.

Every error here is a caller-input problem reported synchronously; none of
them is retried. Persistence failures are not wrapped and propagate as raised
by SQLAlchemy.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for ledger errors."""

    pass


class NotFoundError(LedgerError):
    """Referenced payment, invoice, allocation, member or batch does not exist."""

    def __init__(self, entity_type: str, entity_id: int | None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class DuplicateAllocationError(LedgerError):
    """The payment already has an allocation to this invoice."""

    def __init__(self, payment_id: int, invoice_id: int):
        self.payment_id = payment_id
        self.invoice_id = invoice_id
        super().__init__(
            f"Payment {payment_id} is already allocated to invoice {invoice_id}"
        )


class OverAllocationError(LedgerError):
    """Allocation would spend more than the payment amount.

    remaining is the headroom left on the payment, for display to the user.
    """

    def __init__(self, payment_id: int, requested: Decimal, remaining: Decimal):
        self.payment_id = payment_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Allocation of {requested} exceeds remaining amount of payment {payment_id}. "
            f"Remaining={remaining}"
        )


class InvalidAmountError(LedgerError):
    """Amount is not a positive money value."""

    pass


class InvalidInvoiceError(LedgerError):
    """Replace batch references missing or repeated invoices."""

    def __init__(self, invoice_ids: list[int], reason: str):
        self.invoice_ids = invoice_ids
        self.reason = reason
        super().__init__(f"{reason}: {', '.join(str(i) for i in invoice_ids)}")


class ConcurrentModificationError(LedgerError):
    """Payment changed between read and commit (version token mismatch)."""

    def __init__(self, payment_id: int, expected: int | None = None, actual: int | None = None):
        self.payment_id = payment_id
        self.expected = expected
        self.actual = actual
        detail = f" (expected version {expected}, found {actual})" if expected is not None else ""
        super().__init__(f"Payment {payment_id} was modified concurrently{detail}")


class AuditWriteError(LedgerError):
    """Audit sink failed; the mutation was rolled back."""

    pass


class InvoiceLockedError(LedgerError):
    """Invoice is PAID or CANCELLED and refuses line edits."""

    pass


class DuplicateInvoiceNumberError(LedgerError):
    """Invoice number is already in use."""

    pass


class InvalidStatusTransitionError(LedgerError):
    """Manual status change is not permitted from the current status."""

    pass


class InvoiceInUseError(LedgerError):
    """Invoice still has payment allocations and cannot be deleted."""

    def __init__(self, invoice_id: int, allocation_count: int):
        self.invoice_id = invoice_id
        self.allocation_count = allocation_count
        super().__init__(
            f"Invoice {invoice_id} has {allocation_count} payment allocation(s) and cannot be deleted"
        )


__all__ = [
    "LedgerError",
    "NotFoundError",
    "DuplicateAllocationError",
    "OverAllocationError",
    "InvalidAmountError",
    "InvalidInvoiceError",
    "ConcurrentModificationError",
    "AuditWriteError",
    "InvoiceLockedError",
    "DuplicateInvoiceNumberError",
    "InvalidStatusTransitionError",
    "InvoiceInUseError",
]
