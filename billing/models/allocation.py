"""Allocation ORM model: the portion of a payment applied to an invoice."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.models import Base, BaseModel


class Allocation(Base, BaseModel):
    """Join row (payment_id, invoice_id, amount).

    Rows are written exclusively by AllocationService, which also enforces that
    a payment's allocations never sum past its amount. The invoice side is not
    capped: overpaying an invoice is allowed.
    """

    __tablename__ = "allocations"

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Portion of the payment applied to the invoice",
    )

    payment: Mapped["Payment"] = relationship("Payment", viewonly=True)  # noqa: F821
    invoice: Mapped["Invoice"] = relationship("Invoice", viewonly=True)  # noqa: F821

    __table_args__ = (
        UniqueConstraint("payment_id", "invoice_id", name="uq_allocation_payment_invoice"),
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Allocation(id={self.id}, payment_id={self.payment_id}, "
            f"invoice_id={self.invoice_id}, amount={self.amount})>"
        )


__all__ = ["Allocation"]
