"""Invoice and invoice line ORM models."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.models import Base, BaseModel
from billing.models.invoice_status import StatusCode, status_code_type


class Invoice(Base, BaseModel):
    """A billable obligation issued to a member.

    total_amount is derived from the lines (qty × unit_price summed) and is
    never edited directly once lines exist. status_code is written by the
    status reconciler, or by an explicit administrative override.
    """

    __tablename__ = "invoices"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"),
        nullable=False,
        index=True,
        comment="Member the invoice is issued to",
    )
    number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Human-readable invoice number (globally unique)",
    )
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Sum of qty × unit_price over lines",
    )
    status_code: Mapped[StatusCode] = mapped_column(
        status_code_type(),
        ForeignKey("invoice_statuses.code"),
        nullable=False,
        default=StatusCode.UNPAID,
        index=True,
    )
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    member: Mapped["Member"] = relationship(  # noqa: F821
        "Member",
        back_populates="invoices",
    )
    lines: Mapped[list["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_no",
    )
    reminders: Mapped[list["ReminderHistory"]] = relationship(  # noqa: F821
        "ReminderHistory",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="ReminderHistory.reminded_at",
    )
    # Read-only: allocation rows are written by AllocationService only
    allocations: Mapped[list["Allocation"]] = relationship(  # noqa: F821
        "Allocation",
        viewonly=True,
    )

    __table_args__ = (Index("idx_invoice_member_status", "member_id", "status_code"),)

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number={self.number!r}, total={self.total_amount}, "
            f"status={self.status_code.value}, due={self.due_date})>"
        )


class InvoiceLine(Base, BaseModel):
    """Single priced line of an invoice."""

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, comment="Display order, 1..n")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="lines")

    @property
    def amount(self) -> Decimal:
        return Decimal(self.qty) * Decimal(self.unit_price)

    def __repr__(self) -> str:
        return (
            f"<InvoiceLine(invoice_id={self.invoice_id}, line_no={self.line_no}, "
            f"qty={self.qty}, unit_price={self.unit_price})>"
        )


__all__ = ["Invoice", "InvoiceLine"]
