"""Payment and payment import batch ORM models."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.models import Base, BaseModel, utc_now


class PaymentImportBatch(Base, BaseModel):
    """A group of payments recorded together (bank CSV import, manual entry run)."""

    __tablename__ = "payment_import_batches"

    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="CSV",
        comment="Import source: CSV, MANUAL, ...",
    )
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="import_batch")

    def __repr__(self) -> str:
        return f"<PaymentImportBatch(id={self.id}, source={self.source}, file={self.file_name!r})>"


class Payment(Base, BaseModel):
    """Money received from a member.

    amount is immutable after creation; corrections happen through allocation
    changes. version is an optimistic-concurrency token: every allocation
    mutation touches this row, so two writers on the same payment cannot both
    commit.
    """

    __tablename__ = "payments"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"),
        nullable=False,
        index=True,
        comment="Member who paid",
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount received",
    )
    payer_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Name on the transfer",
    )
    method: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Transfer, cash, card, ...",
    )
    import_batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_import_batches.id"),
        nullable=True,
        index=True,
        comment="Import batch; null for manual entry",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    member: Mapped["Member"] = relationship(  # noqa: F821
        "Member",
        back_populates="payments",
    )
    import_batch: Mapped["PaymentImportBatch | None"] = relationship(
        "PaymentImportBatch",
        back_populates="payments",
    )
    # Read-only: allocation rows are written by AllocationService only
    allocations: Mapped[list["Allocation"]] = relationship(  # noqa: F821
        "Allocation",
        viewonly=True,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_payment_member_date", "member_id", "payment_date"),)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, member_id={self.member_id}, amount={self.amount}, "
            f"date={self.payment_date}, version={self.version})>"
        )


__all__ = ["Payment", "PaymentImportBatch"]
