"""Collections reminder history: one row per dunning contact with a member."""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.models import Base, BaseModel


class ReminderMethod(str, Enum):
    """Channel a reminder went out on."""

    EMAIL = "EMAIL"
    PHONE = "PHONE"
    LETTER = "LETTER"


class ReminderTone(str, Enum):
    """How firmly the reminder was worded."""

    SOFT = "SOFT"
    NORMAL = "NORMAL"
    STRONG = "STRONG"


class ReminderHistory(Base, BaseModel):
    """A recorded collections contact for an invoice.

    Rows are append-only and written by CollectionService, which also moves a
    collectible invoice into DUNNING when the first reminder is logged. They
    are removed together with their invoice.
    """

    __tablename__ = "reminder_histories"

    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reminded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the contact happened",
    )
    method: Mapped[ReminderMethod] = mapped_column(
        SQLEnum(ReminderMethod, native_enum=False, length=20, validate_strings=True),
        nullable=False,
    )
    tone: Mapped[ReminderTone | None] = mapped_column(
        SQLEnum(ReminderTone, native_enum=False, length=20, validate_strings=True),
        nullable=True,
    )
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    next_action_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Follow-up date planned by the collector",
    )
    # Message as sent, kept for the record
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="reminders")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<ReminderHistory(id={self.id}, invoice_id={self.invoice_id}, "
            f"method={self.method.value}, reminded_at={self.reminded_at})>"
        )


__all__ = ["ReminderHistory", "ReminderMethod", "ReminderTone"]
