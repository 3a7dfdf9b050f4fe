"""Invoice status lookup: closed set of status codes and their display rows."""

from enum import Enum

from sqlalchemy import Boolean, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from billing.models import Base, BaseModel


class StatusCode(str, Enum):
    """Invoice status codes.

    The set is fixed: the reconciler matches on every member explicitly.
    """

    UNPAID = "UNPAID"
    """Nothing allocated and not yet past due"""

    PARTIAL = "PARTIAL"
    """Some money allocated, less than the invoice total"""

    PAID = "PAID"
    """Allocations cover the total (overpayment included)"""

    OVERDUE = "OVERDUE"
    """Nothing allocated and the due date has passed"""

    DUNNING = "DUNNING"
    """Manually placed in collections"""

    CANCELLED = "CANCELLED"
    """Terminal, never changed by reconciliation"""


def status_code_type() -> SQLEnum:
    """Column type shared by every column that stores a StatusCode."""
    return SQLEnum(StatusCode, native_enum=False, length=20, validate_strings=True)


class InvoiceStatus(Base, BaseModel):
    """Lookup row describing a status code for display and filtering.

    Seeded once at startup (see billing.services.status_seeding) and read-only
    afterwards.
    """

    __tablename__ = "invoice_statuses"

    code: Mapped[StatusCode] = mapped_column(
        status_code_type(),
        nullable=False,
        unique=True,
        comment="Status code (UNPAID, PARTIAL, PAID, OVERDUE, DUNNING, CANCELLED)",
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name",
    )
    is_overdue: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<InvoiceStatus(code={self.code.value}, name={self.name!r})>"


__all__ = ["InvoiceStatus", "StatusCode", "status_code_type"]
