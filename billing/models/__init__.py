"""Ledger ORM models: declarative base, shared columns and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel:
    """Surrogate key plus creation and modification stamps.

    Services stamp updated_at from their injected clock; the defaults only
    cover rows written outside a service.
    """

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# Model modules import Base from here, so they are registered last
from billing.models.allocation import Allocation  # noqa: E402
from billing.models.audit_log import AuditLog  # noqa: E402
from billing.models.invoice import Invoice, InvoiceLine  # noqa: E402
from billing.models.invoice_status import InvoiceStatus, StatusCode  # noqa: E402
from billing.models.member import Member  # noqa: E402
from billing.models.payment import Payment, PaymentImportBatch  # noqa: E402
from billing.models.reminder import ReminderHistory, ReminderMethod, ReminderTone  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "Allocation",
    "AuditLog",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "Member",
    "Payment",
    "PaymentImportBatch",
    "ReminderHistory",
    "ReminderMethod",
    "ReminderTone",
    "StatusCode",
]
