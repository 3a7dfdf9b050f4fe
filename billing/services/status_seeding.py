"""Seeding of the invoice status lookup table."""

import logging
from typing import NamedTuple

from sqlalchemy.orm import Session

from billing.models.invoice_status import InvoiceStatus, StatusCode

logger = logging.getLogger(__name__)


class StatusRow(NamedTuple):
    code: StatusCode
    name: str
    is_overdue: bool
    is_closed: bool
    sort_order: int


INVOICE_STATUS_ROWS = (
    StatusRow(StatusCode.UNPAID, "Unpaid", False, False, 10),
    StatusRow(StatusCode.PARTIAL, "Partially paid", False, False, 20),
    StatusRow(StatusCode.PAID, "Paid", False, True, 30),
    StatusRow(StatusCode.OVERDUE, "Overdue", True, False, 40),
    StatusRow(StatusCode.DUNNING, "In collections", True, False, 50),
    StatusRow(StatusCode.CANCELLED, "Cancelled", False, True, 90),
)


def seed_invoice_statuses(session: Session) -> int:
    """
    Insert missing invoice status lookup rows.

    Existing rows are left untouched, so running this twice is harmless.
    The caller commits.

    Args:
        session: SQLAlchemy session

    Returns:
        Number of rows inserted
    """
    existing = {row.code for row in session.query(InvoiceStatus).all()}

    created = 0
    for row in INVOICE_STATUS_ROWS:
        if row.code in existing:
            continue
        session.add(InvoiceStatus(**row._asdict()))
        created += 1

    session.flush()
    if created:
        logger.info(f"Seeded {created} invoice status rows")
    else:
        logger.info("Invoice status lookup already seeded")
    return created


__all__ = ["INVOICE_STATUS_ROWS", "seed_invoice_statuses"]
