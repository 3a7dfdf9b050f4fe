"""Transaction scope shared by the ledger services."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from billing.services.audit_service import AuditActor, AuditSink
from billing.services.errors import AuditWriteError, ConcurrentModificationError, LedgerError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session, operation: str, payment_id: int | None = None) -> Iterator[None]:
    """Roll the session back when the block raises, then re-raise.

    The block is expected to commit itself once every write (data, status,
    audit) is staged. A version conflict on a payment row is reported as
    ConcurrentModificationError.

    Args:
        db: Session the block writes through
        operation: Name used in log lines
        payment_id: Payment whose version token guards the block (optional)
    """
    try:
        yield
    except StaleDataError as e:
        db.rollback()
        if payment_id is None:
            logger.error("%s failed on stale data: %s", operation, e, exc_info=True)
            raise
        logger.warning("%s on payment %d lost a concurrent update: %s", operation, payment_id, e)
        raise ConcurrentModificationError(payment_id) from e
    except AuditWriteError:
        db.rollback()
        logger.error("%s rolled back: audit write failed", operation)
        raise
    except LedgerError as e:
        db.rollback()
        logger.warning("%s rejected: %s", operation, e)
        raise
    except Exception as e:
        logger.error("%s failed: %s", operation, e, exc_info=True)
        db.rollback()
        raise


def record_audit(
    db: Session,
    sink: AuditSink,
    actor: AuditActor,
    action: str,
    entity_type: str,
    entity_id: int | str,
    summary: str,
    changes: dict | None = None,
) -> None:
    """Hand one mutation to the audit sink inside the current unit of work.

    Raises:
        AuditWriteError: If the sink raises or its rows fail to flush
    """
    try:
        sink.record(actor, action, entity_type, entity_id, summary, changes)
        db.flush()
    except Exception as e:
        raise AuditWriteError(f"Audit write failed for {action}: {e}") from e


__all__ = ["record_audit", "unit_of_work"]
