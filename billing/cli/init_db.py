"""CLI entry point for preparing the ledger database.

Creates the schema, seeds the invoice status lookup and, optionally, runs the
status sweep so invoices whose due date passed become OVERDUE.

Usage:
    python -m billing.cli.init_db
    python -m billing.cli.init_db --reconcile

Exit Codes:
    0 - Success
    1 - Failure: Error encountered; database state unchanged

Logging:
    Logs to both stdout and LOG_FILE (default logs/billing.log)
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from billing.models import Base
from billing.services.audit_service import AuditActor
from billing.services.config import get_settings
from billing.services.db import create_db_engine, create_session_factory
from billing.services.logging import setup_logging
from billing.services.reconciliation_service import StatusReconciler
from billing.services.status_seeding import seed_invoice_statuses

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the ledger schema and seed lookups")
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="re-derive every non-cancelled invoice status after seeding",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for database initialization.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = parse_args(argv)
    load_dotenv()

    try:
        settings = get_settings()
        setup_logging(settings.log_file, settings.log_level)
        logger.info("Initializing ledger database...")

        engine = create_db_engine(settings.database_url)
        Base.metadata.create_all(engine)
        session_factory = create_session_factory(engine)

        db = session_factory()
        try:
            created = seed_invoice_statuses(db)
            db.commit()
            logger.info(f"Schema ready, {created} status rows added")

            if args.reconcile:
                reconciler = StatusReconciler(db)
                changed = reconciler.reconcile_all(AuditActor(role="cli"))
                logger.info(f"Status sweep changed {len(changed)} invoices")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        return 0

    except KeyboardInterrupt:
        logger.warning("Initialization interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Initialization failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
