"""Root logger setup for ledger processes.

Every record goes to stdout and to a log file. The level comes from the
caller (usually LedgerSettings.log_level) or, failing that, LOG_LEVEL.
"""

import logging
import os
import sys
from pathlib import Path

LEDGER_LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LEDGER_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Accepted LOG_LEVEL names
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(name: str | None = None) -> int:
    """Resolve a level name, falling back to LOG_LEVEL and then INFO."""
    if name is None:
        name = os.getenv("LOG_LEVEL", "INFO")
    return LOG_LEVEL_MAP.get(name.strip().upper(), logging.INFO)


def setup_logging(log_file: str = "logs/billing.log", level: str | None = None) -> None:
    """
    Send all ledger logging to stdout and log_file.

    Args:
        log_file: Log file path; parent directories are created
        level: Level name; LOG_LEVEL env var when omitted

    Handlers installed by an earlier call are closed and replaced. SQL echo
    from sqlalchemy.engine is kept at WARNING unless the level is DEBUG.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    log_level = get_log_level(level)
    formatter = logging.Formatter(fmt=LEDGER_LOG_FORMAT, datefmt=LEDGER_DATE_FORMAT)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(log_level)

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if log_level == logging.DEBUG else logging.WARNING
    )


__all__ = ["LOG_LEVEL_MAP", "get_log_level", "setup_logging"]
