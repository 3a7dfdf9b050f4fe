"""Tests for ledger logging configuration."""

import logging
from unittest.mock import patch

import pytest

from billing.services.logging import get_log_level, setup_logging


def test_creates_missing_log_directory(root_logger, tmp_path):
    log_file = tmp_path / "nested" / "billing.log"

    setup_logging(str(log_file))

    assert log_file.parent.is_dir()


def test_installs_stdout_and_file_handlers(root_logger, tmp_path):
    setup_logging(str(tmp_path / "billing.log"))

    assert sorted(type(h).__name__ for h in root_logger.handlers) == ["FileHandler", "StreamHandler"]


def test_explicit_level_wins_over_environment(root_logger, tmp_path):
    with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
        setup_logging(str(tmp_path / "billing.log"), "error")

    assert root_logger.level == logging.ERROR
    assert {h.level for h in root_logger.handlers} == {logging.ERROR}


def test_environment_level_used_when_not_given(root_logger, tmp_path):
    with patch.dict("os.environ", {"LOG_LEVEL": "WARNING"}, clear=False):
        setup_logging(str(tmp_path / "billing.log"))

    assert root_logger.level == logging.WARNING


def test_sql_echo_quiet_unless_debug(root_logger, tmp_path):
    setup_logging(str(tmp_path / "billing.log"), "INFO")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    setup_logging(str(tmp_path / "billing.log"), "DEBUG")
    assert logging.getLogger("sqlalchemy.engine").level == logging.DEBUG


def test_file_lines_carry_timestamp_name_and_level(root_logger, tmp_path):
    log_file = tmp_path / "billing.log"
    setup_logging(str(log_file), "INFO")

    logging.getLogger("billing.test").warning("Allocation rejected")
    for handler in root_logger.handlers:
        handler.flush()

    contents = log_file.read_text()
    assert contents.startswith("[20")
    assert "billing.test - WARNING - Allocation rejected" in contents


def test_repeated_setup_does_not_stack_handlers(root_logger, tmp_path):
    stray = logging.StreamHandler()
    root_logger.addHandler(stray)

    setup_logging(str(tmp_path / "billing.log"))
    setup_logging(str(tmp_path / "billing.log"))

    assert len(root_logger.handlers) == 2
    assert stray not in root_logger.handlers


@pytest.mark.parametrize(
    "name, expected",
    [("debug", logging.DEBUG), (" Warning ", logging.WARNING), ("chatty", logging.INFO)],
)
def test_get_log_level(name, expected):
    assert get_log_level(name) == expected
