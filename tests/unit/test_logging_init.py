from __future__ import annotations

import logging
from io import StringIO

from import_validator.logging.init import (
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


def test_setup_logging_creates_logger_with_labeled_formatter():
    """setup_logging configures one stdout handler on the application logger."""
    logger = setup_logging()

    assert logger.name == "import_validator"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_is_idempotent_and_adjusts_level():
    """Test repeated setup keeps one handler and updates the level."""
    first = setup_logging()
    second = setup_logging(debug=True)

    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    assert second.handlers[0].level == logging.DEBUG


def test_get_logger_configures_on_first_use():
    """Test get_logger() sets logging up when needed."""
    reset_logging()
    logger = get_logger()
    assert logger is setup_logging()


def test_labeled_prefixes():
    """Outputs carry INFO|WARN|ERROR|SUMMARY labels."""
    captured = StringIO()
    logger = logging.getLogger("test_import_validator_labels")
    logger.setLevel(logging.INFO)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    handler = logging.StreamHandler(captured)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logger.info("Test info message")
    logger.warning("Test warning message")
    logger.error("Test error message")
    logger.log(SUMMARY_LEVEL, "rows=1")

    assert captured.getvalue().splitlines() == [
        "INFO Test info message",
        "WARN Test warning message",
        "ERROR Test error message",
        "SUMMARY rows=1",
    ]


def test_log_summary_prints_summary_label(capsys):
    """Test log_summary() prints a SUMMARY line."""
    setup_logging()
    log_summary("rows=3 accepted=3")
    assert "SUMMARY rows=3 accepted=3" in capsys.readouterr().out


def test_library_loggers_propagate_to_application_handler(capsys):
    """Test package loggers end up in the application handler."""
    setup_logging()
    logging.getLogger("import_validator.services.orchestrator").warning("2 of 3 row(s) rejected")
    assert "WARN 2 of 3 row(s) rejected" in capsys.readouterr().out


def test_reset_logging_removes_handlers():
    """Test reset_logging() removes the handler."""
    logger = setup_logging()
    reset_logging()
    assert logger.handlers == []
