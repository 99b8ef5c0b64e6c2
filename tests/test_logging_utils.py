"""Tests for logging utilities."""

from __future__ import annotations

import logging

from call_qc.utils.logging_utils import DEFAULT_LOGGER_NAME, resolve_level, setup_logging


def _reset() -> None:
    logger = logging.getLogger(DEFAULT_LOGGER_NAME)
    for h in logger.handlers[:]:
        logger.removeHandler(h)


def test_setup_logging_defaults() -> None:
    _reset()
    logger = setup_logging()
    assert logger.name == DEFAULT_LOGGER_NAME
    assert logger.level == logging.INFO
    assert logger.handlers


def test_setup_logging_verbose() -> None:
    _reset()
    logger = setup_logging(verbose=True)
    assert logger.level == logging.DEBUG


def test_setup_logging_quiet_wins() -> None:
    _reset()
    logger = setup_logging(quiet=True, verbose=True)
    assert logger.level == logging.ERROR
    assert resolve_level(quiet=True, verbose=True) == logging.ERROR


def test_setup_logging_is_idempotent() -> None:
    logger1 = setup_logging()
    count = len(logger1.handlers)
    logger2 = setup_logging(verbose=True)
    assert logger1 is logger2
    # Second call only changes the level.
    assert len(logger2.handlers) == count
    assert all(h.level == logging.DEBUG for h in logger2.handlers)
