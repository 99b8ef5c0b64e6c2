"""RU: Утилиты настройки логирования.

EN: Logging setup utilities.
"""

from __future__ import annotations

import logging
from typing import Final

import coloredlogs

DEFAULT_LOGGER_NAME: Final = "call_qc"
DEFAULT_FORMAT: Final = "%(asctime)s %(levelname)s %(message)s"


def resolve_level(*, verbose: bool = False, quiet: bool = False) -> int:
    """RU: Уровень логирования по флагам CLI (quiet важнее verbose).

    EN: Map CLI flags to a logging level (quiet wins over verbose).
    """
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.INFO


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """RU: Настраивает логгер пакета c учётом флагов.

    EN: Configure the package logger according to verbosity flags.
    """
    level = resolve_level(verbose=verbose, quiet=quiet)

    logger = logging.getLogger(DEFAULT_LOGGER_NAME)
    logger.setLevel(level)

    # RU: Повторный вызов меняет только уровень, handlers не дублируются.
    # EN: Repeated calls only adjust the level; handlers are installed once.
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    coloredlogs.install(level=level, logger=logger, fmt=DEFAULT_FORMAT)
    return logger
