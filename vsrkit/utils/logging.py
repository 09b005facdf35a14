"""Logging configuration for vsrkit.

Console records go through rich on stderr so they never mix with command
output printed to stdout. The ``vsrkit.output`` logger carries echoed vsr
invocations and is only shown in verbose mode.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "vsrkit"
OUTPUT_LOGGER = "vsrkit.output"

CONSOLE_FORMAT = "%(message)s"
CONSOLE_DATE_FORMAT = "[%X]"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False,
) -> logging.Logger:
    """Configure the ``vsrkit`` logger hierarchy.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        level: Console level when not verbose.
        log_file: Also write DEBUG and above to this file.
        verbose: Log at DEBUG and show the echoed vsr command lines.

    Returns:
        The ``vsrkit`` root logger.
    """
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if log_file else level)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=verbose,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        logger.addHandler(_file_handler(log_file))

    # Echoed command lines are noise unless asked for
    logging.getLogger(OUTPUT_LOGGER).setLevel(logging.INFO if verbose else logging.WARNING)

    return logger


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


class LogCapture(logging.Handler):
    """Collect records from one logger while the context is active.

    Example::

        with LogCapture("vsrkit.vsr.runner") as capture:
            ...
        assert capture.has_message("> vsr status")
    """

    def __init__(self, logger_name: str = ROOT_LOGGER, level: int = logging.DEBUG):
        super().__init__(level)
        self.logger_name = logger_name
        self.records: list[logging.LogRecord] = []
        self._previous_level = logging.NOTSET

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def __enter__(self) -> "LogCapture":
        logger = logging.getLogger(self.logger_name)
        self._previous_level = logger.level
        logger.setLevel(self.level)
        logger.addHandler(self)
        return self

    def __exit__(self, *args) -> None:
        logger = logging.getLogger(self.logger_name)
        logger.removeHandler(self)
        logger.setLevel(self._previous_level)

    @property
    def messages(self) -> list[str]:
        return [record.getMessage() for record in self.records]

    def has_message(self, substring: str) -> bool:
        """Return True if any captured message contains substring."""
        return any(substring in message for message in self.messages)
