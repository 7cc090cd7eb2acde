"""Logging setup: rich console output plus an optional detailed log file."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    level: str | None = None,
) -> None:
    """Configure the root ``podcasts`` logger.

    Console messages go to stderr at WARNING (DEBUG with ``verbose``, or
    ``level`` when given). The log file, if any, always receives DEBUG.

    Args:
        verbose: Show debug output on the console
        log_file: Optional file for the full diagnostic log
        level: Console level name overriding the default
    """
    logger = logging.getLogger("podcasts")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_level = logging.DEBUG if verbose else getattr(logging, (level or "WARNING").upper())
    console = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
    )
    console.setLevel(console_level)
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
