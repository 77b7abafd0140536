"""
Logging setup for sysmon.

The terminal belongs to the TUI, so console records go to the Textual
devtools console (``textual console``) instead of stdout.
"""

import logging
from pathlib import Path

from textual.logging import TextualHandler

LOGGER_NAME = "sysmon"


def configure_logging(level: int | str = logging.WARNING, log_file: str | Path | None = None) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        level: Logging level name or number.
        log_file: Optional file path for a detailed log.

    Returns:
        The configured ``sysmon`` logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = TextualHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt="[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
