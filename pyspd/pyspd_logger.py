"""Default logging module for the PySPD clients.

This module provides a simplified interface to retrieve
a color-coded logger for the terminal. When the interactive
terminal is running, records are routed through a message sink
that prints them above the prompt and redraws the prompt.
"""

import logging
from typing import Protocol


class MessageSink(Protocol):
    """Anything that can show a message without losing the input line."""

    def show_message(self, message: str) -> None:
        """Prints a message above the prompt."""


class ColorFormatter(logging.Formatter):
    """Class defining the color coding of the logger."""
    COLORS = {
        logging.DEBUG: "\033[37m",   # white/gray
        logging.INFO: "\033[36m",    # cyan
        logging.WARNING: "\033[33m", # yellow/orange
        logging.ERROR: "\033[31m",   # red
        logging.CRITICAL: "\033[41m",# white on red bg
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.RESET)
        message = super().format(record)
        return f"{color}{message}{self.RESET}"


class MessageSinkHandler(logging.Handler):
    """Logging handler that forwards formatted records to a message sink."""

    def __init__(self, sink: MessageSink, level=logging.NOTSET) -> None:
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.sink.show_message(self.format(record))
        except (OSError, ValueError):
            self.handleError(record)


def setup_logging(
    level=logging.INFO,
    sink: MessageSink | None = None
) -> None:
    """Sets up the logger format.

    Args:
        level: Level of the root logger.
        sink: Optional terminal sink. If given, records are printed
          above the prompt instead of straight to stderr.
    """
    handler: logging.Handler
    if sink is None:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    else:
        handler = MessageSinkHandler(sink)
        fmt = "[%(levelname)s] %(message)s"
    handler.setFormatter(ColorFormatter(fmt))
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)


def get_pyspd_logger(name: str = 'PySPD', level=logging.INFO) -> logging.Logger:
    """Sets up and returns a logger instance for the PySPD client scripts."""
    setup_logging(level)
    return logging.getLogger(name)
