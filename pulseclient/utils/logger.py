# Logger - Centralized Logging System
# Component loggers plus the session log used for protocol traffic

"""
Logger Module

Responsibilities:
- Setup component loggers (console + optional rotating file)
- Prevent duplicate handler registration per logger name
- Provide the SessionLog collaborator for general/sent/received/error lines

Session log line format:
    <marker> <text>
    -  general message
    >  literal frame sent to the server
    <  literal data received from the server
    !  error
"""

import logging
import sys
import atexit
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

# Registry of loggers already configured by setup_logger
_configured_loggers = {}

def setup_logger(
    name: str = "pulseclient",
    level: str = "INFO",
    log_file: str = None,
    console: bool = True
):
    """
    Setup logger with console and file handlers

    Returns the existing logger when the name was configured before, so
    repeated calls never stack duplicate handlers.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        console: Add the stdout handler

    Returns:
        Configured logger instance (existing or new)
    """
    if name in _configured_loggers:
        return _configured_loggers[name]

    logger = logging.getLogger(name)

    if logger.handlers:
        _configured_loggers[name] = logger
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(logging.INFO)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File gets all levels
        logger.addHandler(file_handler)

    if not logger.handlers:
        # Silent logger: neither console nor file
        logger.addHandler(logging.NullHandler())

    def cleanup_handlers():
        """Close all handlers on interpreter exit."""
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    atexit.register(cleanup_handlers)

    _configured_loggers[name] = logger

    return logger


class SessionLog:
    """
    Protocol traffic log handed to the ConnectionManager.

    Wraps one logger from setup_logger without a console handler, so
    session lines never interrupt the command prompt. Every line lands in
    the session file when one is configured; without a file the session
    log is silent. A handler that fails to write reports through logging's
    own stderr fallback and never raises into the caller.
    """

    GENERAL = "-"
    SENT = ">"
    RECEIVED = "<"
    ERROR = "!"

    def __init__(
        self,
        name: str = "SessionLog",
        level: str = "DEBUG",
        log_file: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize session log

        Args:
            name: Logger name
            level: Log level for the underlying logger
            log_file: Optional path of the append-only session file
            logger: Pre-built logger to use instead of setup_logger
        """
        self.logger = logger or setup_logger(name, level, log_file, console=False)

    def msg(self, text: str):
        """Log a general message"""
        self.logger.info(f"{self.GENERAL} {text}")

    def sent(self, text: str):
        """Log a literal frame sent to the server"""
        self.logger.debug(f"{self.SENT} {text}")

    def received(self, data):
        """Log literal data received from the server"""
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8", errors="replace")
        self.logger.debug(f"{self.RECEIVED} {data}")

    def error(self, text: str):
        """Log an error"""
        self.logger.error(f"{self.ERROR} {text}")
