"""
Logging configuration for the BI Portal access engine.

Console and rotating file logging configured from environment variables.
Every record carries the user and access session it was logged for, bound
per asyncio task through ``bind_log_context`` and rendered as
``user_id=... session_id=...`` (or ``-`` outside any session).
"""

import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Dict, Optional

import colorlog


_log_context: ContextVar[Optional[Dict[str, str]]] = ContextVar("bi_portal_log_context", default=None)


def bind_log_context(**values) -> None:
    """Attach values (user_id, session_id, ...) to records logged from the current task."""
    context = dict(_log_context.get() or {})
    context.update({key: str(value) for key, value in values.items() if value is not None})
    _log_context.set(context)


def get_log_context() -> Dict[str, str]:
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    _log_context.set(None)


class AccessContextFilter(logging.Filter):
    """Exposes the bound log context as ``%(context)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        if context:
            record.context = " ".join(f"{key}={value}" for key, value in context.items())
        else:
            record.context = "-"
        return True


class PortalLogger:
    """Centralized logger for the BI Portal application."""

    def __init__(self, name: str = "bi_portal"):
        """Initialize logger with the given name."""
        self.name = name
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self) -> None:
        """Setup logger with file and console handlers."""
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_dir = os.getenv("LOG_DIR", "./logs")
        debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"

        Path(log_dir).mkdir(parents=True, exist_ok=True)

        self.logger.setLevel(getattr(logging, log_level, logging.INFO))

        # Loggers are re-created per module; avoid stacking handlers
        self.logger.handlers.clear()

        self._setup_console_handler(debug_mode)
        self._setup_file_handler(log_dir, debug_mode)

        self.logger.propagate = False

    def _setup_console_handler(self, debug_mode: bool) -> None:
        """Setup colored console logging."""
        console_handler = colorlog.StreamHandler(sys.stdout)

        color_format = (
            "%(log_color)s%(asctime)s [%(levelname)8s] "
            "%(name)s.%(funcName)s:%(lineno)d [%(context)s] - %(message)s"
        )

        if not debug_mode:
            color_format = (
                "%(log_color)s%(asctime)s [%(levelname)8s] "
                "%(name)s [%(context)s] - %(message)s"
            )

        formatter = colorlog.ColoredFormatter(
            color_format,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )

        console_handler.setFormatter(formatter)
        console_handler.addFilter(AccessContextFilter())
        self.logger.addHandler(console_handler)

    def _setup_file_handler(self, log_dir: str, debug_mode: bool) -> None:
        """Setup file logging with rotation."""
        log_file = os.path.join(log_dir, "bi_portal.log")

        # 5MB per file, keep 5 files
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )

        file_format = (
            "%(asctime)s [%(levelname)8s] %(name)s.%(funcName)s:%(lineno)d - "
            "[%(context)s] %(message)s"
        )

        if not debug_mode:
            file_format = (
                "%(asctime)s [%(levelname)8s] %(name)s [%(context)s] - %(message)s"
            )

        formatter = logging.Formatter(
            file_format,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        file_handler.setFormatter(formatter)
        file_handler.addFilter(AccessContextFilter())
        self.logger.addHandler(file_handler)

    def get_logger(self) -> logging.Logger:
        """Get the configured logger instance."""
        return self.logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name. If None, uses the caller's module name.

    Returns:
        Configured logger instance.
    """
    if name is None:
        frame = sys._getframe(1)
        name = frame.f_globals.get('__name__', 'bi_portal')

    return PortalLogger(name).get_logger()


def setup_logging() -> None:
    """
    Setup application-wide logging configuration.

    This should be called once at application startup.
    """
    logger = PortalLogger("bi_portal").get_logger()
    logger.info("Logging system initialized")
    logger.debug(f"Log level: {logger.level}")
    logger.debug(f"Handlers: {[h.__class__.__name__ for h in logger.handlers]}")
