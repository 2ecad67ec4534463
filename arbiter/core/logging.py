"""
Centralized Logging Module for Arbiter

Provides unified logging configuration with:

Features:
    - Structured logging (structlog)
    - JSON output for production environments (orjson)
    - Console output for development

Usage:
    from arbiter.core.logging import get_logger, configure_logging

    # Configure global logging
    configure_logging(level=logging.INFO, json_format=False)

    # Get logger
    logger = get_logger("arbiter.router")
    logger.info("Routed request", provider="alpha", score=81.2)

Environment Variables:
    ARBITER_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ARBITER_LOG_FORMAT: Set format (console, json)
"""

import logging
import os
import sys
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import orjson
import structlog

# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "console"
MAX_CACHE_SIZE = 128
ROOT_LOGGER_NAME = "arbiter"

_RESERVED_RECORD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    }
)


def _env_level() -> int:
    return getattr(logging, os.getenv("ARBITER_LOG_LEVEL", "INFO").upper(), DEFAULT_LOG_LEVEL)


# =============================================================================
# Logger Class
# =============================================================================


class ArbiterLogger:
    """
    Logger with structured keyword data.

    Wraps a standard ``logging.Logger`` and configures structlog so that
    ``get_struct_logger`` consumers share the same level and renderer.

    Attributes:
        name: Logger name
        level: Logging level
        json_format: Whether JSON formatting is enabled

    Usage:
        >>> logger = get_logger("arbiter.fallback")
        >>> logger.warning("Provider skipped", provider="beta", reason="circuit_open")
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        json_format: bool = False,
    ) -> None:
        self.name = name
        self.level = level
        self.json_format = (
            json_format or os.getenv("ARBITER_LOG_FORMAT", DEFAULT_LOG_FORMAT) == "json"
        )
        self._logger = logging.getLogger(name)
        self._setup_logger()
        self._setup_structlog()

    def _setup_logger(self) -> None:
        if self._logger.handlers:
            return

        handler = logging.StreamHandler(sys.stdout)

        formatter: logging.Formatter
        if self.json_format:
            formatter = JSONFormatter()
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        handler.setFormatter(formatter)
        self._logger.addHandler(handler)
        self._logger.setLevel(self.level)

    def _setup_structlog(self) -> None:
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.dev.set_exc_info,
                structlog.processors.TimeStamper(fmt="iso"),
                (
                    structlog.processors.JSONRenderer()
                    if self.json_format
                    else structlog.dev.ConsoleRenderer()
                ),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(self.level),
            logger_factory=structlog.PrintLoggerFactory(),
        )

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, extra=kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._logger.critical(message, extra=kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log with traceback; call from inside an except block"""
        self._logger.exception(message, extra=kwargs)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Example output:
        {
            "timestamp": "2026-02-17T10:30:00.000000+00:00",
            "level": "WARNING",
            "logger": "arbiter.fallback",
            "message": "Provider skipped",
            "extra": {"provider": "beta", "reason": "circuit_open"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_FIELDS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(log_data, default=str).decode()


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache(maxsize=MAX_CACHE_SIZE)
def get_logger(name: str, level: int | None = None) -> ArbiterLogger:
    """
    Get or create a structured logger instance.

    Args:
        name: Logger name (e.g. "arbiter.router")
        level: Optional log level override (default: from ARBITER_LOG_LEVEL env)

    Returns:
        Configured ArbiterLogger instance
    """
    json_format = os.getenv("ARBITER_LOG_FORMAT", DEFAULT_LOG_FORMAT) == "json"
    return ArbiterLogger(name, level or _env_level(), json_format)


def get_struct_logger(name: str) -> Any:
    """structlog bound logger for callers that prefer key/value events"""
    return structlog.get_logger(name)


def set_log_level(level: int) -> None:
    """Set level for every logger under the ``arbiter`` namespace"""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure Arbiter logging globally.

    Should be called once at application startup.

    Example:
        >>> configure_logging(level=logging.DEBUG)  # development
        >>> configure_logging(level=logging.INFO, json_format=True)  # production
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = (
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            if include_timestamp
            else "%(name)s - %(levelname)s - %(message)s"
        )
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Component loggers created earlier defer to the namespace root from now on
    prefix = f"{ROOT_LOGGER_NAME}."
    for name, existing in list(logging.root.manager.loggerDict.items()):
        if name.startswith(prefix) and isinstance(existing, logging.Logger):
            for stale in existing.handlers[:]:
                existing.removeHandler(stale)
            existing.setLevel(logging.NOTSET)
            existing.propagate = True

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.processors.JSONRenderer()
                if json_format
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
    )


def get_standard_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a standard Python logger with Arbiter formatting.

    Lightweight alternative to ArbiterLogger; used by the engine components.
    Loggers under ``arbiter.`` propagate to the namespace root configured by
    ``configure_logging``; a handler is only attached when none exists.

    Example:
        >>> logger = get_standard_logger("arbiter.health")
        >>> logger.info("Circuit opened for beta")
    """
    logger = logging.getLogger(name)
    configured = bool(logging.getLogger(ROOT_LOGGER_NAME).handlers)

    if not logger.handlers and not configured:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    if level is not None:
        logger.setLevel(level)
    elif not configured:
        logger.setLevel(_env_level())

    return logger


__all__ = [
    "get_logger",
    "get_struct_logger",
    "get_standard_logger",
    "set_log_level",
    "configure_logging",
    "ArbiterLogger",
    "JSONFormatter",
]
