"""
Structured logging for certreloader.

This module provides:
- Structured logging with JSON or console output
- Reload attempt IDs attached to every record emitted during an attempt
- Service metadata and structured exception info on each record
"""

import contextvars
import logging
import logging.config
import sys
import time
import traceback
import uuid
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

from ..config import LogLevel, ObservabilityConfig
from ..exceptions import ConfigurationError

attempt_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "reload_attempt_id", default=None
)


class AttemptIDProcessor:
    """Processor to add the current reload attempt ID to log records."""

    def __call__(self, logger, method_name, event_dict):
        attempt_id = attempt_id_var.get()
        if attempt_id:
            event_dict["attempt_id"] = attempt_id
        return event_dict


class TimestampProcessor:
    """Processor to add timestamps to log records."""

    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = time.time()
        return event_dict


class ServiceInfoProcessor:
    """Processor to add service information to log records."""

    def __init__(self, service_name: str, service_version: str):
        self.service_name = service_name
        self.service_version = service_version

    def __call__(self, logger, method_name, event_dict):
        event_dict["service_name"] = self.service_name
        event_dict["service_version"] = self.service_version
        return event_dict


class ExceptionProcessor:
    """Processor to format exceptions in log records."""

    def __call__(self, logger, method_name, event_dict):
        exc_info = event_dict.pop("exc_info", None)
        if exc_info:
            if exc_info is True:
                exc_info = sys.exc_info()
            elif isinstance(exc_info, BaseException):
                exc_info = (type(exc_info), exc_info, exc_info.__traceback__)

            if exc_info[0] is not None:
                event_dict["exception"] = {
                    "type": exc_info[0].__name__,
                    "message": str(exc_info[1]),
                    "traceback": "".join(traceback.format_tb(exc_info[2]))
                    if exc_info[2]
                    else "",
                }
        return event_dict


class LogConfig:
    """Configuration class for logging setup."""

    def __init__(
        self,
        service_name: str = "certreloader",
        service_version: Optional[str] = None,
        level: LogLevel = LogLevel.INFO,
        format_type: str = "json",
        log_file: Optional[str] = None,
    ):
        if service_version is None:
            from .. import __version__

            service_version = __version__
        self.service_name = service_name
        self.service_version = service_version
        self.level = level
        self.format_type = format_type
        self.log_file = log_file

    @classmethod
    def from_observability(cls, config: ObservabilityConfig) -> "LogConfig":
        return cls(
            service_name=config.service_name,
            level=config.log_level,
            format_type=config.log_format,
            log_file=config.log_file,
        )


def setup_logging(config: LogConfig) -> None:
    """
    Setup structured logging with the given configuration.

    Args:
        config: LogConfig instance with logging configuration
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        TimestampProcessor(),
        ServiceInfoProcessor(config.service_name, config.service_version),
        AttemptIDProcessor(),
        ExceptionProcessor(),
    ]

    if config.format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    formatter = "json" if config.format_type == "json" else "standard"
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            },
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.level.value,
                "formatter": formatter,
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": config.level.value,
                "propagate": False,
            },
        },
    }

    if config.log_file:
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": config.level.value,
            "formatter": formatter,
            "filename": config.log_file,
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
        }
        logging_config["loggers"][""]["handlers"].append("file")

    try:
        logging.config.dictConfig(logging_config)
    except (ValueError, TypeError, AttributeError, ImportError) as e:
        raise ConfigurationError(f"Failed to configure logging: {e}")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, typically __name__
    """
    return structlog.get_logger(name)


def get_attempt_id() -> Optional[str]:
    """Get the ID of the reload attempt running in this context."""
    return attempt_id_var.get()


class ReloadAttemptContext:
    """Context manager that tags log records with a fresh reload attempt ID."""

    def __init__(self, attempt_id: Optional[str] = None):
        self.attempt_id = attempt_id or uuid.uuid4().hex[:12]
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "ReloadAttemptContext":
        self._token = attempt_id_var.set(self.attempt_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            attempt_id_var.reset(self._token)
            self._token = None
