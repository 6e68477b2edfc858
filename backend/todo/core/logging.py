# ruff: noqa: A005
"""Structured logging configuration.

Thin layer over structlog: ``configure_logging`` installs the processor chain,
``get_logger`` hands out loggers that accept structured keyword fields, and
``log_context`` binds request-scoped values through structlog contextvars.

structlog loggers are not cached on first use, so module-level loggers created
at import time follow a later ``configure_logging`` call.

Usage Example:
    configure_logging(LogConfig(level=LogLevel.DEBUG, format=LogFormat.CONSOLE))
    logger = get_logger(__name__)
    logger.info("Module bound", module="tasks", service_mode="http")
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

from todo.core.enums import Environment, LogFormat, LogLevel
from todo.core.errors import ConfigurationError


@dataclass
class LogConfig:
    """Logging configuration."""

    level: LogLevel = field(default=LogLevel.INFO)
    format: LogFormat = field(default=LogFormat.JSON)
    environment: Environment = field(default=Environment.DEVELOPMENT)
    enable_timestamps: bool = field(default=True)
    enable_caller_info: bool = field(default=False)
    max_message_length: int = field(default=10000)

    def __post_init__(self):
        if self.max_message_length < 1000:
            raise ConfigurationError(
                "Maximum message length must be at least 1000 characters"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "level": self.level.level_name,
            "format": self.format.value,
            "environment": self.environment.value,
            "enable_timestamps": self.enable_timestamps,
            "enable_caller_info": self.enable_caller_info,
        }


class StructuredLogger:
    """
    Logger wrapper that forwards structured fields to structlog.

    Messages longer than ``max_message_length`` are truncated.
    """

    def __init__(self, name: str, config: LogConfig):
        self.name = name
        self.config = config
        self._logger = structlog.get_logger(name)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log error with the active exception's traceback."""
        kwargs["exc_info"] = True
        self._log(LogLevel.ERROR, message, **kwargs)

    def _log(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        # Level filtering is done by structlog.stdlib.filter_by_level.
        if len(message) > self.config.max_message_length:
            message = message[: self.config.max_message_length] + "...[truncated]"

        getattr(self._logger, level.level_name.lower())(message, **kwargs)


class LoggerFactory:
    """Creates and caches structured loggers for one configuration."""

    def __init__(self, config: LogConfig):
        self.config = config
        self._loggers: dict[str, StructuredLogger] = {}
        self._configured = False

    def configure_logging(self) -> None:
        """Install the structlog processor chain and the stdlib root handler."""
        if self._configured:
            return

        processors: list[Any] = [
            merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
        ]

        if self.config.enable_timestamps:
            processors.append(structlog.processors.TimeStamper(fmt="iso"))

        if self.config.enable_caller_info:
            processors.append(
                structlog.processors.CallsiteParameterAdder(
                    parameters=[
                        structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO,
                        structlog.processors.CallsiteParameter.FUNC_NAME,
                    ]
                )
            )

        processors.extend(
            [
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
            ]
        )

        if self.config.format == LogFormat.JSON:
            processors.append(structlog.processors.JSONRenderer())
        elif self.config.format == LogFormat.CONSOLE:
            processors.append(structlog.dev.ConsoleRenderer(colors=True))
        else:
            processors.append(structlog.processors.KeyValueRenderer())

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=self.config.level.to_logging_level(),
        )
        logging.getLogger().setLevel(self.config.level.to_logging_level())

        if self.config.environment == Environment.PRODUCTION:
            logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
            logging.getLogger("httpx").setLevel(logging.WARNING)

        self._configured = True

    def get_logger(self, name: str) -> StructuredLogger:
        """Get or create structured logger."""
        if not self._configured:
            self.configure_logging()

        if name not in self._loggers:
            self._loggers[name] = StructuredLogger(name, self.config)

        return self._loggers[name]


# Global logger factory (initialized by the application entry point)
_logger_factory: LoggerFactory | None = None


def configure_logging(config: LogConfig | None = None) -> None:
    """
    Configure global logging system.

    Args:
        config: Logging configuration (uses defaults if not provided)
    """
    global _logger_factory  # noqa: PLW0603 - Required to initialize global factory

    _logger_factory = LoggerFactory(config or LogConfig())
    _logger_factory.configure_logging()


def get_logger(name: str) -> StructuredLogger:
    """
    Get structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    if _logger_factory is None:
        configure_logging()

    return _logger_factory.get_logger(name)


def log_context(**kwargs: Any) -> None:
    """Bind values to every log line emitted by the current task."""
    bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop values bound with ``log_context``."""
    clear_contextvars()


__all__ = [
    "LogConfig",
    "LoggerFactory",
    "StructuredLogger",
    "clear_context",
    "configure_logging",
    "get_logger",
    "log_context",
]
