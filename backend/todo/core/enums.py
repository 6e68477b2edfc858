"""Core enumerations shared across the backend."""

from enum import Enum


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "dev"
    TESTING = "test"
    STAGING = "staging"
    PRODUCTION = "prod"

    @property
    def is_production(self) -> bool:
        """Check if environment is production."""
        return self == Environment.PRODUCTION

    @property
    def allows_debug_logging(self) -> bool:
        """Check if environment allows debug logging."""
        return self in (Environment.DEVELOPMENT, Environment.TESTING)


class LogLevel(Enum):
    """Logging levels with priority mapping."""

    DEBUG = ("DEBUG", 10)
    INFO = ("INFO", 20)
    WARNING = ("WARNING", 30)
    ERROR = ("ERROR", 40)
    CRITICAL = ("CRITICAL", 50)

    def __init__(self, level_name: str, priority: int):
        self.level_name = level_name
        self.priority = priority

    @classmethod
    def from_string(cls, level_str: str) -> "LogLevel":
        """Create LogLevel from string representation."""
        level_str = level_str.upper()
        for level in cls:
            if level.level_name == level_str:
                return level
        raise ValueError(f"Invalid log level: {level_str}")

    def to_logging_level(self) -> int:
        """Convert to standard logging module level."""
        return self.priority


class LogFormat(Enum):
    """Log output formats."""

    JSON = "json"
    CONSOLE = "console"
    PLAIN = "plain"


class ServiceMode(Enum):
    """Transport used to reach a module's capability contract."""

    IN_PROCESS = "in_process"
    HTTP = "http"
    MESSAGE_BUS = "message_bus"

    @classmethod
    def parse(cls, raw: str) -> "ServiceMode":
        """
        Parse a configured mode string.

        Accepts ``InProcess``, ``in_process``, ``in-process`` and so on;
        matching ignores case, underscores and dashes.

        Raises:
            ValueError: If the string names no known mode
        """
        wanted = raw.replace("_", "").replace("-", "").lower()
        for mode in cls:
            if mode.value.replace("_", "") == wanted:
                return mode
        raise ValueError(f"Unknown service mode: {raw!r}")

    @property
    def is_remote(self) -> bool:
        """Check if calls leave the current process."""
        return self != ServiceMode.IN_PROCESS


class MessagingSemantics(Enum):
    """Delivery semantics of the message-bus transport."""

    REQUEST_REPLY = "request_reply"
    FIRE_AND_FORGET = "fire_and_forget"

    @classmethod
    def parse(cls, raw: str) -> "MessagingSemantics":
        """Parse a configured semantics string (case and separator insensitive)."""
        wanted = raw.replace("_", "").replace("-", "").lower()
        for semantics in cls:
            if semantics.value.replace("_", "") == wanted:
                return semantics
        raise ValueError(f"Unknown messaging semantics: {raw!r}")


class HealthStatus(Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"
