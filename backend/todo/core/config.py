"""Application configuration management.

Configuration is read once at process start and is immutable afterwards.
Changing a module binding requires a restart.

Sources, lowest precedence first:
- a JSON document named by ``MODULES_CONFIG_FILE`` holding
  ``{"modules": {"Tasks": {"enabled": true, "serviceMode": "Http", ...}}}``
- a ``.env`` file (values already present in the process environment win)
- process environment variables; the module tree is spelled
  ``MODULES__<NAME>__<KEY>`` and ``MODULES__<NAME>__FEATURES__<FLAG>``

Module keys are matched without regard to case, underscores or dashes, so
``serviceMode``, ``service_mode`` and ``SERVICE_MODE`` are the same key.

Architecture:
- EnvironmentLoader: environment variable loading with type conversion
- ModuleConfiguration: validated, frozen per-module binding settings
- Settings: main configuration object
"""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from todo.core.enums import (
    Environment,
    LogFormat,
    LogLevel,
    MessagingSemantics,
    ServiceMode,
)
from todo.core.errors import ConfigurationError

MODULES_ENV_PREFIX = "MODULES__"
FEATURES_KEY = "features"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def parse_bool(value: Any, field_name: str) -> bool:
    """Convert a configured value into a bool."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"{field_name} must be a boolean, got {value!r}", config_key=field_name
    )


def validate_url(value: str, field_name: str) -> str:
    """Require an absolute http(s) URL."""
    text = str(value).strip()
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"{field_name} must be an absolute http(s) URL, got {value!r}",
            config_key=field_name,
        )
    return text


# =====================================================================================
# ENVIRONMENT LOADER
# =====================================================================================


class EnvironmentLoader:
    """
    Environment variable loader with type conversion and validation.

    Loads an optional ``.env`` file into a private view of the environment;
    variables already set in ``environ`` take precedence over the file.
    """

    def __init__(self, env_file: str | None = ".env", environ: Mapping[str, str] | None = None):
        """
        Initialize environment loader.

        Args:
            env_file: Optional environment file to load
            environ: Environment to read (defaults to ``os.environ``)
        """
        self.env_file = env_file
        self._environ: dict[str, str] = dict(os.environ if environ is None else environ)
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load environment variables from file if it exists."""
        if not self.env_file or not os.path.exists(self.env_file):
            return

        try:
            with open(self.env_file, encoding="utf-8") as f:
                for raw_line in f:
                    line = raw_line.strip()

                    if not line or line.startswith("#") or "=" not in line:
                        continue

                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()

                    if (value.startswith('"') and value.endswith('"')) or (
                        value.startswith("'") and value.endswith("'")
                    ):
                        value = value[1:-1]

                    self._environ.setdefault(key, value)

        except OSError as e:
            raise ConfigurationError(
                f"Failed to load environment file {self.env_file}: {e}"
            ) from e

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self._environ.get(key)
        if value is None or value.strip() == "":
            return default
        return value.strip()

    def get_boolean(self, key: str, default: bool = False) -> bool:
        value = self._environ.get(key)
        if value is None or value.strip() == "":
            return default
        return parse_bool(value, key)

    def get_enum(self, key: str, enum_class: type, default: Any) -> Any:
        """Get enum member by value (case-insensitive)."""
        value = self.get_string(key)
        if value is None:
            return default
        for member in enum_class:
            member_value = member.value if isinstance(member.value, str) else member.name
            if member_value.lower() == value.lower() or member.name.lower() == value.lower():
                return member
        allowed = ", ".join(m.name.lower() for m in enum_class)
        raise ConfigurationError(
            f"{key} must be one of: {allowed}, got {value!r}", config_key=key
        )

    def get_tree(self, prefix: str) -> dict[str, Any]:
        """
        Build a nested mapping from ``PREFIX<a>__<b>__<c>=value`` variables.

        Path segments are lower-cased; leaves stay strings.
        """
        tree: dict[str, Any] = {}
        for name, value in self._environ.items():
            if not name.upper().startswith(prefix):
                continue
            path = [part.lower() for part in name[len(prefix):].split("__") if part]
            if not path:
                continue
            node = tree
            for part in path[:-1]:
                child = node.setdefault(part, {})
                if not isinstance(child, dict):
                    raise ConfigurationError(
                        f"Environment variable {name} conflicts with a scalar value",
                        config_key=name,
                    )
                node = child
            node[path[-1]] = value
        return tree


# =====================================================================================
# MODULE CONFIGURATION
# =====================================================================================


@dataclass(frozen=True)
class ModuleConfiguration:
    """
    Binding settings for one bounded context.

    Invariants (checked on construction):
    - ``service_mode`` HTTP requires an absolute http(s) ``endpoint``
    - timeouts are positive, retry counts are non-negative

    ``serve_requests`` makes this process answer the module's message-bus
    requests with its in-process handlers.
    """

    name: str
    enabled: bool = True
    service_mode: ServiceMode = ServiceMode.IN_PROCESS
    endpoint: str | None = None
    features: Mapping[str, bool | str] = field(default_factory=dict)
    messaging: MessagingSemantics = MessagingSemantics.REQUEST_REPLY
    timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.2
    health_path: str = "/health"
    serve_requests: bool = False

    def __post_init__(self):
        object.__setattr__(self, "name", self.name.lower())
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))

        if self.service_mode == ServiceMode.HTTP:
            if not self.endpoint:
                raise ConfigurationError(
                    f"Module '{self.name}' uses service mode http but has no endpoint",
                    config_key=f"modules.{self.name}.endpoint",
                )
            object.__setattr__(
                self,
                "endpoint",
                validate_url(self.endpoint, f"modules.{self.name}.endpoint"),
            )

        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"Module '{self.name}' timeout must be positive",
                config_key=f"modules.{self.name}.timeout_seconds",
            )
        if self.retry_attempts < 0:
            raise ConfigurationError(
                f"Module '{self.name}' retry attempts cannot be negative",
                config_key=f"modules.{self.name}.retry_attempts",
            )
        if self.retry_backoff_seconds < 0:
            raise ConfigurationError(
                f"Module '{self.name}' retry backoff cannot be negative",
                config_key=f"modules.{self.name}.retry_backoff_seconds",
            )
        if not self.health_path.startswith("/"):
            object.__setattr__(self, "health_path", "/" + self.health_path)

    def feature(self, name: str, default: bool | str | None = None) -> bool | str | None:
        """Look up a feature flag."""
        return self.features.get(name, default)

    @classmethod
    def from_mapping(cls, name: str, raw: Mapping[str, Any]) -> "ModuleConfiguration":
        """
        Build a configuration from one ``modules.<name>`` section.

        Raises:
            ConfigurationError: On unknown keys, unknown modes or broken invariants
        """
        if not isinstance(raw, Mapping):
            raise ConfigurationError(
                f"Configuration for module '{name}' must be a mapping",
                config_key=f"modules.{name}",
            )

        kwargs: dict[str, Any] = {"name": name}
        for key, value in raw.items():
            normalized = _normalize_key(key)
            config_key = f"modules.{name}.{key}"
            if normalized == "enabled":
                kwargs["enabled"] = parse_bool(value, config_key)
            elif normalized in ("servicemode", "mode"):
                try:
                    kwargs["service_mode"] = ServiceMode.parse(str(value))
                except ValueError as e:
                    raise ConfigurationError(str(e), config_key=config_key) from e
            elif normalized == "endpoint":
                kwargs["endpoint"] = str(value) if value not in (None, "") else None
            elif normalized == FEATURES_KEY:
                kwargs["features"] = _parse_features(value, config_key)
            elif normalized == "messaging":
                try:
                    kwargs["messaging"] = MessagingSemantics.parse(str(value))
                except ValueError as e:
                    raise ConfigurationError(str(e), config_key=config_key) from e
            elif normalized in ("timeoutseconds", "timeout"):
                kwargs["timeout_seconds"] = _parse_number(value, float, config_key)
            elif normalized == "retryattempts":
                kwargs["retry_attempts"] = _parse_number(value, int, config_key)
            elif normalized == "retrybackoffseconds":
                kwargs["retry_backoff_seconds"] = _parse_number(value, float, config_key)
            elif normalized == "healthpath":
                kwargs["health_path"] = str(value)
            elif normalized == "serverequests":
                kwargs["serve_requests"] = parse_bool(value, config_key)
            else:
                raise ConfigurationError(
                    f"Unknown module setting '{key}'", config_key=config_key
                )

        return cls(**kwargs)


def _parse_features(raw: Any, config_key: str) -> dict[str, bool | str]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("features must be a mapping", config_key=config_key)
    features: dict[str, bool | str] = {}
    for flag, value in raw.items():
        if isinstance(value, bool):
            features[flag] = value
            continue
        text = str(value).strip()
        if text.lower() in _TRUE_VALUES | _FALSE_VALUES and not text.isdigit():
            features[flag] = text.lower() in _TRUE_VALUES
        else:
            features[flag] = text
    return features


def _parse_number(value: Any, kind: type, config_key: str) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{config_key} must be a number, got {value!r}", config_key=config_key
        ) from e


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        existing_key = next(
            (k for k in merged if _normalize_key(k) == _normalize_key(key)), key
        )
        current = merged.get(existing_key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[existing_key] = _deep_merge(dict(current), value)
        else:
            merged[existing_key] = value
    return merged


def load_module_configurations(
    raw: Mapping[str, Any],
) -> dict[str, ModuleConfiguration]:
    """
    Validate a ``modules`` mapping.

    Module names are case-insensitive; ``Tasks`` and ``tasks`` are the same
    module and may not both be present.
    """
    modules: dict[str, ModuleConfiguration] = {}
    for name, section in raw.items():
        config = ModuleConfiguration.from_mapping(name, section)
        if config.name in modules:
            raise ConfigurationError(
                f"Module '{name}' is configured more than once",
                config_key=f"modules.{name}",
            )
        modules[config.name] = config
    return modules


def read_modules_file(path: str) -> dict[str, Any]:
    """Read the ``modules`` section of a JSON configuration document."""
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read module configuration file {path}: {e}",
            config_key="MODULES_CONFIG_FILE",
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Module configuration file {path} is not valid JSON: {e}",
            config_key="MODULES_CONFIG_FILE",
        ) from e

    if not isinstance(document, Mapping):
        raise ConfigurationError(
            f"Module configuration file {path} must hold a JSON object",
            config_key="MODULES_CONFIG_FILE",
        )
    for key, value in document.items():
        if _normalize_key(key) == "modules":
            return dict(value)
    return {}


# =====================================================================================
# SETTINGS
# =====================================================================================


class Settings:
    """
    Main application settings.

    Usage Example:
        settings = Settings()
        tasks = settings.module("tasks")
        if tasks.enabled and tasks.service_mode is ServiceMode.HTTP:
            ...
    """

    def __init__(
        self,
        env_file: str | None = ".env",
        environ: Mapping[str, str] | None = None,
        modules: Mapping[str, Any] | None = None,
    ):
        """
        Initialize settings.

        Args:
            env_file: Environment file to load variables from
            environ: Environment to read instead of ``os.environ``
            modules: Explicit ``modules`` mapping; replaces the file and
                environment module tree when given
        """
        self.env_loader = EnvironmentLoader(env_file, environ)

        self._load_application_config()
        self._load_messaging_config()
        self._load_module_config(modules)

    def _load_application_config(self) -> None:
        self.app_name = self.env_loader.get_string("APP_NAME", "Todo WebHost")
        self.app_version = self.env_loader.get_string("APP_VERSION", "0.1.0")
        self.environment = self.env_loader.get_enum(
            "ENVIRONMENT", Environment, Environment.DEVELOPMENT
        )
        self.debug = self.env_loader.get_boolean("DEBUG", False)
        self.log_level = self.env_loader.get_enum("LOG_LEVEL", LogLevel, LogLevel.INFO)
        self.log_format = self.env_loader.get_enum(
            "LOG_FORMAT",
            LogFormat,
            LogFormat.CONSOLE
            if self.environment == Environment.DEVELOPMENT
            else LogFormat.JSON,
        )

    def _load_messaging_config(self) -> None:
        redis_url = self.env_loader.get_string("REDIS_URL")
        if redis_url and not redis_url.startswith(("redis://", "rediss://")):
            raise ConfigurationError(
                "REDIS_URL must start with 'redis://' or 'rediss://'",
                config_key="REDIS_URL",
            )
        self.redis_url = redis_url

    def _load_module_config(self, modules: Mapping[str, Any] | None) -> None:
        if modules is None:
            raw: dict[str, Any] = {}
            self.modules_config_file = self.env_loader.get_string("MODULES_CONFIG_FILE")
            if self.modules_config_file:
                raw = read_modules_file(self.modules_config_file)
            raw = _deep_merge(raw, self.env_loader.get_tree(MODULES_ENV_PREFIX))
        else:
            self.modules_config_file = None
            raw = dict(modules)

        self._modules = MappingProxyType(load_module_configurations(raw))

    @property
    def modules(self) -> Mapping[str, ModuleConfiguration]:
        """All configured modules keyed by lower-case name."""
        return self._modules

    def module(self, name: str) -> ModuleConfiguration:
        """
        Configuration for ``name``.

        A module with no configuration section runs enabled and in-process.
        """
        return self._modules.get(name.lower()) or ModuleConfiguration(name=name)

    def to_dict(self) -> dict[str, Any]:
        """Non-secret settings, for diagnostics."""
        return {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "environment": self.environment.value,
            "log_level": self.log_level.level_name,
            "message_bus": "redis" if self.redis_url else "in_memory",
            "modules": {
                name: {
                    "enabled": config.enabled,
                    "service_mode": config.service_mode.value,
                    "endpoint": config.endpoint,
                }
                for name, config in self._modules.items()
            },
        }


@lru_cache
def get_settings(env_file: str = ".env") -> Settings:
    """Get the cached process-wide settings instance."""
    return Settings(env_file)


__all__ = [
    "EnvironmentLoader",
    "ModuleConfiguration",
    "Settings",
    "get_settings",
    "load_module_configurations",
    "parse_bool",
    "read_modules_file",
    "validate_url",
]
