"""
Strategy selector.

Turns one module's configuration into the strategy that services its
contract. Runs once per module at startup; invalid configuration fails the
startup with ``ConfigurationError``. Each call builds a fresh, independent
strategy, so selecting twice with the same configuration gives two
equivalent bindings that share nothing mutable.
"""

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from todo.core.config import ModuleConfiguration
from todo.core.dispatch.base import CapabilityStrategy
from todo.core.dispatch.http import HttpStrategy
from todo.core.dispatch.in_process import InProcessStrategy
from todo.core.dispatch.message_bus import MessageBusStrategy
from todo.core.enums import ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.events.bus import MessageBus
from todo.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StrategyDependencies:
    """
    What the selector may need to build a strategy.

    ``in_process`` builds the module's local strategy; it is supplied by the
    module registrar, which owns the module's handlers. ``http_transport``
    lets tests swap the network for ``httpx.MockTransport``.
    """

    in_process: Callable[[], InProcessStrategy] | None = None
    message_bus: MessageBus | None = None
    http_transport: httpx.AsyncBaseTransport | None = None


def _build_in_process(config: ModuleConfiguration, deps: StrategyDependencies) -> CapabilityStrategy:
    if deps.in_process is None:
        raise ConfigurationError(
            f"Module '{config.name}' has no in-process handlers in this host",
            config_key=f"modules.{config.name}.service_mode",
        )
    return deps.in_process()


def _build_http(config: ModuleConfiguration, deps: StrategyDependencies) -> CapabilityStrategy:
    return HttpStrategy(config, transport=deps.http_transport)


def _build_message_bus(config: ModuleConfiguration, deps: StrategyDependencies) -> CapabilityStrategy:
    return MessageBusStrategy(config, deps.message_bus)


_BUILDERS: dict[
    ServiceMode, Callable[[ModuleConfiguration, StrategyDependencies], CapabilityStrategy]
] = {
    ServiceMode.IN_PROCESS: _build_in_process,
    ServiceMode.HTTP: _build_http,
    ServiceMode.MESSAGE_BUS: _build_message_bus,
}


def select_strategy(
    config: ModuleConfiguration, deps: StrategyDependencies
) -> CapabilityStrategy:
    """
    Build the strategy for ``config.service_mode``.

    Raises:
        ConfigurationError: If the module is disabled, the mode is unknown,
            HTTP has no valid endpoint or MESSAGE_BUS has no bus
    """
    if not config.enabled:
        raise ConfigurationError(
            f"Module '{config.name}' is disabled; no strategy can be selected",
            config_key=f"modules.{config.name}.enabled",
        )

    builder = _BUILDERS.get(config.service_mode)
    if builder is None:
        raise ConfigurationError(
            f"Unsupported service mode {config.service_mode!r} for module '{config.name}'",
            config_key=f"modules.{config.name}.service_mode",
        )

    strategy = builder(config, deps)
    logger.info(
        "Dispatch strategy selected",
        module=config.name,
        service_mode=config.service_mode.value,
        strategy=type(strategy).__name__,
        endpoint=config.endpoint,
        messaging=config.messaging.value,
    )
    return strategy


__all__ = ["StrategyDependencies", "select_strategy"]
