"""
Module registration.

Every bounded context ships one ``ModuleRegistrar``. At startup the
registrar reads its module's configuration and either contributes nothing
(disabled) or binds a strategy, registers the module's contract and adds
the module's health probes.

State machine:

    UNREGISTERED -> DISABLED
    UNREGISTERED -> REGISTERING -> BOUND
    DISABLED | BOUND -> TORN_DOWN

Registering twice raises ``ConfigurationError``.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

import httpx

from todo.core.config import ModuleConfiguration
from todo.core.contracts import CapabilityContract, CapabilityRegistry
from todo.core.dispatch import (
    CapabilityStrategy,
    InProcessStrategy,
    MessageBusResponder,
    StrategyDependencies,
    select_strategy,
)
from todo.core.enums import ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.events import EventChannel, MessageBus
from todo.core.health import DB_TAG, READY_TAG, HealthProbe, HealthRegistry
from todo.core.logging import get_logger

if TYPE_CHECKING:
    from todo.core.modules.bootstrap import ApplicationContext

logger = get_logger(__name__)


class RegistrationState(Enum):
    UNREGISTERED = "unregistered"
    DISABLED = "disabled"
    REGISTERING = "registering"
    BOUND = "bound"
    TORN_DOWN = "torn_down"


@dataclass
class RegistrationContext:
    """Shared startup services handed to every registrar."""

    registry: CapabilityRegistry
    health: HealthRegistry
    message_bus: MessageBus | None = None
    http_transport: httpx.AsyncBaseTransport | None = None
    channels: dict[str, EventChannel] = field(default_factory=dict)


_PROBE_SUFFIX = {
    ServiceMode.IN_PROCESS: ("db", frozenset({READY_TAG, DB_TAG})),
    ServiceMode.HTTP: ("remote", frozenset({READY_TAG})),
    ServiceMode.MESSAGE_BUS: ("bus", frozenset({READY_TAG})),
}


class ModuleRegistrar(ABC):
    """
    Base class for bounded-context registrars.

    Subclasses declare ``module_name`` and ``contract_type`` and build the
    module's local application layer in ``create_in_process_strategy``.
    """

    module_name: ClassVar[str]
    contract_type: ClassVar[type[CapabilityContract]]

    def __init__(self):
        self.state = RegistrationState.UNREGISTERED
        self.config: ModuleConfiguration | None = None
        self.contract: CapabilityContract | None = None
        self.strategy: CapabilityStrategy | None = None
        self.responder: MessageBusResponder | None = None
        self.channel: EventChannel | None = None
        self.probe_names: list[str] = []
        self._local: InProcessStrategy | None = None
        self._health: HealthRegistry | None = None

    @abstractmethod
    def create_in_process_strategy(
        self, config: ModuleConfiguration, context: RegistrationContext
    ) -> InProcessStrategy:
        """Build the module's handlers and the strategy that dispatches to them."""

    def create_event_channel(self, context: RegistrationContext) -> EventChannel | None:
        """Event channel this module publishes on, if any."""
        return None

    def connect(self, app: "ApplicationContext") -> None:
        """Subscribe to other modules' channels; runs before channels are sealed."""

    async def register(self, config: ModuleConfiguration, context: RegistrationContext) -> None:
        """
        Bind the module according to ``config``.

        Raises:
            ConfigurationError: On re-registration or invalid configuration
        """
        if self.state != RegistrationState.UNREGISTERED:
            raise ConfigurationError(
                f"Module '{self.module_name}' is already registered (state={self.state.value})"
            )

        self.config = config
        if not config.enabled:
            self.state = RegistrationState.DISABLED
            logger.info("Module disabled", module=self.module_name)
            return

        self.state = RegistrationState.REGISTERING
        self._health = context.health

        self.channel = self.create_event_channel(context)
        if self.channel is not None:
            if context.message_bus is not None:
                self.channel.attach_bus(context.message_bus)
            context.channels[self.channel.name] = self.channel

        deps = StrategyDependencies(
            in_process=self._local_factory(config, context),
            message_bus=context.message_bus,
            http_transport=context.http_transport,
        )
        self.strategy = select_strategy(config, deps)
        self.contract = self.contract_type(self.strategy)
        context.registry.register(self.contract_type, self.contract)

        self._add_probe(
            config.service_mode, self.strategy.health_check, context.health
        )

        if config.serve_requests:
            if context.message_bus is None:
                raise ConfigurationError(
                    f"Module '{self.module_name}' serves bus requests but no bus is configured",
                    config_key=f"modules.{self.module_name}.serve_requests",
                )
            local = deps.in_process()
            self.responder = MessageBusResponder(self.contract_type, local, context.message_bus)
            await self.responder.start()
            if config.service_mode != ServiceMode.IN_PROCESS:
                self._add_probe(ServiceMode.IN_PROCESS, local.health_check, context.health)

        self.state = RegistrationState.BOUND
        logger.info(
            "Module registered",
            module=self.module_name,
            service_mode=config.service_mode.value,
            serve_requests=config.serve_requests,
            probes=self.probe_names,
        )

    def _local_factory(
        self, config: ModuleConfiguration, context: RegistrationContext
    ) -> Callable[[], InProcessStrategy]:
        def factory() -> InProcessStrategy:
            if self._local is None:
                self._local = self.create_in_process_strategy(config, context)
            return self._local

        return factory

    def _add_probe(self, mode: ServiceMode, check, health: HealthRegistry) -> None:
        suffix, tags = _PROBE_SUFFIX[mode]
        probe = HealthProbe(
            name=f"{self.module_name}-{suffix}",
            check=check,
            tags=tags,
            timeout_seconds=self.config.timeout_seconds,
        )
        health.add(probe)
        self.probe_names.append(probe.name)

    async def teardown(self) -> None:
        """Release transport resources and remove this module's probes."""
        if self.state in (RegistrationState.UNREGISTERED, RegistrationState.TORN_DOWN):
            return

        if self.responder is not None:
            await self.responder.stop()
        if self.contract is not None:
            await self.contract.aclose()
        if self._local is not None and self._local is not self.strategy:
            await self._local.aclose()
        if self._health is not None:
            for name in self.probe_names:
                self._health.remove(name)

        self.state = RegistrationState.TORN_DOWN
        logger.info("Module torn down", module=self.module_name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(module={self.module_name}, state={self.state.value})"


__all__ = ["ModuleRegistrar", "RegistrationContext", "RegistrationState"]
