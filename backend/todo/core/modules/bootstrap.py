"""
Application context.

``bootstrap`` runs every module registrar against the loaded settings and
returns an explicit ``ApplicationContext``: the sealed capability registry,
the health registry and the event channels. Request handlers receive the
context instead of resolving services from a global container.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TypeVar

import httpx

from todo.core.config import Settings
from todo.core.contracts import CapabilityContract, CapabilityRegistry
from todo.core.enums import ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.events import EventChannel, MessageBus, create_message_bus
from todo.core.health import HealthRegistry
from todo.core.logging import get_logger
from todo.core.modules.registrar import ModuleRegistrar, RegistrationContext

logger = get_logger(__name__)

C = TypeVar("C", bound=CapabilityContract)


@dataclass
class ApplicationContext:
    """Everything request handling needs, built once at startup."""

    settings: Settings
    registry: CapabilityRegistry
    health: HealthRegistry
    channels: Mapping[str, EventChannel]
    registrars: tuple[ModuleRegistrar, ...] = ()
    message_bus: MessageBus | None = None
    owns_message_bus: bool = False
    closed: bool = field(default=False, init=False)

    def capability(self, contract_type: type[C]) -> C:
        """
        Get a module's bound contract.

        Raises:
            LookupError: If the module is disabled
        """
        return self.registry.get(contract_type)

    def channel(self, name: str) -> EventChannel:
        try:
            return self.channels[name.lower()]
        except KeyError:
            raise LookupError(f"No event channel named '{name}'") from None

    async def aclose(self) -> None:
        """Tear modules down in reverse registration order."""
        if self.closed:
            return
        self.closed = True
        for registrar in reversed(self.registrars):
            try:
                await registrar.teardown()
            except Exception as e:
                logger.exception(
                    "Module teardown failed", module=registrar.module_name, error=str(e)
                )
        if self.owns_message_bus and self.message_bus is not None:
            await self.message_bus.stop()
        logger.info("Application context closed")


def _needs_message_bus(settings: Settings, registrars: Iterable[ModuleRegistrar]) -> bool:
    for registrar in registrars:
        config = settings.module(registrar.module_name)
        if config.enabled and (
            config.service_mode == ServiceMode.MESSAGE_BUS or config.serve_requests
        ):
            return True
    return False


async def bootstrap(
    settings: Settings,
    registrars: Iterable[ModuleRegistrar],
    message_bus: MessageBus | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ApplicationContext:
    """
    Register all modules and seal the result.

    A message bus is created from ``settings.redis_url`` (or in memory) when
    none is passed and an enabled module needs one.

    Raises:
        ConfigurationError: On invalid module configuration; modules
            registered so far are torn down first
    """
    registrars = tuple(registrars)
    names = [r.module_name.lower() for r in registrars]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate module registrars: {', '.join(duplicates)}")

    owns_bus = False
    if message_bus is None and _needs_message_bus(settings, registrars):
        message_bus = create_message_bus(settings.redis_url)
        owns_bus = True
    if message_bus is not None and not message_bus.is_running:
        await message_bus.start()

    registration = RegistrationContext(
        registry=CapabilityRegistry(),
        health=HealthRegistry(),
        message_bus=message_bus,
        http_transport=http_transport,
    )
    context = ApplicationContext(
        settings=settings,
        registry=registration.registry,
        health=registration.health,
        channels=MappingProxyType(registration.channels),
        registrars=registrars,
        message_bus=message_bus,
        owns_message_bus=owns_bus,
    )

    try:
        for registrar in registrars:
            await registrar.register(settings.module(registrar.module_name), registration)
        for registrar in registrars:
            registrar.connect(context)
    except BaseException:
        await context.aclose()
        raise

    registration.registry.seal()
    for channel in registration.channels.values():
        channel.seal()

    logger.info(
        "Application context built",
        modules=registration.registry.module_names(),
        disabled=[r.module_name for r in registrars if r.config and not r.config.enabled],
        probes=registration.health.names(),
        message_bus=type(message_bus).__name__ if message_bus else None,
    )
    return context


__all__ = ["ApplicationContext", "bootstrap"]
