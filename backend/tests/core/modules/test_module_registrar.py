"""
Tests for module registration.

Covers the registrar state machine, probe contribution and the
message-bus responder.
"""

import asyncio

import pytest

from todo.core.config import ModuleConfiguration
from todo.core.contracts import CapabilityRegistry
from todo.core.dispatch import HttpStrategy, InProcessStrategy, MessageBusStrategy
from todo.core.enums import MessagingSemantics, ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.health import DB_TAG, READY_TAG, HealthRegistry
from todo.core.modules import RegistrationContext, RegistrationState
from todo.modules.tasks import TasksModuleRegistrar
from todo.modules.tasks.contract import CreateTaskRequest, TaskCreatedEvent, TasksCapability


@pytest.fixture
def context():
    return RegistrationContext(registry=CapabilityRegistry(), health=HealthRegistry())


@pytest.mark.unit
class TestModuleRegistrar:
    """Test TasksModuleRegistrar against a bare registration context."""

    async def test_in_process_registration(self, context):
        registrar = TasksModuleRegistrar()

        await registrar.register(ModuleConfiguration(name="tasks"), context)

        assert registrar.state == RegistrationState.BOUND
        assert isinstance(registrar.strategy, InProcessStrategy)
        tasks = context.registry.get(TasksCapability)
        result = await tasks.create_task(CreateTaskRequest(title="Test"))
        assert result.value.title == "Test"
        assert context.health.names() == ["tasks-db"]
        probe = context.health.probes[0]
        assert probe.has_tag(READY_TAG)
        assert probe.has_tag(DB_TAG)
        assert "tasks" in context.channels

    async def test_disabled_module_contributes_nothing(self, context):
        registrar = TasksModuleRegistrar()

        await registrar.register(ModuleConfiguration(name="tasks", enabled=False), context)

        assert registrar.state == RegistrationState.DISABLED
        assert TasksCapability not in context.registry
        assert context.health.names() == []
        assert context.channels == {}
        assert registrar.repository is None

    async def test_http_registration(self, context):
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(
            name="tasks", service_mode=ServiceMode.HTTP, endpoint="https://x/tasks"
        )

        await registrar.register(config, context)

        assert isinstance(registrar.strategy, HttpStrategy)
        assert context.health.names() == ["tasks-remote"]
        assert not context.health.probes[0].has_tag(DB_TAG)
        assert registrar.repository is None
        await registrar.teardown()

    async def test_message_bus_registration(self, context, message_bus):
        context.message_bus = message_bus
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(name="tasks", service_mode=ServiceMode.MESSAGE_BUS)

        await registrar.register(config, context)

        assert isinstance(registrar.strategy, MessageBusStrategy)
        assert context.health.names() == ["tasks-bus"]
        await registrar.teardown()

    async def test_message_bus_without_bus_fails(self, context):
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(name="tasks", service_mode=ServiceMode.MESSAGE_BUS)

        with pytest.raises(ConfigurationError):
            await registrar.register(config, context)

    async def test_register_twice(self, context):
        registrar = TasksModuleRegistrar()
        await registrar.register(ModuleConfiguration(name="tasks"), context)

        with pytest.raises(ConfigurationError):
            await registrar.register(ModuleConfiguration(name="tasks"), context)

    async def test_register_after_disable(self, context):
        registrar = TasksModuleRegistrar()
        await registrar.register(ModuleConfiguration(name="tasks", enabled=False), context)

        with pytest.raises(ConfigurationError):
            await registrar.register(ModuleConfiguration(name="tasks"), context)

    async def test_teardown_removes_probes(self, context):
        registrar = TasksModuleRegistrar()
        await registrar.register(ModuleConfiguration(name="tasks"), context)

        await registrar.teardown()
        await registrar.teardown()

        assert registrar.state == RegistrationState.TORN_DOWN
        assert context.health.names() == []

    async def test_teardown_before_register_is_noop(self):
        registrar = TasksModuleRegistrar()

        await registrar.teardown()

        assert registrar.state == RegistrationState.UNREGISTERED


@pytest.mark.unit
class TestServingRequests:
    """Test modules that answer message-bus requests."""

    async def test_serve_requests_needs_bus(self, context):
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(name="tasks", serve_requests=True)

        with pytest.raises(ConfigurationError):
            await registrar.register(config, context)

    async def test_in_process_module_serves_the_bus(self, context, message_bus):
        context.message_bus = message_bus
        registrar = TasksModuleRegistrar()

        await registrar.register(ModuleConfiguration(name="tasks", serve_requests=True), context)

        assert registrar.responder.is_started
        assert registrar.responder.strategy is registrar.strategy
        assert message_bus.consumer_count("tasks.requests") == 1
        assert context.health.names() == ["tasks-db"]

        await registrar.teardown()
        assert message_bus.consumer_count("tasks.requests") == 0

    async def test_bus_client_and_server_in_one_process(self, context, message_bus):
        context.message_bus = message_bus
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(
            name="tasks", service_mode=ServiceMode.MESSAGE_BUS, serve_requests=True
        )

        await registrar.register(config, context)
        tasks = context.registry.get(TasksCapability)
        result = await tasks.create_task(CreateTaskRequest(title="Round trip"))

        assert result.value.title == "Round trip"
        assert sorted(context.health.names()) == ["tasks-bus", "tasks-db"]
        assert len(registrar.repository) == 1
        await registrar.teardown()

    async def test_fire_and_forget_reaches_local_handlers(self, context, message_bus):
        context.message_bus = message_bus
        registrar = TasksModuleRegistrar()
        config = ModuleConfiguration(
            name="tasks",
            service_mode=ServiceMode.MESSAGE_BUS,
            messaging=MessagingSemantics.FIRE_AND_FORGET,
            serve_requests=True,
        )
        await registrar.register(config, context)
        created = asyncio.Event()
        registrar.channel.subscribe(TaskCreatedEvent, lambda event: created.set())

        result = await context.registry.get(TasksCapability).create_task(
            CreateTaskRequest(title="Later")
        )

        assert result.value.correlation_id
        await asyncio.wait_for(created.wait(), timeout=1)
        assert len(registrar.repository) == 1
        await registrar.teardown()
