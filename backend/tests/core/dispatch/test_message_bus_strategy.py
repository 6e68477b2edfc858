"""
Tests for the message-bus strategy and responder.

Both sides run over one ``InMemoryMessageBus``.
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from todo.core.config import ModuleConfiguration
from todo.core.contracts import CapabilityErrorKind
from todo.core.dispatch import Accepted, MessageBusResponder, MessageBusStrategy
from todo.core.enums import MessagingSemantics, ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.events import InMemoryMessageBus
from todo.modules.tasks.contract import (
    CompleteTaskRequest,
    CreateTaskRequest,
    GetTaskRequest,
    TasksCapability,
)


def bus_config(**overrides) -> ModuleConfiguration:
    values = {"name": "tasks", "service_mode": ServiceMode.MESSAGE_BUS, "timeout_seconds": 1.0}
    values.update(overrides)
    return ModuleConfiguration(**values)


@pytest.fixture
async def responder(message_bus, in_process_tasks):
    responder = MessageBusResponder(TasksCapability, in_process_tasks, message_bus)
    await responder.start()
    yield responder
    await responder.stop()


@pytest.mark.unit
class TestRequestReply:
    """Test request/reply round trips."""

    async def test_round_trip(self, message_bus, responder):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))

        assert result.is_success()
        assert result.value.title == "Test"

        fetched = await strategy.invoke(
            TasksCapability.GET_TASK, GetTaskRequest(task_id=result.value.task_id)
        )
        assert fetched.unwrap() == result.value
        await strategy.aclose()

    async def test_remote_errors_keep_their_kind(self, message_bus, responder):
        strategy = MessageBusStrategy(bus_config(), message_bus)
        task_id = uuid4()

        missing = await strategy.invoke(TasksCapability.GET_TASK, GetTaskRequest(task_id=task_id))
        invalid = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title=""))

        assert missing.error.kind == CapabilityErrorKind.NOT_FOUND
        assert missing.error.resource_id == str(task_id)
        assert invalid.error.kind == CapabilityErrorKind.VALIDATION
        assert invalid.error.field == "title"
        await strategy.aclose()

    async def test_concurrent_calls_get_their_own_reply(self, message_bus, responder):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        results = await asyncio.gather(
            *(
                strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title=f"Task {i}"))
                for i in range(5)
            )
        )

        assert sorted(r.value.title for r in results) == [f"Task {i}" for i in range(5)]
        await strategy.aclose()

    async def test_no_responder_times_out_as_unavailable(self, message_bus):
        strategy = MessageBusStrategy(bus_config(timeout_seconds=0.05), message_bus)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE
        assert "No reply from tasks" in result.error.message
        await strategy.aclose()

    async def test_stopped_bus_is_unavailable(self):
        bus = InMemoryMessageBus()
        strategy = MessageBusStrategy(bus_config(), bus)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE

    async def test_malformed_reply_is_unexpected(self, message_bus):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        async def reply_garbage(envelope):
            await message_bus.publish(
                envelope["reply_to"],
                {"correlation_id": envelope["correlation_id"], "ok": True, "payload": {}},
            )

        await message_bus.consume("tasks.requests", reply_garbage)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))

        assert result.error.kind == CapabilityErrorKind.UNEXPECTED
        await strategy.aclose()

    async def test_wrongly_typed_reply_is_unexpected(self, message_bus):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        async def reply_wrong_types(envelope):
            await message_bus.publish(
                envelope["reply_to"],
                {
                    "correlation_id": envelope["correlation_id"],
                    "ok": True,
                    "payload": {
                        "task_id": str(uuid4()),
                        "title": 5,
                        "description": None,
                        "completed": "yes",
                        "created_at": 123,
                    },
                },
            )

        await message_bus.consume("tasks.requests", reply_wrong_types)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))

        assert result.error.kind == CapabilityErrorKind.UNEXPECTED
        await strategy.aclose()

    async def test_envelope_shape(self, message_bus):
        strategy = MessageBusStrategy(bus_config(timeout_seconds=0.05), message_bus)
        received = asyncio.Queue()

        async def capture(envelope):
            await received.put(envelope)

        await message_bus.consume("tasks.requests", capture)
        await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))
        envelope = await asyncio.wait_for(received.get(), timeout=1)

        assert envelope["module"] == "tasks"
        assert envelope["operation"] == "create_task"
        assert envelope["payload"] == {"title": "Test", "description": None}
        assert envelope["reply_to"] == strategy.reply_channel
        assert envelope["correlation_id"]
        await strategy.aclose()

    async def test_health_check_pings_bus(self, message_bus):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        outcome = await strategy.health_check()

        assert outcome["message"] == "in-memory bus running"

    def test_requires_bus(self):
        with pytest.raises(ConfigurationError):
            MessageBusStrategy(bus_config(), None)


@pytest.mark.unit
class TestFireAndForget:
    """Test fire-and-forget semantics."""

    async def test_command_returns_accepted(self, message_bus):
        strategy = MessageBusStrategy(
            bus_config(messaging=MessagingSemantics.FIRE_AND_FORGET), message_bus
        )
        received = asyncio.Queue()

        async def capture(envelope):
            await received.put(envelope)

        await message_bus.consume("tasks.requests", capture)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test"))
        envelope = await asyncio.wait_for(received.get(), timeout=1)

        assert isinstance(result.value, Accepted)
        assert result.value.correlation_id == envelope["correlation_id"]
        assert envelope["reply_to"] is None

    async def test_queries_still_wait_for_reply(self, message_bus, responder):
        strategy = MessageBusStrategy(
            bus_config(messaging=MessagingSemantics.FIRE_AND_FORGET), message_bus
        )

        result = await strategy.invoke(TasksCapability.GET_TASK, GetTaskRequest(task_id=uuid4()))

        assert result.error.kind == CapabilityErrorKind.NOT_FOUND
        await strategy.aclose()

    async def test_stopped_bus_is_unavailable(self):
        strategy = MessageBusStrategy(
            bus_config(messaging=MessagingSemantics.FIRE_AND_FORGET), InMemoryMessageBus()
        )

        result = await strategy.invoke(
            TasksCapability.COMPLETE_TASK, CompleteTaskRequest(task_id=uuid4())
        )

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE


@pytest.mark.unit
class TestCompetingResponders:
    """Test several processes serving one module."""

    @pytest.fixture
    async def responders(self, message_bus, in_process_tasks):
        in_process_tasks.invoke = AsyncMock(wraps=in_process_tasks.invoke)
        responders = [
            MessageBusResponder(TasksCapability, in_process_tasks, message_bus) for _ in range(3)
        ]
        for responder in responders:
            await responder.start()
        yield responders
        for responder in responders:
            await responder.stop()

    async def test_each_request_runs_once(self, message_bus, responders, in_process_tasks):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        result = await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Once"))
        await asyncio.sleep(0.05)

        assert result.is_success()
        assert in_process_tasks.invoke.await_count == 1
        await strategy.aclose()

    async def test_concurrent_requests_run_once_each(
        self, message_bus, responders, in_process_tasks
    ):
        strategy = MessageBusStrategy(bus_config(), message_bus)

        results = await asyncio.gather(
            *(
                strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title=f"Task {i}"))
                for i in range(6)
            )
        )
        await asyncio.sleep(0.05)

        assert all(result.is_success() for result in results)
        assert in_process_tasks.invoke.await_count == 6
        await strategy.aclose()

    async def test_fire_and_forget_command_runs_once(
        self, message_bus, responders, in_process_tasks
    ):
        strategy = MessageBusStrategy(
            bus_config(messaging=MessagingSemantics.FIRE_AND_FORGET), message_bus
        )

        await strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Later"))
        await asyncio.sleep(0.05)

        assert in_process_tasks.invoke.await_count == 1

    async def test_request_waits_for_a_responder(self, message_bus, in_process_tasks):
        strategy = MessageBusStrategy(bus_config(), message_bus)
        call = asyncio.create_task(
            strategy.invoke(TasksCapability.CREATE_TASK, CreateTaskRequest(title="Queued"))
        )
        await asyncio.sleep(0.05)
        assert not call.done()

        responder = MessageBusResponder(TasksCapability, in_process_tasks, message_bus)
        await responder.start()
        result = await asyncio.wait_for(call, timeout=1)

        assert result.value.title == "Queued"
        await responder.stop()
        await strategy.aclose()


@pytest.mark.unit
class TestMessageBusResponder:
    """Test the serving side in isolation."""

    @pytest.fixture
    def bus(self):
        return AsyncMock()

    async def test_unknown_operation(self, bus, in_process_tasks):
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.handle(
            {"correlation_id": "c1", "operation": "delete_task", "payload": {}, "reply_to": "r"}
        )

        channel, reply = bus.publish.await_args.args
        assert channel == "r"
        assert reply["ok"] is False
        assert reply["correlation_id"] == "c1"
        assert reply["error"]["kind"] == "unexpected"

    async def test_invalid_payload(self, bus, in_process_tasks):
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.handle(
            {
                "correlation_id": "c2",
                "operation": "get_task",
                "payload": {"task_id": "not-a-uuid"},
                "reply_to": "r",
            }
        )

        _, reply = bus.publish.await_args.args
        assert reply["error"]["kind"] == "validation"
        assert reply["error"]["message"].startswith("Invalid request payload")

    async def test_wrongly_typed_request_is_not_executed(self, bus, in_process_tasks):
        in_process_tasks.invoke = AsyncMock(wraps=in_process_tasks.invoke)
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.handle(
            {
                "correlation_id": "c5",
                "operation": "create_task",
                "payload": {"title": 5},
                "reply_to": "r",
            }
        )

        _, reply = bus.publish.await_args.args
        assert reply["error"]["kind"] == "validation"
        assert "CreateTaskRequest.title" in reply["error"]["message"]
        in_process_tasks.invoke.assert_not_awaited()

    async def test_success_reply(self, bus, in_process_tasks):
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.handle(
            {
                "correlation_id": "c3",
                "operation": "create_task",
                "payload": {"title": "Test"},
                "reply_to": "r",
            }
        )

        _, reply = bus.publish.await_args.args
        assert reply["ok"] is True
        assert reply["payload"]["title"] == "Test"

    async def test_fire_and_forget_sends_no_reply(self, bus, in_process_tasks):
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.handle(
            {"correlation_id": "c4", "operation": "create_task", "payload": {"title": ""}}
        )

        bus.publish.assert_not_awaited()

    async def test_start_and_stop(self, bus, in_process_tasks):
        responder = MessageBusResponder(TasksCapability, in_process_tasks, bus)

        await responder.start()
        await responder.start()
        assert responder.is_started
        bus.consume.assert_awaited_once_with("tasks.requests", responder.handle)

        await responder.stop()
        assert not responder.is_started
        bus.stop_consuming.assert_awaited_once_with("tasks.requests", responder.handle)
