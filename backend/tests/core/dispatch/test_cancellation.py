"""
Tests for cooperative cancellation of contract calls.
"""

import asyncio

import httpx
import pytest

from tests.builders import make_http_transport
from todo.core.config import ModuleConfiguration
from todo.core.contracts import CapabilityErrorKind, Result
from todo.core.dispatch import CapabilityStrategy, HttpStrategy, run_cancellable
from todo.core.enums import ServiceMode
from todo.modules.tasks.contract import CreateTaskRequest, TasksCapability


class SlowStrategy(CapabilityStrategy):
    mode = ServiceMode.IN_PROCESS

    def __init__(self, delay: float):
        super().__init__("tasks")
        self.delay = delay
        self.started = asyncio.Event()
        self.was_cancelled = False

    async def _dispatch(self, operation, request):
        self.started.set()
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.was_cancelled = True
            raise
        return Result.ok("done")


@pytest.mark.unit
class TestCancellation:
    """Test the cancel event passed to invoke."""

    async def test_unset_event_does_not_interfere(self):
        strategy = SlowStrategy(delay=0)

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="x"), cancel=asyncio.Event()
        )

        assert result.value == "done"

    async def test_already_set_event_skips_work(self):
        strategy = SlowStrategy(delay=0)
        cancel = asyncio.Event()
        cancel.set()

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="x"), cancel=cancel
        )

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE
        assert result.error.message == "cancelled"
        assert not strategy.started.is_set()

    async def test_setting_event_aborts_in_flight_call(self):
        strategy = SlowStrategy(delay=10)
        cancel = asyncio.Event()

        call = asyncio.create_task(
            strategy.invoke(
                TasksCapability.CREATE_TASK, CreateTaskRequest(title="x"), cancel=cancel
            )
        )
        await strategy.started.wait()
        cancel.set()
        result = await asyncio.wait_for(call, timeout=1)

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE
        assert result.error.message == "cancelled"
        assert strategy.was_cancelled

    async def test_task_cancellation_propagates(self):
        strategy = SlowStrategy(delay=10)

        call = asyncio.create_task(
            strategy.invoke(
                TasksCapability.CREATE_TASK, CreateTaskRequest(title="x"), cancel=asyncio.Event()
            )
        )
        await strategy.started.wait()
        call.cancel()

        with pytest.raises(asyncio.CancelledError):
            await call

    async def test_cancel_during_http_retries(self):
        cancel = asyncio.Event()

        def respond(request):
            cancel.set()
            return httpx.Response(503)

        transport, seen = make_http_transport(respond)
        config = ModuleConfiguration(
            name="tasks",
            service_mode=ServiceMode.HTTP,
            endpoint="https://x/tasks",
            retry_attempts=3,
            retry_backoff_seconds=1.0,
        )
        strategy = HttpStrategy(config, transport=transport)

        result = await asyncio.wait_for(
            TasksCapability(strategy).create_task(CreateTaskRequest(title="x"), cancel),
            timeout=1,
        )

        assert result.error.message == "cancelled"
        assert len(seen) == 1
        await strategy.aclose()

    async def test_run_cancellable_returns_work_result(self):
        async def work():
            return Result.ok(42)

        assert (await run_cancellable(work(), asyncio.Event())).value == 42
