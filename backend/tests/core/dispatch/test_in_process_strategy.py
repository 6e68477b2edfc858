"""
Tests for the in-process strategy.

Covers handler outcomes and the mapping of backend exceptions onto
capability error kinds.
"""

from uuid import uuid4

import pytest

from todo.core.contracts import CapabilityErrorKind
from todo.core.cqrs import CommandBus, QueryBus
from todo.core.dispatch import InProcessRoute, InProcessStrategy
from todo.core.errors import ServiceUnavailableError
from todo.modules.tasks.application.mappers import ROUTES, task_to_response
from todo.modules.tasks.contract import (
    CompleteTaskRequest,
    CreateTaskRequest,
    GetTaskRequest,
    TasksCapability,
)


def _explode(request):
    raise RuntimeError("boom")


def _store_offline(request):
    raise ServiceUnavailableError("Task store offline")


@pytest.mark.unit
class TestInProcessStrategy:
    """Test InProcessStrategy against the real Tasks handlers."""

    async def test_create_task(self, in_process_tasks):
        result = await in_process_tasks.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test")
        )

        assert result.is_success()
        assert result.value.title == "Test"
        assert result.value.completed is False

    async def test_create_then_get(self, in_process_tasks):
        created = await in_process_tasks.invoke(
            TasksCapability.CREATE_TASK,
            CreateTaskRequest(title="Write docs", description="Public API"),
        )

        fetched = await in_process_tasks.invoke(
            TasksCapability.GET_TASK, GetTaskRequest(task_id=created.value.task_id)
        )

        assert fetched.unwrap() == created.value

    async def test_blank_title_is_validation_error(self, in_process_tasks):
        result = await in_process_tasks.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="   ")
        )

        assert result.error.kind == CapabilityErrorKind.VALIDATION
        assert result.error.field == "title"

    async def test_missing_task_is_not_found(self, in_process_tasks):
        task_id = uuid4()

        result = await in_process_tasks.invoke(
            TasksCapability.GET_TASK, GetTaskRequest(task_id=task_id)
        )

        assert result.error.kind == CapabilityErrorKind.NOT_FOUND
        assert result.error.resource_id == str(task_id)

    async def test_completing_twice_is_validation_error(self, in_process_tasks):
        created = await in_process_tasks.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Once")
        )
        request = CompleteTaskRequest(task_id=created.value.task_id)

        first = await in_process_tasks.invoke(TasksCapability.COMPLETE_TASK, request)
        second = await in_process_tasks.invoke(TasksCapability.COMPLETE_TASK, request)

        assert first.value.completed is True
        assert first.value.completed_at is not None
        assert second.error.kind == CapabilityErrorKind.VALIDATION

    async def test_operation_without_route(self):
        strategy = InProcessStrategy("tasks", CommandBus(), QueryBus(), routes={})

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test")
        )

        assert result.error.kind == CapabilityErrorKind.UNEXPECTED
        assert result.error.message == "No handler for tasks.create_task"

    async def test_route_without_handler(self):
        strategy = InProcessStrategy("tasks", CommandBus(), QueryBus(), ROUTES)

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test")
        )

        assert result.error.kind == CapabilityErrorKind.UNEXPECTED

    async def test_unhandled_exception_is_unexpected(self):
        routes = {"create_task": InProcessRoute(_explode, task_to_response)}
        strategy = InProcessStrategy("tasks", CommandBus(), QueryBus(), routes)

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test")
        )

        assert result.error.kind == CapabilityErrorKind.UNEXPECTED
        assert "boom" not in result.error.message

    async def test_infrastructure_error_is_unavailable(self):
        routes = {"create_task": InProcessRoute(_store_offline, task_to_response)}
        strategy = InProcessStrategy("tasks", CommandBus(), QueryBus(), routes)

        result = await strategy.invoke(
            TasksCapability.CREATE_TASK, CreateTaskRequest(title="Test")
        )

        assert result.error.kind == CapabilityErrorKind.UNAVAILABLE
        assert result.error.message == "Task store offline"

    async def test_health_check_uses_repository_probe(self, in_process_tasks):
        outcome = await in_process_tasks.health_check()

        assert outcome["message"] == "in-memory task store"

    async def test_health_check_without_probe(self):
        strategy = InProcessStrategy("tasks", CommandBus(), QueryBus(), ROUTES)

        assert await strategy.health_check() == {"message": "in_process dispatch available"}
