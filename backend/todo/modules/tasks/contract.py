"""
Tasks capability contract.

The operations, request/response messages and events the Tasks module
exposes to the rest of the application. This file is the only part of the
module other modules may import.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from todo.core.contracts import (
    CapabilityContract,
    CapabilityMessage,
    Operation,
    OperationKind,
    Result,
)
from todo.core.events import ContractEvent


@dataclass(frozen=True)
class CreateTaskRequest(CapabilityMessage):
    title: str
    description: str | None = None


@dataclass(frozen=True)
class GetTaskRequest(CapabilityMessage):
    task_id: UUID


@dataclass(frozen=True)
class CompleteTaskRequest(CapabilityMessage):
    task_id: UUID


@dataclass(frozen=True)
class TaskResponse(CapabilityMessage):
    task_id: UUID
    title: str
    description: str | None
    completed: bool
    created_at: datetime
    completed_at: datetime | None = None


@dataclass(frozen=True)
class TaskCreatedEvent(ContractEvent):
    task_id: UUID
    title: str


@dataclass(frozen=True)
class TaskCompletedEvent(ContractEvent):
    task_id: UUID
    completed_at: datetime


class TasksCapability(CapabilityContract):
    """
    Task management operations.

    Usage Example:
        tasks = context.capability(TasksCapability)
        result = await tasks.create_task(CreateTaskRequest(title="Write docs"))
    """

    module_name = "tasks"
    version = "1.0"

    CREATE_TASK = Operation(
        name="create_task",
        kind=OperationKind.COMMAND,
        request_type=CreateTaskRequest,
        response_type=TaskResponse,
        method="POST",
        path="",
        success_status=201,
    )
    GET_TASK = Operation(
        name="get_task",
        kind=OperationKind.QUERY,
        request_type=GetTaskRequest,
        response_type=TaskResponse,
        method="GET",
        path="/{task_id}",
    )
    COMPLETE_TASK = Operation(
        name="complete_task",
        kind=OperationKind.COMMAND,
        request_type=CompleteTaskRequest,
        response_type=TaskResponse,
        method="POST",
        path="/{task_id}/complete",
    )

    operations = (CREATE_TASK, GET_TASK, COMPLETE_TASK)
    events = (TaskCreatedEvent, TaskCompletedEvent)

    async def create_task(self, request: CreateTaskRequest, cancel=None) -> Result[TaskResponse]:
        return await self._invoke(self.CREATE_TASK, request, cancel)

    async def get_task(self, request: GetTaskRequest, cancel=None) -> Result[TaskResponse]:
        return await self._invoke(self.GET_TASK, request, cancel)

    async def complete_task(
        self, request: CompleteTaskRequest, cancel=None
    ) -> Result[TaskResponse]:
        return await self._invoke(self.COMPLETE_TASK, request, cancel)


__all__ = [
    "CompleteTaskRequest",
    "CreateTaskRequest",
    "GetTaskRequest",
    "TaskCompletedEvent",
    "TaskCreatedEvent",
    "TaskResponse",
    "TasksCapability",
]
