"""Mapping between contract messages and the tasks application layer."""

from todo.core.dispatch import InProcessRoute
from todo.modules.tasks.application.commands import (
    CompleteTaskCommand,
    CreateTaskCommand,
    GetTaskQuery,
)
from todo.modules.tasks.contract import (
    CompleteTaskRequest,
    CreateTaskRequest,
    GetTaskRequest,
    TaskResponse,
    TasksCapability,
)
from todo.modules.tasks.domain import Task


def task_to_response(task: Task) -> TaskResponse:
    return TaskResponse(
        task_id=task.id,
        title=task.title,
        description=task.description,
        completed=task.is_completed,
        created_at=task.created_at,
        completed_at=task.completed_at,
    )


def _create(request: CreateTaskRequest) -> CreateTaskCommand:
    return CreateTaskCommand(title=request.title, description=request.description)


def _get(request: GetTaskRequest) -> GetTaskQuery:
    return GetTaskQuery(task_id=request.task_id)


def _complete(request: CompleteTaskRequest) -> CompleteTaskCommand:
    return CompleteTaskCommand(task_id=request.task_id)


ROUTES = {
    TasksCapability.CREATE_TASK.name: InProcessRoute(_create, task_to_response),
    TasksCapability.GET_TASK.name: InProcessRoute(_get, task_to_response),
    TasksCapability.COMPLETE_TASK.name: InProcessRoute(_complete, task_to_response),
}
