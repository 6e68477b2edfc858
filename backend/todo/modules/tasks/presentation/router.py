"""Tasks REST endpoints.

Every endpoint goes through the bound ``TasksCapability``, so the same
routes work whether the module runs in this process, behind HTTP or on
the message bus.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from todo.core.contracts import Result
from todo.core.dispatch import Accepted
from todo.core.errors import ServiceUnavailableError
from todo.core.web import capability_error_response
from todo.modules.tasks.contract import (
    CompleteTaskRequest,
    CreateTaskRequest,
    GetTaskRequest,
    TasksCapability,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class CreateTaskBody(BaseModel):
    title: str
    description: str | None = None


def get_tasks(request: Request) -> TasksCapability:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise ServiceUnavailableError("Application is not ready")
    try:
        return context.capability(TasksCapability)
    except LookupError as e:
        raise ServiceUnavailableError("Tasks module is not enabled") from e


def _respond(result: Result, status_code: int = 200) -> JSONResponse:
    if result.is_failure():
        return capability_error_response(result.error)
    if isinstance(result.value, Accepted):
        status_code = 202
    return JSONResponse(status_code=status_code, content=result.value.to_dict())


@router.post("", status_code=201)
async def create_task(body: CreateTaskBody, tasks: TasksCapability = Depends(get_tasks)):
    result = await tasks.create_task(
        CreateTaskRequest(title=body.title, description=body.description)
    )
    return _respond(result, TasksCapability.CREATE_TASK.success_status)


@router.get("/{task_id}")
async def get_task(task_id: UUID, tasks: TasksCapability = Depends(get_tasks)):
    result = await tasks.get_task(GetTaskRequest(task_id=task_id))
    return _respond(result)


@router.post("/{task_id}/complete")
async def complete_task(task_id: UUID, tasks: TasksCapability = Depends(get_tasks)):
    result = await tasks.complete_task(CompleteTaskRequest(task_id=task_id))
    return _respond(result)
