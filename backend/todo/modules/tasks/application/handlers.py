"""Tasks command and query handlers."""

from todo.core.cqrs import CommandHandler, QueryHandler
from todo.core.errors import NotFoundError
from todo.core.events import EventChannel
from todo.core.logging import get_logger
from todo.modules.tasks.application.commands import (
    CompleteTaskCommand,
    CreateTaskCommand,
    GetTaskQuery,
)
from todo.modules.tasks.contract import TaskCompletedEvent, TaskCreatedEvent
from todo.modules.tasks.domain import Task, TaskRepository

logger = get_logger(__name__)


class CreateTaskCommandHandler(CommandHandler[CreateTaskCommand, Task]):
    """Creates a task and announces it."""

    def __init__(self, repository: TaskRepository, events: EventChannel | None = None):
        super().__init__()
        self.repository = repository
        self.events = events

    @property
    def command_type(self):
        return CreateTaskCommand

    async def handle(self, command: CreateTaskCommand) -> Task:
        task = Task.create(command.title, command.description)
        await self.repository.add(task)

        logger.info("Task created", task_id=str(task.id))

        if self.events is not None:
            await self.events.publish(TaskCreatedEvent(task_id=task.id, title=task.title))
        return task


class CompleteTaskCommandHandler(CommandHandler[CompleteTaskCommand, Task]):
    """Marks a task as completed."""

    def __init__(self, repository: TaskRepository, events: EventChannel | None = None):
        super().__init__()
        self.repository = repository
        self.events = events

    @property
    def command_type(self):
        return CompleteTaskCommand

    async def handle(self, command: CompleteTaskCommand) -> Task:
        task = await self.repository.get(command.task_id)
        if task is None:
            raise NotFoundError("Task", command.task_id)

        task.complete()
        await self.repository.update(task)

        logger.info("Task completed", task_id=str(task.id))

        if self.events is not None:
            await self.events.publish(
                TaskCompletedEvent(task_id=task.id, completed_at=task.completed_at)
            )
        return task


class GetTaskQueryHandler(QueryHandler[GetTaskQuery, Task]):
    def __init__(self, repository: TaskRepository):
        super().__init__()
        self.repository = repository

    @property
    def query_type(self):
        return GetTaskQuery

    async def handle(self, query: GetTaskQuery) -> Task:
        task = await self.repository.get(query.task_id)
        if task is None:
            raise NotFoundError("Task", query.task_id)
        return task
