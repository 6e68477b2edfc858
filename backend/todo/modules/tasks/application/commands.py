"""Tasks commands and queries."""

from uuid import UUID

from todo.core.cqrs import Command, Query


class CreateTaskCommand(Command):
    def __init__(self, title: str, description: str | None = None):
        super().__init__()
        self.title = title
        self.description = description
        self._freeze()


class CompleteTaskCommand(Command):
    def __init__(self, task_id: UUID):
        super().__init__()
        self.task_id = task_id
        self._freeze()


class GetTaskQuery(Query):
    def __init__(self, task_id: UUID):
        super().__init__()
        self.task_id = task_id
        self._freeze()
