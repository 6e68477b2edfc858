"""In-memory task repository."""

import asyncio
import copy
from uuid import UUID

from todo.core.errors import NotFoundError
from todo.modules.tasks.domain import Task, TaskRepository


class InMemoryTaskRepository(TaskRepository):
    """
    Process-local store.

    Returns copies so that callers only change stored state through
    ``update``.
    """

    def __init__(self):
        self._tasks: dict[UUID, Task] = {}
        self._lock = asyncio.Lock()

    async def add(self, task: Task) -> None:
        async with self._lock:
            self._tasks[task.id] = copy.copy(task)

    async def get(self, task_id: UUID) -> Task | None:
        task = self._tasks.get(task_id)
        return copy.copy(task) if task is not None else None

    async def update(self, task: Task) -> None:
        async with self._lock:
            if task.id not in self._tasks:
                raise NotFoundError("Task", task.id)
            self._tasks[task.id] = copy.copy(task)

    async def ping(self) -> dict:
        return {"message": "in-memory task store", "metadata": {"tasks": len(self._tasks)}}

    def __len__(self) -> int:
        return len(self._tasks)
