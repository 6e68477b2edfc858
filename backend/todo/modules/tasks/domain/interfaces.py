"""Repository port for tasks."""

from abc import ABC, abstractmethod
from uuid import UUID

from todo.modules.tasks.domain.entities import Task


class TaskRepository(ABC):
    """Persistence port; adapters live in the infrastructure package."""

    @abstractmethod
    async def add(self, task: Task) -> None:
        """Store a new task."""

    @abstractmethod
    async def get(self, task_id: UUID) -> Task | None:
        """Find a task by id."""

    @abstractmethod
    async def update(self, task: Task) -> None:
        """Persist changes to an existing task."""

    @abstractmethod
    async def ping(self) -> dict:
        """Health probe for the backing store; raises if unreachable."""
