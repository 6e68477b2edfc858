"""Tasks domain model."""

from todo.modules.tasks.domain.entities import Task
from todo.modules.tasks.domain.interfaces import TaskRepository

__all__ = ["Task", "TaskRepository"]
