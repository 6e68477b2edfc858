"""Tasks infrastructure adapters."""

from todo.modules.tasks.infrastructure.repositories import InMemoryTaskRepository

__all__ = ["InMemoryTaskRepository"]
