"""Tasks bounded context."""

from todo.modules.tasks.registrar import TasksModuleRegistrar

__all__ = ["TasksModuleRegistrar"]
