"""
CQRS base classes.

Commands change state, queries read it. Each message type has exactly one
handler, and the buses route a message to its handler while tracking
execution metrics. The in-process dispatch strategy sits on top of these
buses; nothing outside a module's own application layer talks to them
directly.
"""

import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from todo.core.errors import ConfigurationError
from todo.core.logging import get_logger

logger = get_logger(__name__)

TCommand = TypeVar("TCommand", bound="Command")
TQuery = TypeVar("TQuery", bound="Query")
TResult = TypeVar("TResult")


# =====================================================================================
# MESSAGE CLASSES
# =====================================================================================


class Command(ABC):
    """
    Base command class representing an intent to change state.

    Subclasses assign their fields in ``__init__`` and then call
    ``self._freeze()``; after that only ``correlation_id`` may change.

    Usage Example:
        class CompleteTaskCommand(Command):
            def __init__(self, task_id: UUID):
                super().__init__()
                self.task_id = task_id
                self._freeze()
    """

    def __init__(self):
        self.command_id = uuid4()
        self.created_at = datetime.now(UTC)
        self.correlation_id: UUID | None = None
        self._frozen = False

    def _freeze(self) -> None:
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False) and name != "correlation_id":
            raise AttributeError(
                f"Cannot modify immutable command {self.__class__.__name__}"
            )
        super().__setattr__(name, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert command to dictionary for logging."""
        result = {}
        for key, value in self.__dict__.items():
            if key.startswith("_"):
                continue
            if isinstance(value, UUID):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            result[key] = value
        result["command_type"] = self.__class__.__name__
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.command_id})"


class Query(ABC):
    """
    Base query class representing a request for information.

    Queries never modify state. Like commands they are frozen once built.
    """

    def __init__(self):
        self.query_id = uuid4()
        self.created_at = datetime.now(UTC)
        self.correlation_id: UUID | None = None
        self._frozen = False

    def _freeze(self) -> None:
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False) and name != "correlation_id":
            raise AttributeError(
                f"Cannot modify immutable query {self.__class__.__name__}"
            )
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.query_id})"


# =====================================================================================
# HANDLER CLASSES
# =====================================================================================


class CommandHandler(ABC, Generic[TCommand, TResult]):
    """Base command handler with execution tracking."""

    def __init__(self):
        self._execution_count = 0
        self._success_count = 0
        self._total_execution_time = 0.0

    @property
    @abstractmethod
    def command_type(self) -> type[TCommand]:
        """Command type this handler processes."""

    @abstractmethod
    async def handle(self, command: TCommand) -> TResult:
        """Handle the command."""

    async def execute_with_tracking(self, command: TCommand) -> TResult:
        start_time = time.perf_counter()
        self._execution_count += 1
        try:
            result = await self.handle(command)
            self._success_count += 1
            return result
        finally:
            self._total_execution_time += time.perf_counter() - start_time

    def get_statistics(self) -> dict[str, Any]:
        return {
            "handler": self.__class__.__name__,
            "execution_count": self._execution_count,
            "success_count": self._success_count,
            "total_execution_time": self._total_execution_time,
        }


class QueryHandler(ABC, Generic[TQuery, TResult]):
    """Base query handler with execution tracking."""

    def __init__(self):
        self._execution_count = 0
        self._total_execution_time = 0.0

    @property
    @abstractmethod
    def query_type(self) -> type[TQuery]:
        """Query type this handler processes."""

    @abstractmethod
    async def handle(self, query: TQuery) -> TResult:
        """Handle the query."""

    async def execute_with_tracking(self, query: TQuery) -> TResult:
        start_time = time.perf_counter()
        self._execution_count += 1
        try:
            return await self.handle(query)
        finally:
            self._total_execution_time += time.perf_counter() - start_time

    def get_statistics(self) -> dict[str, Any]:
        return {
            "handler": self.__class__.__name__,
            "execution_count": self._execution_count,
            "total_execution_time": self._total_execution_time,
        }


# =====================================================================================
# BUS CLASSES
# =====================================================================================


class CommandBus:
    """
    Routes commands to their registered handler.

    Raises ``ConfigurationError`` for duplicate registration or an
    unregistered command type; handler exceptions propagate unchanged.
    """

    def __init__(self):
        self._handlers: dict[type[Command], CommandHandler] = {}
        self._metrics = {
            "total_commands": 0,
            "successful_commands": 0,
            "failed_commands": 0,
        }

    def register(self, handler: CommandHandler) -> None:
        command_type = handler.command_type
        if command_type in self._handlers:
            raise ConfigurationError(
                f"Handler already registered for command type {command_type.__name__}"
            )
        self._handlers[command_type] = handler
        logger.debug(
            "Command handler registered",
            command_type=command_type.__name__,
            handler=handler.__class__.__name__,
        )

    def has_handler(self, command_type: type[Command]) -> bool:
        return command_type in self._handlers

    async def execute(self, command: Command) -> Any:
        handler = self._handlers.get(type(command))
        if not handler:
            raise ConfigurationError(
                f"No handler registered for command type {type(command).__name__}"
            )

        self._metrics["total_commands"] += 1
        logger.debug(
            "Executing command",
            command_type=type(command).__name__,
            command_id=str(command.command_id),
        )
        try:
            result = await handler.execute_with_tracking(command)
        except Exception:
            self._metrics["failed_commands"] += 1
            raise
        self._metrics["successful_commands"] += 1
        return result

    def get_metrics(self) -> dict[str, Any]:
        return {
            **self._metrics,
            "registered_handlers": len(self._handlers),
        }


class QueryBus:
    """Routes queries to their registered handler."""

    def __init__(self):
        self._handlers: dict[type[Query], QueryHandler] = {}
        self._metrics = {
            "total_queries": 0,
            "successful_queries": 0,
            "failed_queries": 0,
        }

    def register(self, handler: QueryHandler) -> None:
        query_type = handler.query_type
        if query_type in self._handlers:
            raise ConfigurationError(
                f"Handler already registered for query type {query_type.__name__}"
            )
        self._handlers[query_type] = handler
        logger.debug(
            "Query handler registered",
            query_type=query_type.__name__,
            handler=handler.__class__.__name__,
        )

    def has_handler(self, query_type: type[Query]) -> bool:
        return query_type in self._handlers

    async def execute(self, query: Query) -> Any:
        handler = self._handlers.get(type(query))
        if not handler:
            raise ConfigurationError(
                f"No handler registered for query type {type(query).__name__}"
            )

        self._metrics["total_queries"] += 1
        try:
            result = await handler.execute_with_tracking(query)
        except Exception:
            self._metrics["failed_queries"] += 1
            raise
        self._metrics["successful_queries"] += 1
        return result

    def get_metrics(self) -> dict[str, Any]:
        return {
            **self._metrics,
            "registered_handlers": len(self._handlers),
        }


__all__ = [
    "Command",
    "CommandBus",
    "CommandHandler",
    "Query",
    "QueryBus",
    "QueryHandler",
]
