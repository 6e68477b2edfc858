"""CQRS (Command Query Responsibility Segregation) implementation."""

from todo.core.cqrs.base import (
    Command,
    CommandBus,
    CommandHandler,
    Query,
    QueryBus,
    QueryHandler,
)

__all__ = [
    "Command",
    "CommandBus",
    "CommandHandler",
    "Query",
    "QueryBus",
    "QueryHandler",
]
