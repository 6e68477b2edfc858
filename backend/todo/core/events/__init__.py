"""Message bus and typed event channels."""

from todo.core.events.bus import (
    InMemoryMessageBus,
    MessageBus,
    MessageBusError,
    RedisMessageBus,
    create_message_bus,
)
from todo.core.events.channel import ContractEvent, EventChannel

__all__ = [
    "ContractEvent",
    "EventChannel",
    "InMemoryMessageBus",
    "MessageBus",
    "MessageBusError",
    "RedisMessageBus",
    "create_message_bus",
]
