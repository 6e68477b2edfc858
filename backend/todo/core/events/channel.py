"""
Typed event channels.

Each bounded context owns one ``EventChannel`` declaring the event types it
publishes. Other modules subscribe during startup; once the application
context is built the channel is sealed and its subscriber list is fixed.

Delivery is sequential in subscription order. A subscriber that raises is
logged and skipped; the remaining subscribers still receive the event.
When a message bus is attached, every event is also forwarded to
``<channel>.events`` for other processes.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from todo.core.contracts import CapabilityMessage
from todo.core.errors import ConfigurationError, ValidationError
from todo.core.events.bus import MessageBus, MessageBusError
from todo.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, kw_only=True)
class ContractEvent(CapabilityMessage):
    """Base class for events published across module boundaries."""

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


E = TypeVar("E", bound=ContractEvent)
EventSubscriber = Callable[[Any], Awaitable[None] | None]


class EventChannel(Generic[E]):
    """
    Publish/subscribe channel for one module's events.

    Usage Example:
        channel = EventChannel("tasks", (TaskCreatedEvent, TaskCompletedEvent))
        channel.subscribe(TaskCreatedEvent, notify_assignee)
        channel.seal()

        await channel.publish(TaskCreatedEvent(task_id=task.id, title=task.title))
    """

    def __init__(
        self,
        name: str,
        event_types: tuple[type[E], ...],
        message_bus: MessageBus | None = None,
    ):
        if not event_types:
            raise ConfigurationError(f"Event channel '{name}' declares no event types")
        self.name = name.lower()
        self.event_types = tuple(event_types)
        self._subscribers: dict[type[E], list[EventSubscriber]] = {t: [] for t in event_types}
        self._message_bus = message_bus
        self._sealed = False

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def attach_bus(self, message_bus: MessageBus) -> None:
        if self._sealed:
            raise ConfigurationError(f"Event channel '{self.name}' is sealed")
        self._message_bus = message_bus

    def subscribe(self, event_type: type[E], subscriber: EventSubscriber) -> None:
        """
        Add a subscriber for ``event_type``.

        Raises:
            ConfigurationError: If the channel is sealed
            ValidationError: If the channel does not carry ``event_type``
        """
        if self._sealed:
            raise ConfigurationError(
                f"Event channel '{self.name}' is sealed; subscribe during startup"
            )
        if event_type not in self._subscribers:
            raise ValidationError(
                f"Event channel '{self.name}' does not carry {getattr(event_type, '__name__', event_type)}"
            )
        if not callable(subscriber):
            raise ValidationError(f"Subscriber must be callable, got {type(subscriber)}")
        self._subscribers[event_type].append(subscriber)

    def seal(self) -> None:
        self._sealed = True

    def subscriber_count(self, event_type: type[E]) -> int:
        return len(self._subscribers.get(event_type, ()))

    async def publish(self, event: E) -> int:
        """
        Deliver ``event`` to its subscribers.

        Returns:
            int: Number of subscribers that handled the event without error

        Raises:
            ValidationError: If the channel does not carry the event's type
        """
        subscribers = self._subscribers.get(type(event))
        if subscribers is None:
            raise ValidationError(
                f"Event channel '{self.name}' does not carry {type(event).__name__}"
            )

        delivered = 0
        for subscriber in subscribers:
            try:
                outcome = subscriber(event)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                logger.exception(
                    "Event subscriber failed",
                    channel=self.name,
                    event_type=event.event_type,
                    event_id=str(event.event_id),
                    subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                    error=str(e),
                )

        if self._message_bus is not None and self._message_bus.is_running:
            try:
                await self._message_bus.publish(
                    f"{self.name}.events",
                    {"event_type": event.event_type, "payload": event.to_dict()},
                )
            except MessageBusError as e:
                logger.warning(
                    "Event not forwarded to message bus",
                    channel=self.name,
                    event_type=event.event_type,
                    error=e.message,
                )

        logger.debug(
            "Event published",
            channel=self.name,
            event_type=event.event_type,
            delivered=delivered,
            subscribers=len(subscribers),
        )
        return delivered


__all__ = ["ContractEvent", "EventChannel", "EventSubscriber"]
