"""
Message bus implementations.

The bus carries JSON payloads in two ways:

- channels (``publish``/``subscribe``): every subscriber of every process
  receives every payload. Used for replies and integration events.
- queues (``enqueue``/``consume``): each payload is handled by exactly one
  consumer across all processes. Used for module requests, so a command
  runs once no matter how many processes serve the module.

Implementations:
- InMemoryMessageBus: single process, handlers run as background tasks
- RedisMessageBus: Redis pub/sub for channels, Redis lists for queues

Usage Example:
    bus = create_message_bus(settings.redis_url)
    await bus.start()

    async def on_request(payload: dict) -> None:
        ...

    await bus.consume("tasks.requests", on_request)
    await bus.enqueue("tasks.requests", {"operation": "create_task"})
"""

import asyncio
import contextlib
import json
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis

from todo.core.errors import InfrastructureError, ValidationError
from todo.core.logging import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


class MessageBusError(InfrastructureError):
    """Message bus operation failed."""

    default_code = "MESSAGE_BUS_ERROR"


class MessageBus(ABC):
    """Abstract base class for message bus implementations."""

    @abstractmethod
    async def start(self) -> None:
        """Start the bus."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the bus and release connections."""

    @abstractmethod
    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        """
        Publish a JSON payload on ``channel``.

        Raises:
            MessageBusError: If the bus is not running or publishing failed
        """

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Deliver every payload published on ``channel`` to ``handler``."""

    @abstractmethod
    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        """Remove a subscription; unknown handlers are ignored."""

    @abstractmethod
    async def enqueue(self, queue: str, payload: dict[str, Any]) -> None:
        """
        Append a JSON payload to ``queue`` for exactly one consumer.

        Payloads wait on the queue until a consumer takes them.

        Raises:
            MessageBusError: If the bus is not running or enqueueing failed
        """

    @abstractmethod
    async def consume(self, queue: str, handler: MessageHandler) -> None:
        """Take payloads from ``queue``, competing with its other consumers."""

    @abstractmethod
    async def stop_consuming(self, queue: str, handler: MessageHandler) -> None:
        """Stop a consumer; unknown handlers are ignored."""

    @abstractmethod
    async def ping(self) -> dict[str, Any]:
        """
        Check connectivity.

        Raises:
            MessageBusError: If the bus cannot be reached
        """

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Whether the bus accepts publishes."""


def _validate_channel(channel: str) -> None:
    if not channel or not isinstance(channel, str):
        raise ValidationError("Channel name must be a non-empty string", field="channel")


def _validate_handler(handler: MessageHandler) -> None:
    if not callable(handler):
        raise ValidationError(f"Handler must be callable, got {type(handler)}")


async def _cancel_all(tasks: Iterable[asyncio.Task]) -> None:
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    for task in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def _deliver(channel: str, handler: MessageHandler, payload: dict[str, Any]) -> None:
    try:
        await handler(payload)
    except Exception as e:
        logger.exception(
            "Message handler failed",
            channel=channel,
            handler=getattr(handler, "__qualname__", repr(handler)),
            error=str(e),
        )


class InMemoryMessageBus(MessageBus):
    """
    In-process bus for development, tests and single-process deployments.

    Payloads are serialized to JSON and back on publish so that handlers see
    exactly what a networked bus would deliver. Each delivery runs as its own
    task; a failing handler is logged and does not affect the others.

    Every queue is an ``asyncio.Queue`` drained by one worker task per
    consumer; a payload is taken by exactly one worker.
    """

    def __init__(self):
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._queues: dict[str, asyncio.Queue] = {}
        self._consumers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._workers: dict[tuple[str, MessageHandler], asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        for queue, handlers in self._consumers.items():
            for handler in handlers:
                self._start_worker(queue, handler)
        logger.info("In-memory message bus started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        await _cancel_all(self._workers.values())
        self._workers.clear()
        await _cancel_all(self._pending)
        self._pending.clear()
        self._queues.clear()
        logger.info("In-memory message bus stopped")

    def _serialize(self, payload: dict[str, Any]) -> str:
        if not self._running:
            raise MessageBusError("Message bus is not running")
        try:
            return json.dumps(payload, default=str)
        except (TypeError, ValueError) as e:
            raise MessageBusError(f"Payload is not JSON serializable: {e}") from e

    def _spawn(self, channel: str, handler: MessageHandler, data: str) -> None:
        task = asyncio.create_task(_deliver(channel, handler, json.loads(data)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        _validate_channel(channel)
        data = self._serialize(payload)

        handlers = list(self._handlers.get(channel, ()))
        for handler in handlers:
            self._spawn(channel, handler, data)

        logger.debug("Published message", channel=channel, subscribers=len(handlers))

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        _validate_channel(channel)
        _validate_handler(handler)
        self._handlers[channel].append(handler)

    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        with contextlib.suppress(ValueError):
            self._handlers[channel].remove(handler)
        if not self._handlers[channel]:
            self._handlers.pop(channel, None)

    def _queue(self, queue: str) -> asyncio.Queue:
        if queue not in self._queues:
            self._queues[queue] = asyncio.Queue()
        return self._queues[queue]

    async def enqueue(self, queue: str, payload: dict[str, Any]) -> None:
        _validate_channel(queue)
        data = self._serialize(payload)
        self._queue(queue).put_nowait(data)
        logger.debug("Enqueued message", queue=queue, consumers=self.consumer_count(queue))

    async def consume(self, queue: str, handler: MessageHandler) -> None:
        _validate_channel(queue)
        _validate_handler(handler)
        self._consumers[queue].append(handler)
        if self._running:
            self._start_worker(queue, handler)

    async def stop_consuming(self, queue: str, handler: MessageHandler) -> None:
        with contextlib.suppress(ValueError):
            self._consumers[queue].remove(handler)
        if not self._consumers[queue]:
            self._consumers.pop(queue, None)
        worker = self._workers.pop((queue, handler), None)
        if worker is not None:
            await _cancel_all([worker])

    def _start_worker(self, queue: str, handler: MessageHandler) -> None:
        if (queue, handler) not in self._workers:
            self._workers[(queue, handler)] = asyncio.create_task(self._work(queue, handler))

    async def _work(self, queue: str, handler: MessageHandler) -> None:
        pending = self._queue(queue)
        while True:
            data = await pending.get()
            self._spawn(queue, handler, data)

    async def ping(self) -> dict[str, Any]:
        if not self._running:
            raise MessageBusError("Message bus is not running")
        return {
            "message": "in-memory bus running",
            "metadata": {"channels": len(self._handlers), "queues": len(self._consumers)},
        }

    def subscriber_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))

    def consumer_count(self, queue: str) -> int:
        return len(self._consumers.get(queue, ()))


class RedisMessageBus(MessageBus):
    """
    Redis bus for multi-process deployments.

    Channels use pub/sub: one listener task reads the pub/sub connection and
    fans messages out to the local handlers of each channel. Delivery is
    at-most-once; a message published while no process is subscribed is lost.

    Queues are Redis lists: ``enqueue`` is ``LPUSH`` and every local consumer
    runs a worker blocking on ``BRPOP``, so each payload is popped by exactly
    one consumer across all processes. Payloads wait in the list until a
    consumer takes them.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        client: aioredis.Redis | None = None,
        pop_timeout: float = 1.0,
    ):
        if client is None and not redis_url.startswith(("redis://", "rediss://")):
            raise ValidationError(
                "redis_url must start with 'redis://' or 'rediss://'", field="redis_url"
            )
        self.redis_url = redis_url
        self.pop_timeout = pop_timeout
        self._redis = client or aioredis.from_url(redis_url, decode_responses=True)
        self._pubsub = self._redis.pubsub()
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._consumers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._workers: dict[tuple[str, MessageHandler], asyncio.Task] = {}
        self._listener_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._running = False
        self._healthy = False
        self._start_time: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Connect to Redis and start the listener and queue workers.

        Raises:
            MessageBusError: If Redis is unreachable or the bus already runs
        """
        if self._running:
            raise MessageBusError("Redis message bus is already running")
        try:
            await self._redis.ping()
            if self._handlers:
                await self._pubsub.subscribe(*self._handlers)
        except Exception as e:
            raise MessageBusError(f"Failed to start Redis message bus: {e}") from e

        self._running = True
        self._healthy = True
        self._start_time = datetime.now()
        self._listener_task = asyncio.create_task(self._listen())
        for queue, handlers in self._consumers.items():
            for handler in handlers:
                self._start_worker(queue, handler)
        logger.info("Redis message bus started", redis_url=self.redis_url)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._listener_task and not self._listener_task.done():
            await _cancel_all([self._listener_task])

        await _cancel_all(self._workers.values())
        self._workers.clear()
        await _cancel_all(self._pending)
        self._pending.clear()

        try:
            await self._pubsub.aclose()
            await self._redis.aclose()
        except Exception as e:
            logger.warning("Error closing Redis connections", error=str(e))

        uptime = (datetime.now() - self._start_time).total_seconds() if self._start_time else 0
        logger.info("Redis message bus stopped", uptime_seconds=uptime)

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        _validate_channel(channel)
        if not self._running:
            raise MessageBusError("Redis message bus is not running")
        try:
            receivers = await self._redis.publish(channel, json.dumps(payload, default=str))
        except Exception as e:
            logger.exception("Failed to publish message to Redis", channel=channel, error=str(e))
            raise MessageBusError(f"Redis publish failed: {e}") from e
        logger.debug("Published message to Redis", channel=channel, subscribers=receivers)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        _validate_channel(channel)
        _validate_handler(handler)
        first = channel not in self._handlers
        self._handlers[channel].append(handler)
        if first and self._running:
            await self._pubsub.subscribe(channel)
            logger.info("Subscribed to Redis channel", channel=channel)

    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        with contextlib.suppress(ValueError):
            self._handlers[channel].remove(handler)
        if not self._handlers[channel]:
            self._handlers.pop(channel, None)
            if self._running:
                await self._pubsub.unsubscribe(channel)

    async def enqueue(self, queue: str, payload: dict[str, Any]) -> None:
        _validate_channel(queue)
        if not self._running:
            raise MessageBusError("Redis message bus is not running")
        try:
            length = await self._redis.lpush(queue, json.dumps(payload, default=str))
        except Exception as e:
            logger.exception("Failed to enqueue message in Redis", queue=queue, error=str(e))
            raise MessageBusError(f"Redis enqueue failed: {e}") from e
        logger.debug("Enqueued message in Redis", queue=queue, queue_length=length)

    async def consume(self, queue: str, handler: MessageHandler) -> None:
        _validate_channel(queue)
        _validate_handler(handler)
        self._consumers[queue].append(handler)
        if self._running:
            self._start_worker(queue, handler)
        logger.info("Consuming Redis queue", queue=queue)

    async def stop_consuming(self, queue: str, handler: MessageHandler) -> None:
        with contextlib.suppress(ValueError):
            self._consumers[queue].remove(handler)
        if not self._consumers[queue]:
            self._consumers.pop(queue, None)
        worker = self._workers.pop((queue, handler), None)
        if worker is not None:
            await _cancel_all([worker])

    async def ping(self) -> dict[str, Any]:
        try:
            await self._redis.ping()
        except Exception as e:
            self._healthy = False
            raise MessageBusError(f"Redis unreachable: {e}") from e
        self._healthy = True
        return {
            "message": "redis reachable",
            "metadata": {"channels": len(self._handlers), "queues": len(self._consumers)},
        }

    def is_healthy(self) -> bool:
        return self._running and self._healthy

    def _start_worker(self, queue: str, handler: MessageHandler) -> None:
        if (queue, handler) not in self._workers:
            self._workers[(queue, handler)] = asyncio.create_task(self._work(queue, handler))

    async def _work(self, queue: str, handler: MessageHandler) -> None:
        """Pop payloads from a Redis list and hand each to ``handler``."""
        while self._running:
            try:
                item = await self._redis.brpop([queue], timeout=self.pop_timeout)
                if not item:
                    await asyncio.sleep(0.05)
                    continue
                _, data = item
                self._dispatch(queue, [handler], data)
                self._healthy = True
            except Exception as ex:
                logger.exception("Redis queue worker error", queue=queue, error=str(ex))
                self._healthy = False
                await asyncio.sleep(1.0)

    async def _listen(self) -> None:
        """Read pub/sub messages and dispatch them to local handlers."""
        while self._running:
            try:
                if not self._pubsub.subscribed:
                    await asyncio.sleep(0.1)
                    continue
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if not message:
                    await asyncio.sleep(0.05)
                    continue
                await self._process_message(message)
                self._healthy = True
            except Exception as ex:
                logger.exception("Redis bus listen loop error", error=str(ex))
                self._healthy = False
                await asyncio.sleep(1.0)

    async def _process_message(self, message: dict[str, Any]) -> None:
        channel = message.get("channel")
        if isinstance(channel, bytes):
            channel = channel.decode()
        self._dispatch(channel, list(self._handlers.get(channel, ())), message["data"])

    def _dispatch(self, channel: str, handlers: list[MessageHandler], data: Any) -> None:
        try:
            payload = json.loads(data)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding undecodable message", channel=channel, error=str(e))
            return
        if not isinstance(payload, dict):
            logger.warning("Discarding non-object message", channel=channel)
            return

        for handler in handlers:
            task = asyncio.create_task(_deliver(channel, handler, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)


def create_message_bus(redis_url: str | None) -> MessageBus:
    """Redis bus when a URL is configured, otherwise in-memory."""
    if redis_url:
        return RedisMessageBus(redis_url)
    return InMemoryMessageBus()


__all__ = [
    "InMemoryMessageBus",
    "MessageBus",
    "MessageBusError",
    "MessageHandler",
    "RedisMessageBus",
    "create_message_bus",
]
