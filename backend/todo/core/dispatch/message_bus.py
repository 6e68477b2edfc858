"""
Message-bus dispatch strategy and its serving counterpart.

Requests are enqueued on the ``<module>.requests`` queue as JSON envelopes;
each is taken by exactly one responder, however many processes serve the
module:

    {"correlation_id": "...", "module": "tasks", "operation": "create_task",
     "payload": {...}, "reply_to": "tasks.replies.<id>" | null, "sent_at": "..."}

Replies are published on the envelope's ``reply_to`` channel:

    {"correlation_id": "...", "ok": true, "payload": {...}}
    {"correlation_id": "...", "ok": false, "error": {"kind": "...", ...}}

A fire-and-forget envelope has ``reply_to`` set to ``null`` and receives no
reply. Only commands may be sent that way; queries always wait for a reply.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from todo.core.config import ModuleConfiguration
from todo.core.contracts import (
    CapabilityContract,
    CapabilityError,
    CapabilityMessage,
    Operation,
    Result,
)
from todo.core.dispatch.base import CapabilityStrategy
from todo.core.enums import MessagingSemantics, ServiceMode
from todo.core.errors import ConfigurationError
from todo.core.events.bus import MessageBus, MessageBusError
from todo.core.logging import get_logger

logger = get_logger(__name__)


def requests_channel(module_name: str) -> str:
    return f"{module_name.lower()}.requests"


@dataclass(frozen=True)
class Accepted(CapabilityMessage):
    """Acknowledgement of a fire-and-forget command."""

    correlation_id: str


class MessageBusStrategy(CapabilityStrategy):
    """
    Sends operations to whichever process serves the module on the bus.

    Each instance listens on its own reply channel and matches replies to
    waiting calls by correlation id. A call that gets no reply within
    ``timeout_seconds`` fails with ``UNAVAILABLE``.
    """

    mode = ServiceMode.MESSAGE_BUS

    def __init__(self, config: ModuleConfiguration, bus: MessageBus):
        if bus is None:
            raise ConfigurationError(
                f"Module '{config.name}' uses message-bus dispatch but no bus is configured",
                config_key=f"modules.{config.name}.service_mode",
            )
        super().__init__(config.name)
        self.config = config
        self.bus = bus
        self.requests_channel = requests_channel(config.name)
        self.reply_channel = f"{config.name}.replies.{uuid4().hex}"
        self._pending: dict[str, asyncio.Future] = {}
        self._subscribed = False
        self._subscribe_lock = asyncio.Lock()

    @property
    def fire_and_forget(self) -> bool:
        return self.config.messaging == MessagingSemantics.FIRE_AND_FORGET

    async def _dispatch(self, operation: Operation, request: CapabilityMessage) -> Result:
        correlation_id = str(uuid4())

        if self.fire_and_forget and operation.is_command:
            try:
                await self.bus.enqueue(
                    self.requests_channel,
                    self._envelope(operation, request, correlation_id, reply_to=None),
                )
            except MessageBusError as e:
                return self._unavailable(operation, e.message)
            return Result.ok(Accepted(correlation_id=correlation_id))

        try:
            await self._ensure_reply_subscription()
        except MessageBusError as e:
            return self._unavailable(operation, e.message)

        future = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = future
        try:
            await self.bus.enqueue(
                self.requests_channel,
                self._envelope(operation, request, correlation_id, reply_to=self.reply_channel),
            )
            reply = await asyncio.wait_for(future, timeout=self.config.timeout_seconds)
        except MessageBusError as e:
            return self._unavailable(operation, e.message)
        except TimeoutError:
            return self._unavailable(
                operation,
                f"No reply from {self.module_name} within {self.config.timeout_seconds}s",
            )
        finally:
            self._pending.pop(correlation_id, None)

        return self._parse_reply(operation, reply)

    def _envelope(
        self,
        operation: Operation,
        request: CapabilityMessage,
        correlation_id: str,
        reply_to: str | None,
    ) -> dict[str, Any]:
        return {
            "correlation_id": correlation_id,
            "module": self.module_name,
            "operation": operation.name,
            "payload": request.to_dict(),
            "reply_to": reply_to,
            "sent_at": datetime.now(UTC).isoformat(),
        }

    async def _ensure_reply_subscription(self) -> None:
        if self._subscribed:
            return
        async with self._subscribe_lock:
            if not self._subscribed:
                await self.bus.subscribe(self.reply_channel, self._on_reply)
                self._subscribed = True

    async def _on_reply(self, reply: dict[str, Any]) -> None:
        future = self._pending.get(reply.get("correlation_id"))
        if future is None or future.done():
            logger.debug(
                "Discarding unmatched reply",
                module=self.module_name,
                correlation_id=reply.get("correlation_id"),
            )
            return
        future.set_result(reply)

    def _parse_reply(self, operation: Operation, reply: dict[str, Any]) -> Result:
        try:
            if reply.get("ok"):
                return Result.ok(operation.response_type.from_dict(reply["payload"]))
            return Result.fail(CapabilityError.from_dict(reply["error"]))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                "Malformed reply on message bus",
                module=self.module_name,
                operation=operation.name,
                error=str(e),
            )
            return Result.fail(
                CapabilityError.unexpected(
                    f"Malformed reply from {self.module_name}.{operation.name}"
                )
            )

    def _unavailable(self, operation: Operation, reason: str) -> Result:
        logger.warning(
            "Message-bus dispatch failed",
            module=self.module_name,
            operation=operation.name,
            reason=reason,
        )
        return Result.fail(CapabilityError.unavailable(reason))

    async def health_check(self) -> dict[str, Any]:
        return await self.bus.ping()

    async def aclose(self) -> None:
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()
        if self._subscribed:
            self._subscribed = False
            with contextlib.suppress(MessageBusError):
                await self.bus.unsubscribe(self.reply_channel, self._on_reply)


class MessageBusResponder:
    """
    Answers ``<module>.requests`` envelopes using a local strategy.

    Usage Example:
        responder = MessageBusResponder(TasksCapability, in_process, bus)
        await responder.start()
    """

    def __init__(
        self,
        contract_type: type[CapabilityContract],
        strategy: CapabilityStrategy,
        bus: MessageBus,
    ):
        self.contract_type = contract_type
        self.strategy = strategy
        self.bus = bus
        self.channel = requests_channel(contract_type.module_name)
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.bus.consume(self.channel, self.handle)
        self._started = True
        logger.info("Serving module requests on message bus", channel=self.channel)

    async def stop(self) -> None:
        if not self._started:
            return
        await self.bus.stop_consuming(self.channel, self.handle)
        self._started = False

    async def handle(self, envelope: dict[str, Any]) -> None:
        correlation_id = envelope.get("correlation_id")
        reply_to = envelope.get("reply_to")
        result = await self._execute(envelope)

        if not reply_to:
            if result.is_failure():
                logger.warning(
                    "Fire-and-forget request failed",
                    channel=self.channel,
                    operation=envelope.get("operation"),
                    correlation_id=correlation_id,
                    error=result.error.to_dict(),
                )
            return

        reply: dict[str, Any] = {"correlation_id": correlation_id, "ok": result.is_success()}
        if result.is_success():
            reply["payload"] = result.value.to_dict()
        else:
            reply["error"] = result.error.to_dict()
        await self.bus.publish(reply_to, reply)

    async def _execute(self, envelope: dict[str, Any]) -> Result:
        try:
            operation = self.contract_type.get_operation(str(envelope.get("operation")))
        except KeyError:
            return Result.fail(
                CapabilityError.unexpected(
                    f"Unknown operation '{envelope.get('operation')}' for {self.contract_type.module_name}"
                )
            )

        try:
            request = operation.request_type.from_dict(envelope.get("payload"))
        except (TypeError, ValueError) as e:
            return Result.fail(CapabilityError.validation(None, f"Invalid request payload: {e}"))

        return await self.strategy.invoke(operation, request)


__all__ = ["Accepted", "MessageBusResponder", "MessageBusStrategy", "requests_channel"]
