"""
In-process dispatch strategy.

Translates a contract request into the owning module's command or query,
executes it on the module's CQRS bus in the caller's process and maps the
handler outcome back into a ``Result``.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from todo.core.contracts import CapabilityError, CapabilityMessage, Operation, Result
from todo.core.cqrs import Command, CommandBus, Query, QueryBus
from todo.core.dispatch.base import CapabilityStrategy
from todo.core.enums import ServiceMode
from todo.core.errors import (
    ConfigurationError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from todo.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InProcessRoute:
    """How one operation maps onto the module's application layer."""

    to_message: Callable[[CapabilityMessage], Command | Query]
    to_response: Callable[[Any], CapabilityMessage]


class InProcessStrategy(CapabilityStrategy):
    """
    Dispatches operations to the module's command and query buses.

    Exception mapping:
        ValidationError      -> VALIDATION
        NotFoundError        -> NOT_FOUND
        ConfigurationError   -> UNEXPECTED (missing handler or route)
        InfrastructureError  -> UNAVAILABLE
        anything else        -> UNEXPECTED, logged with traceback
    """

    mode = ServiceMode.IN_PROCESS

    def __init__(
        self,
        module_name: str,
        command_bus: CommandBus,
        query_bus: QueryBus,
        routes: Mapping[str, InProcessRoute],
        probe: Callable[[], Awaitable[dict[str, Any] | None]] | None = None,
    ):
        super().__init__(module_name)
        self._command_bus = command_bus
        self._query_bus = query_bus
        self._routes = dict(routes)
        self._probe = probe

    async def _dispatch(self, operation: Operation, request: CapabilityMessage) -> Result:
        route = self._routes.get(operation.name)
        if route is None:
            logger.error(
                "No in-process route for operation",
                module=self.module_name,
                operation=operation.name,
            )
            return Result.fail(
                CapabilityError.unexpected(
                    f"No handler for {self.module_name}.{operation.name}"
                )
            )

        try:
            message = route.to_message(request)
            if isinstance(message, Command):
                outcome = await self._command_bus.execute(message)
            else:
                outcome = await self._query_bus.execute(message)
            return Result.ok(route.to_response(outcome))
        except ValidationError as e:
            return Result.fail(CapabilityError.validation(e.field, e.message))
        except NotFoundError as e:
            return Result.fail(CapabilityError.not_found(str(e.identifier), e.message))
        except ConfigurationError as e:
            logger.error(
                "In-process dispatch misconfigured",
                module=self.module_name,
                operation=operation.name,
                error=e.message,
            )
            return Result.fail(
                CapabilityError.unexpected(
                    f"No handler for {self.module_name}.{operation.name}"
                )
            )
        except InfrastructureError as e:
            logger.warning(
                "Module dependency unavailable",
                module=self.module_name,
                operation=operation.name,
                error=e.message,
            )
            return Result.fail(CapabilityError.unavailable(e.user_message))
        except Exception as e:
            logger.exception(
                "Unhandled error in in-process dispatch",
                module=self.module_name,
                operation=operation.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return Result.fail(
                CapabilityError.unexpected(
                    f"Unexpected error in {self.module_name}.{operation.name}"
                )
            )

    async def health_check(self) -> dict[str, Any]:
        if self._probe is None:
            return await super().health_check()
        return await self._probe() or {}


__all__ = ["InProcessRoute", "InProcessStrategy"]
