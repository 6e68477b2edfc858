"""
Dispatch strategy interface.

A strategy services contract operations over one transport. Strategies
never raise for expected failures: every outcome is a ``Result`` whose
error, if any, is already classified into a ``CapabilityErrorKind``.
"""

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, ClassVar

from todo.core.contracts import CapabilityError, CapabilityMessage, Operation, Result
from todo.core.enums import ServiceMode

CANCELLED_REASON = "cancelled"


class CapabilityStrategy(ABC):
    """
    Base class for the in-process, HTTP and message-bus strategies.

    Subclasses implement ``_dispatch``; ``invoke`` adds cooperative
    cancellation on top of it.
    """

    mode: ClassVar[ServiceMode]

    def __init__(self, module_name: str):
        self.module_name = module_name

    async def invoke(
        self,
        operation: Operation,
        request: CapabilityMessage,
        cancel: asyncio.Event | None = None,
    ) -> Result:
        """
        Perform ``operation`` with ``request``.

        Setting ``cancel`` aborts in-flight work and yields an
        ``UNAVAILABLE("cancelled")`` result. Cancelling the calling task
        propagates ``CancelledError`` as usual.
        """
        if cancel is None:
            return await self._dispatch(operation, request)
        return await run_cancellable(self._dispatch(operation, request), cancel)

    @abstractmethod
    async def _dispatch(self, operation: Operation, request: CapabilityMessage) -> Result:
        """Perform the call over this strategy's transport."""

    async def health_check(self) -> dict[str, Any]:
        """
        Check the transport this strategy depends on.

        Returns a mapping with ``message`` and ``metadata``; raises on failure.
        """
        return {"message": f"{self.mode.value} dispatch available"}

    async def aclose(self) -> None:
        """Release transport resources."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(module={self.module_name})"


def cancelled_result() -> Result:
    return Result.fail(CapabilityError.unavailable(CANCELLED_REASON))


async def run_cancellable(work: Awaitable[Result], cancel: asyncio.Event) -> Result:
    """Await ``work`` unless ``cancel`` is set first."""
    if cancel.is_set():
        if asyncio.iscoroutine(work):
            work.close()
        return cancelled_result()

    work_task = asyncio.ensure_future(work)
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {work_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work_task.cancel()
        cancel_task.cancel()
        raise

    if work_task in done:
        cancel_task.cancel()
        return work_task.result()

    work_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await work_task
    return cancelled_result()


__all__ = ["CANCELLED_REASON", "CapabilityStrategy", "cancelled_result", "run_cancellable"]
