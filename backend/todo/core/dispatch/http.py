"""
HTTP dispatch strategy.

Renders each operation as the module's REST call against the configured
endpoint. Transient failures are retried with exponential backoff; all
other failures are classified once and returned without retry.

Status classification:
    2xx                    -> success, body parsed into the response type
    404                    -> NOT_FOUND
    429, 502, 503, 504     -> transient, retried, then UNAVAILABLE
    other 4xx              -> VALIDATION
    other 5xx              -> UNEXPECTED
    connect error/timeout  -> transient, retried, then UNAVAILABLE
    malformed 2xx payload  -> UNEXPECTED
    undecodable body       -> UNEXPECTED
    any other httpx error  -> UNEXPECTED
"""

import json
from typing import Any
from urllib.parse import urlsplit
from uuid import uuid4

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from todo import __version__
from todo.core.config import ModuleConfiguration
from todo.core.contracts import CapabilityError, CapabilityMessage, Operation, Result
from todo.core.dispatch.base import CapabilityStrategy
from todo.core.enums import ServiceMode
from todo.core.errors import ConfigurationError, ExternalServiceError
from todo.core.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})
MAX_BACKOFF_SECONDS = 5.0


class TransientHttpError(Exception):
    """Failure worth retrying: network error or transient status."""

    def __init__(self, reason: str, status_code: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class UnexpectedHttpError(Exception):
    """Failure not worth retrying that never produced a usable response."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class HttpStrategy(CapabilityStrategy):
    """
    Calls a remote deployment of the module over REST.

    Usage Example:
        strategy = HttpStrategy(config)
        result = await strategy.invoke(
            TasksCapability.get_operation("get_task"),
            GetTaskRequest(task_id=task_id),
        )
    """

    mode = ServiceMode.HTTP

    def __init__(
        self,
        config: ModuleConfiguration,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not config.endpoint:
            raise ConfigurationError(
                f"Module '{config.name}' uses HTTP dispatch but has no endpoint",
                config_key=f"modules.{config.name}.endpoint",
            )
        super().__init__(config.name)
        self.config = config
        self.endpoint = config.endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
            headers={
                "Accept": "application/json",
                "User-Agent": f"todo-backend/{__version__}",
            },
        )

    @property
    def max_attempts(self) -> int:
        return self.config.retry_attempts + 1

    def url_for(self, operation: Operation, request: CapabilityMessage) -> str:
        return self.endpoint + operation.render_path(request)

    async def _dispatch(self, operation: Operation, request: CapabilityMessage) -> Result:
        url = self.url_for(operation, request)
        correlation_id = str(uuid4())

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.retry_backoff_seconds, max=MAX_BACKOFF_SECONDS
            ),
            retry=retry_if_exception_type(TransientHttpError),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send(operation, request, url, correlation_id)
        except TransientHttpError as e:
            logger.warning(
                "Remote module unavailable after retries",
                module=self.module_name,
                operation=operation.name,
                url=url,
                attempts=self.max_attempts,
                reason=e.reason,
                correlation_id=correlation_id,
            )
            return Result.fail(CapabilityError.unavailable(e.reason))
        except UnexpectedHttpError as e:
            logger.error(
                "Remote module call failed",
                module=self.module_name,
                operation=operation.name,
                url=url,
                error=e.reason,
                error_type=type(e.__cause__).__name__,
                correlation_id=correlation_id,
                exc_info=e,
            )
            return Result.fail(CapabilityError.unexpected(e.reason))

        return self._classify(operation, request, response)

    async def _send(
        self,
        operation: Operation,
        request: CapabilityMessage,
        url: str,
        correlation_id: str,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                operation.method,
                url,
                json=operation.body_for(request),
                params=operation.params_for(request) or None,
                headers={"X-Correlation-ID": correlation_id},
            )
        except httpx.TimeoutException as e:
            raise TransientHttpError(f"Timed out calling {self.module_name}: {e!s}") from e
        except httpx.TransportError as e:
            raise TransientHttpError(f"Could not reach {self.module_name}: {e!s}") from e
        except httpx.DecodingError as e:
            raise UnexpectedHttpError(
                f"Malformed response from {self.module_name}.{operation.name}"
            ) from e
        except httpx.HTTPError as e:
            raise UnexpectedHttpError(
                f"Call to {self.module_name}.{operation.name} failed: {e!s}"
            ) from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientHttpError(
                f"{self.module_name} responded {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _classify(
        self, operation: Operation, request: CapabilityMessage, response: httpx.Response
    ) -> Result:
        status = response.status_code

        if response.is_success:
            try:
                return Result.ok(operation.response_type.from_dict(response.json()))
            except (json.JSONDecodeError, TypeError, ValueError, KeyError) as e:
                logger.error(
                    "Malformed response from remote module",
                    module=self.module_name,
                    operation=operation.name,
                    status_code=status,
                    error=str(e),
                )
                return Result.fail(
                    CapabilityError.unexpected(
                        f"Malformed response from {self.module_name}.{operation.name}"
                    )
                )

        message, details = _error_body(response)

        if status == 404:
            resource_id = (
                details.get("resource_id")
                or details.get("identifier")
                or operation.resource_id_for(request)
                or operation.name
            )
            return Result.fail(CapabilityError.not_found(str(resource_id), message))

        if 400 <= status < 500:
            return Result.fail(
                CapabilityError.validation(
                    details.get("field"), message or f"Rejected with status {status}"
                )
            )

        logger.error(
            "Remote module failed",
            module=self.module_name,
            operation=operation.name,
            status_code=status,
            error=message,
        )
        return Result.fail(
            CapabilityError.unexpected(f"{self.module_name} responded {status}")
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying remote module call",
            module=self.module_name,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            reason=str(exc),
        )

    @property
    def health_url(self) -> str:
        parts = urlsplit(self.endpoint)
        return f"{parts.scheme}://{parts.netloc}{self.config.health_path}"

    async def health_check(self) -> dict[str, Any]:
        try:
            response = await self._client.get(self.health_url)
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.module_name, f"health probe failed: {e!s}") from e

        if not response.is_success:
            raise ExternalServiceError(
                self.module_name,
                "health probe returned non-success status",
                service_status_code=response.status_code,
            )
        return {
            "message": f"{self.module_name} reachable",
            "metadata": {"url": self.health_url, "status_code": response.status_code},
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_body(response: httpx.Response) -> tuple[str | None, dict[str, Any]]:
    """Extract ``message`` and ``details`` from a REST error body, if present."""
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return (response.text or None), {}
    if not isinstance(data, dict):
        return None, {}
    details = data.get("details")
    if not isinstance(details, dict):
        details = {}
    message = data.get("message")
    return (message if isinstance(message, str) else None), details


__all__ = ["TRANSIENT_STATUS_CODES", "HttpStrategy", "TransientHttpError", "UnexpectedHttpError"]
