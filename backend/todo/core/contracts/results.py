"""
Result and error values returned across capability contracts.

A contract operation never raises for an expected failure. It returns a
``Result`` holding either the response value or a ``CapabilityError`` whose
kind is one of a small fixed taxonomy. Transport and persistence details stay
on the producing side.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class CapabilityErrorKind(Enum):
    """Error kinds visible to contract callers."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class CapabilityError:
    """
    Classified failure of a contract operation.

    Only ``VALIDATION`` errors carry ``field`` and only ``NOT_FOUND`` errors
    carry ``resource_id``; ``message`` is a human-readable summary.
    """

    kind: CapabilityErrorKind
    message: str
    field: str | None = None
    resource_id: str | None = None

    @classmethod
    def validation(cls, field: str | None, message: str) -> "CapabilityError":
        return cls(CapabilityErrorKind.VALIDATION, message, field=field)

    @classmethod
    def not_found(cls, resource_id: str, message: str | None = None) -> "CapabilityError":
        return cls(
            CapabilityErrorKind.NOT_FOUND,
            message or f"Resource not found: {resource_id}",
            resource_id=str(resource_id),
        )

    @classmethod
    def unavailable(cls, reason: str) -> "CapabilityError":
        return cls(CapabilityErrorKind.UNAVAILABLE, reason)

    @classmethod
    def unexpected(cls, summary: str = "Unexpected error") -> "CapabilityError":
        return cls(CapabilityErrorKind.UNEXPECTED, summary)

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by the HTTP and message-bus transports."""
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        if self.resource_id is not None:
            data["resource_id"] = self.resource_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CapabilityError":
        """
        Rebuild an error from its wire form.

        Raises:
            ValueError: If the kind is unknown or the message is missing
        """
        kind = CapabilityErrorKind(data["kind"])
        message = data.get("message")
        if not isinstance(message, str):
            raise ValueError("Capability error message must be a string")
        return cls(
            kind,
            message,
            field=data.get("field"),
            resource_id=data.get("resource_id"),
        )


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Success value or classified error.

    Usage Example:
        result = await tasks.create_task(CreateTaskRequest(title="Write docs"))
        if result.is_success():
            print(result.value.task_id)
        else:
            print(result.error.kind)
    """

    value: T | None = None
    error: CapabilityError | None = None

    def __post_init__(self):
        if self.error is not None and self.value is not None:
            raise ValueError("Result cannot hold both a value and an error")

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: CapabilityError) -> "Result[T]":
        return cls(error=error)

    def is_success(self) -> bool:
        return self.error is None

    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """
        Return the value.

        Raises:
            RuntimeError: If the result is a failure
        """
        if self.error is not None:
            raise RuntimeError(f"{self.error.kind.value}: {self.error.message}")
        return self.value


__all__ = ["CapabilityError", "CapabilityErrorKind", "Result"]
