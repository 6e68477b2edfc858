"""
Base classes for module capability contracts.

A capability contract is the operation set one bounded context exposes to
the rest of the application. It is transport-agnostic: each contract
instance forwards its calls to the strategy bound at startup, and callers
never learn which transport serviced a call.
"""

import asyncio
import dataclasses
import string
import types
import typing
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar
from urllib.parse import quote
from uuid import UUID

from todo.core.contracts.results import Result

if TYPE_CHECKING:
    from todo.core.dispatch.base import CapabilityStrategy

T = TypeVar("T", bound="CapabilityMessage")


class CapabilityMessage:
    """
    Mixin for request, response and event dataclasses.

    Subclasses are plain (frozen) dataclasses; equality is structural.
    ``to_dict`` produces JSON-ready values and ``from_dict`` reverses it,
    converting ISO timestamps and UUID strings back using the field
    annotations. Values whose JSON type does not match a ``str``, ``bool``,
    ``int``, ``float``, ``datetime`` or ``UUID`` annotation are rejected.
    """

    def to_dict(self) -> dict[str, Any]:
        data = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, UUID):
                value = str(value)
            elif isinstance(value, Enum):
                value = value.value
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        """
        Create message from dictionary; unknown keys are ignored.

        Raises:
            TypeError: If a required field is missing or has the wrong type
            ValueError: If a value cannot be converted
        """
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} payload must be an object")

        hints = typing.get_type_hints(cls)
        kwargs = {}
        for f in dataclasses.fields(cls):
            if f.name not in data:
                continue
            try:
                kwargs[f.name] = _coerce(data[f.name], hints.get(f.name))
            except TypeError as e:
                raise TypeError(f"{cls.__name__}.{f.name}: {e}") from e
        return cls(**kwargs)


def _coerce(value: Any, hint: Any) -> Any:
    if value is None or hint is None:
        return value

    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        for arg in typing.get_args(hint):
            if arg is type(None):
                continue
            return _coerce(value, arg)
        return value

    if hint is datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return datetime.fromisoformat(value)
        raise TypeError(f"expected ISO timestamp, got {type(value).__name__}")
    if hint is UUID:
        if isinstance(value, UUID):
            return value
        if isinstance(value, str):
            return UUID(value)
        raise TypeError(f"expected UUID string, got {type(value).__name__}")
    if isinstance(hint, type) and issubclass(hint, Enum):
        return value if isinstance(value, hint) else hint(value)
    if hint in _SCALARS:
        return _check_scalar(value, hint)
    return value


_SCALARS = (str, bool, int, float)


def _check_scalar(value: Any, hint: type) -> Any:
    # bool is an int subclass; JSON true/false must not pass as numbers.
    if hint is not bool and isinstance(value, bool):
        raise TypeError(f"expected {hint.__name__}, got bool")
    if hint is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, hint):
        raise TypeError(f"expected {hint.__name__}, got {type(value).__name__}")
    return value


class OperationKind(Enum):
    """Whether an operation changes state."""

    COMMAND = "command"
    QUERY = "query"


@dataclass(frozen=True)
class Operation:
    """
    Descriptor of one contract operation.

    ``method`` and ``path`` give the REST representation; ``path`` is
    relative to the module endpoint and may reference request fields,
    e.g. ``/{task_id}/complete``.
    """

    name: str
    kind: OperationKind
    request_type: type[CapabilityMessage]
    response_type: type[CapabilityMessage]
    method: str = "POST"
    path: str = ""
    success_status: int = 200

    @property
    def is_command(self) -> bool:
        return self.kind == OperationKind.COMMAND

    def render_path(self, request: CapabilityMessage) -> str:
        """Fill path placeholders from request fields (URL-quoted)."""
        values = {key: quote(str(value), safe="") for key, value in request.to_dict().items()}
        return self.path.format(**values)

    @property
    def has_body(self) -> bool:
        return self.method.upper() not in ("GET", "DELETE")

    def body_for(self, request: CapabilityMessage) -> dict[str, Any] | None:
        """JSON body for the REST call; ``None`` for bodiless methods."""
        if not self.has_body:
            return None
        return self._non_path_fields(request)

    def params_for(self, request: CapabilityMessage) -> dict[str, Any]:
        """Query string for bodiless methods (``None`` values dropped)."""
        if self.has_body:
            return {}
        return {
            k: v for k, v in self._non_path_fields(request).items() if v is not None
        }

    def resource_id_for(self, request: CapabilityMessage) -> str | None:
        """Value of the first path placeholder, if the path has one."""
        placeholders = self._placeholders()
        if not placeholders:
            return None
        return str(request.to_dict().get(placeholders[0]))

    def _placeholders(self) -> list[str]:
        return [name for _, name, _, _ in string.Formatter().parse(self.path) if name]

    def _non_path_fields(self, request: CapabilityMessage) -> dict[str, Any]:
        placeholders = set(self._placeholders())
        return {k: v for k, v in request.to_dict().items() if k not in placeholders}


class CapabilityContract:
    """
    Base class for module capability contracts.

    Each bounded context subclasses this once, declares ``module_name``,
    ``version`` and its ``operations`` table, and adds one coroutine per
    operation that calls ``_invoke``. Instances are created by the module
    registrar around the strategy the selector bound at startup.
    """

    module_name: ClassVar[str]
    version: ClassVar[str] = "1.0"
    operations: ClassVar[tuple[Operation, ...]] = ()

    def __init__(self, strategy: "CapabilityStrategy"):
        self._strategy = strategy

    @classmethod
    def get_operation(cls, name: str) -> Operation:
        """
        Look up an operation by name.

        Raises:
            KeyError: If the contract has no such operation
        """
        for operation in cls.operations:
            if operation.name == name:
                return operation
        raise KeyError(f"{cls.module_name} has no operation '{name}'")

    async def _invoke(
        self,
        operation: Operation,
        request: CapabilityMessage,
        cancel: asyncio.Event | None = None,
    ) -> Result:
        return await self._strategy.invoke(operation, request, cancel=cancel)

    async def aclose(self) -> None:
        """Release transport resources held by the bound strategy."""
        await self._strategy.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(module={self.module_name}, version={self.version})"


__all__ = [
    "CapabilityContract",
    "CapabilityMessage",
    "Operation",
    "OperationKind",
]
