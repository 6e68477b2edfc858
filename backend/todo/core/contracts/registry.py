"""
Capability registry for module communication.

Holds the bound contract instance of every enabled module, keyed by contract
type. The registry is filled during startup and then sealed; after sealing
it is read-only and safe to share between concurrent requests.
"""

import threading
from collections.abc import Iterator
from typing import TypeVar

from todo.core.contracts.base import CapabilityContract
from todo.core.errors import ConfigurationError, ValidationError

C = TypeVar("C", bound=CapabilityContract)


class CapabilityRegistry:
    """
    Write-once registry of bound capability contracts.

    Usage Example:
        registry = CapabilityRegistry()
        registry.register(TasksCapability, bound_tasks)
        registry.seal()

        tasks = registry.get(TasksCapability)
    """

    def __init__(self) -> None:
        self._contracts: dict[type[CapabilityContract], CapabilityContract] = {}
        self._lock = threading.RLock()
        self._sealed = False

    def register(self, contract_type: type[C], contract: C) -> None:
        """
        Register the bound instance for a contract type.

        Raises:
            ValidationError: If ``contract`` does not implement ``contract_type``
            ConfigurationError: If the registry is sealed or the type is taken
        """
        if not isinstance(contract, contract_type):
            raise ValidationError(
                f"Contract must be instance of {contract_type.__name__}, got {type(contract).__name__}"
            )

        with self._lock:
            if self._sealed:
                raise ConfigurationError(
                    f"Capability registry is sealed; cannot register {contract_type.__name__}"
                )
            if contract_type in self._contracts:
                raise ConfigurationError(
                    f"Contract {contract_type.__name__} is already registered"
                )
            self._contracts[contract_type] = contract

    def seal(self) -> None:
        """Forbid further registration."""
        with self._lock:
            self._sealed = True

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def get(self, contract_type: type[C]) -> C:
        """
        Get the bound contract for ``contract_type``.

        Raises:
            LookupError: If the module is disabled or was never registered
        """
        try:
            return self._contracts[contract_type]  # type: ignore[return-value]
        except KeyError:
            raise LookupError(
                f"No capability registered for {contract_type.__name__}"
            ) from None

    def find(self, contract_type: type[C]) -> C | None:
        """Get the bound contract or ``None``."""
        return self._contracts.get(contract_type)  # type: ignore[return-value]

    def find_by_module(self, module_name: str) -> CapabilityContract | None:
        """Find a contract by its module name (case-insensitive)."""
        wanted = module_name.lower()
        for contract_type, contract in self._contracts.items():
            if contract_type.module_name.lower() == wanted:
                return contract
        return None

    def __contains__(self, contract_type: object) -> bool:
        return contract_type in self._contracts

    def __iter__(self) -> Iterator[type[CapabilityContract]]:
        return iter(list(self._contracts))

    def __len__(self) -> int:
        return len(self._contracts)

    def module_names(self) -> list[str]:
        return sorted(contract_type.module_name for contract_type in self._contracts)
