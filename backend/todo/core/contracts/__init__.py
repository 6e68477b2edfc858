"""
Core contract system for module communication.

Provides capability contracts, the ``Result``/``CapabilityError`` values that
cross them, and the registry that holds the bound contract of every module.
"""

from .base import CapabilityContract, CapabilityMessage, Operation, OperationKind
from .registry import CapabilityRegistry
from .results import CapabilityError, CapabilityErrorKind, Result

__all__ = [
    "CapabilityContract",
    "CapabilityError",
    "CapabilityErrorKind",
    "CapabilityMessage",
    "CapabilityRegistry",
    "Operation",
    "OperationKind",
    "Result",
]
