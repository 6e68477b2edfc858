"""Module registration and application bootstrap."""

from todo.core.modules.bootstrap import ApplicationContext, bootstrap
from todo.core.modules.registrar import (
    ModuleRegistrar,
    RegistrationContext,
    RegistrationState,
)

__all__ = [
    "ApplicationContext",
    "ModuleRegistrar",
    "RegistrationContext",
    "RegistrationState",
    "bootstrap",
]
