"""
Inter-module dispatch.

One strategy per transport services capability contract calls; the
selector picks the strategy for each module from configuration at startup.
"""

from todo.core.dispatch.base import CapabilityStrategy, run_cancellable
from todo.core.dispatch.http import HttpStrategy
from todo.core.dispatch.in_process import InProcessRoute, InProcessStrategy
from todo.core.dispatch.message_bus import (
    Accepted,
    MessageBusResponder,
    MessageBusStrategy,
)
from todo.core.dispatch.selector import StrategyDependencies, select_strategy

__all__ = [
    "Accepted",
    "CapabilityStrategy",
    "HttpStrategy",
    "InProcessRoute",
    "InProcessStrategy",
    "MessageBusResponder",
    "MessageBusStrategy",
    "StrategyDependencies",
    "run_cancellable",
    "select_strategy",
]
