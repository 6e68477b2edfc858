"""
Global pytest configuration and fixtures for all tests.

Provides:
- Custom markers
- An in-memory message bus
- A local Tasks strategy
"""

import pytest

from tests.builders import build_in_process_tasks
from todo.core.dispatch import InProcessStrategy
from todo.core.events import InMemoryMessageBus


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


@pytest.fixture
def in_process_tasks() -> InProcessStrategy:
    return build_in_process_tasks()


@pytest.fixture
async def message_bus():
    bus = InMemoryMessageBus()
    await bus.start()
    yield bus
    await bus.stop()
