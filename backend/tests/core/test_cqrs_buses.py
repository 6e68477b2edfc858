"""
Tests for the command and query buses.
"""

import pytest

from todo.core.cqrs import Command, CommandBus, CommandHandler, Query, QueryBus, QueryHandler
from todo.core.errors import ConfigurationError


class RenameCommand(Command):
    def __init__(self, name: str):
        super().__init__()
        self.name = name
        self._freeze()


class LookupQuery(Query):
    def __init__(self, key: str):
        super().__init__()
        self.key = key
        self._freeze()


class RenameHandler(CommandHandler[RenameCommand, str]):
    @property
    def command_type(self):
        return RenameCommand

    async def handle(self, command: RenameCommand) -> str:
        if not command.name:
            raise RuntimeError("empty name")
        return command.name.upper()


class LookupHandler(QueryHandler[LookupQuery, str]):
    @property
    def query_type(self):
        return LookupQuery

    async def handle(self, query: LookupQuery) -> str:
        return f"value-of-{query.key}"


@pytest.mark.unit
class TestMessages:
    """Test command and query immutability."""

    def test_command_is_frozen(self):
        command = RenameCommand("tasks")

        with pytest.raises(AttributeError):
            command.name = "other"

    def test_correlation_id_stays_writable(self):
        query = LookupQuery("a")
        query.correlation_id = "abc"

        assert query.correlation_id == "abc"

    def test_command_to_dict(self):
        data = RenameCommand("tasks").to_dict()

        assert data["name"] == "tasks"
        assert data["command_type"] == "RenameCommand"
        assert "_frozen" not in data


@pytest.mark.unit
class TestCommandBus:
    """Test CommandBus routing."""

    async def test_execute_routes_to_handler(self):
        bus = CommandBus()
        bus.register(RenameHandler())

        assert await bus.execute(RenameCommand("tasks")) == "TASKS"
        assert bus.get_metrics()["successful_commands"] == 1

    def test_duplicate_registration(self):
        bus = CommandBus()
        bus.register(RenameHandler())

        with pytest.raises(ConfigurationError):
            bus.register(RenameHandler())

    async def test_missing_handler(self):
        bus = CommandBus()

        assert not bus.has_handler(RenameCommand)
        with pytest.raises(ConfigurationError):
            await bus.execute(RenameCommand("tasks"))

    async def test_handler_errors_propagate(self):
        bus = CommandBus()
        handler = RenameHandler()
        bus.register(handler)

        with pytest.raises(RuntimeError):
            await bus.execute(RenameCommand(""))

        assert bus.get_metrics()["failed_commands"] == 1
        stats = handler.get_statistics()
        assert stats["execution_count"] == 1
        assert stats["success_count"] == 0


@pytest.mark.unit
class TestQueryBus:
    """Test QueryBus routing."""

    async def test_execute_routes_to_handler(self):
        bus = QueryBus()
        bus.register(LookupHandler())

        assert bus.has_handler(LookupQuery)
        assert await bus.execute(LookupQuery("a")) == "value-of-a"
        assert bus.get_metrics() == {
            "total_queries": 1,
            "successful_queries": 1,
            "failed_queries": 0,
            "registered_handlers": 1,
        }

    async def test_missing_handler(self):
        with pytest.raises(ConfigurationError):
            await QueryBus().execute(LookupQuery("a"))
