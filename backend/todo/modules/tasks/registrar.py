"""Tasks module registrar."""

from todo.core.config import ModuleConfiguration
from todo.core.cqrs import CommandBus, QueryBus
from todo.core.dispatch import InProcessStrategy
from todo.core.events import EventChannel
from todo.core.modules import ModuleRegistrar, RegistrationContext
from todo.modules.tasks.application.handlers import (
    CompleteTaskCommandHandler,
    CreateTaskCommandHandler,
    GetTaskQueryHandler,
)
from todo.modules.tasks.application.mappers import ROUTES
from todo.modules.tasks.contract import TasksCapability
from todo.modules.tasks.domain import TaskRepository
from todo.modules.tasks.infrastructure import InMemoryTaskRepository


class TasksModuleRegistrar(ModuleRegistrar):
    """
    Wires the Tasks bounded context.

    ``repository_factory`` lets a host plug in another ``TaskRepository``
    adapter; the default keeps tasks in memory.
    """

    module_name = TasksCapability.module_name
    contract_type = TasksCapability

    def __init__(self, repository_factory=InMemoryTaskRepository):
        super().__init__()
        self._repository_factory = repository_factory
        self.repository: TaskRepository | None = None

    def create_event_channel(self, context: RegistrationContext) -> EventChannel:
        return EventChannel(self.module_name, TasksCapability.events)

    def create_in_process_strategy(
        self, config: ModuleConfiguration, context: RegistrationContext
    ) -> InProcessStrategy:
        self.repository = self._repository_factory()

        command_bus = CommandBus()
        command_bus.register(CreateTaskCommandHandler(self.repository, self.channel))
        command_bus.register(CompleteTaskCommandHandler(self.repository, self.channel))

        query_bus = QueryBus()
        query_bus.register(GetTaskQueryHandler(self.repository))

        return InProcessStrategy(
            self.module_name,
            command_bus,
            query_bus,
            ROUTES,
            probe=self.repository.ping,
        )
