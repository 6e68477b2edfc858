"""Task entity."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from todo.core.errors import ValidationError

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000


class Task:
    """
    A unit of work that can be completed once.

    Usage Example:
        task = Task.create("Write release notes")
        task.complete()
    """

    def __init__(
        self,
        title: str,
        description: str | None = None,
        task_id: UUID | None = None,
        created_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.id = task_id or uuid4()
        self.title = self._validate_title(title)
        self.description = self._validate_description(description)
        self.created_at = created_at or datetime.now(UTC)
        self.completed_at = completed_at
        self.updated_at = completed_at or self.created_at

    @classmethod
    def create(cls, title: str, description: str | None = None) -> "Task":
        return cls(title=title, description=description)

    @staticmethod
    def _validate_title(title: str) -> str:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required", field="title")
        title = title.strip()
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"Title cannot exceed {MAX_TITLE_LENGTH} characters", field="title"
            )
        return title

    @staticmethod
    def _validate_description(description: str | None) -> str | None:
        if description is None:
            return None
        if not isinstance(description, str):
            raise ValidationError("Description must be text", field="description")
        description = description.strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
                field="description",
            )
        return description or None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def complete(self) -> None:
        """
        Mark the task as done.

        Raises:
            ValidationError: If the task is already completed
        """
        if self.is_completed:
            raise ValidationError("Task is already completed", field="task_id")
        self.completed_at = datetime.now(UTC)
        self.updated_at = self.completed_at

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Task):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.id))

    def __repr__(self) -> str:
        return f"Task(id={self.id}, completed={self.is_completed})"
