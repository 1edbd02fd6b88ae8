"""Task service exceptions.

Every failure the task service can report is a subclass of
:class:`TaskServiceError` with a stable :class:`TaskErrorKind` code, a
human-readable message, and the offending ids or titles in ``items`` so that
callers can render an actionable message without parsing text.
"""

from enum import Enum
from typing import Any


class TaskErrorKind(str, Enum):
    INVALID_ID = "INVALID_ID"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    SELF_REFERENCE = "SELF_REFERENCE"
    DEPENDENCY_NOT_FOUND = "DEPENDENCY_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    UNMET_DEPENDENCIES = "UNMET_DEPENDENCIES"
    HAS_DEPENDENTS = "HAS_DEPENDENTS"
    CYCLIC_DEPENDENCY = "CYCLIC_DEPENDENCY"
    INVALID_RECURRENCE = "INVALID_RECURRENCE"
    STORAGE_FAILURE = "STORAGE_FAILURE"


class TaskServiceError(Exception):
    """Base exception for task service errors."""

    code: TaskErrorKind = TaskErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, items: list[str] | None = None):
        self.message = message
        self.items = items or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "items": self.items}


class InvalidIdError(TaskServiceError):
    """Malformed task identifier supplied to a lookup, update or delete."""

    code = TaskErrorKind.INVALID_ID

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(message="Invalid task ID", items=[str(task_id)])


class InvalidReferenceError(TaskServiceError):
    """Malformed dependency identifier."""

    code = TaskErrorKind.INVALID_REFERENCE

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(message=f"Invalid dependency ID: {reference}", items=[str(reference)])


class SelfReferenceError(TaskServiceError):
    """A task listed itself as a dependency."""

    code = TaskErrorKind.SELF_REFERENCE

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(message="A task cannot depend on itself", items=[str(task_id)])


class DependencyNotFoundError(TaskServiceError):
    """Dependency does not exist or belongs to another owner."""

    code = TaskErrorKind.DEPENDENCY_NOT_FOUND

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(
            message=f"Dependency task not found: {reference}", items=[str(reference)]
        )


class NotFoundError(TaskServiceError):
    """Target task does not exist for the caller."""

    code = TaskErrorKind.NOT_FOUND

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(message="Task not found", items=[str(task_id)])


class UnmetDependenciesError(TaskServiceError):
    """Completion blocked by dependencies that are not done yet."""

    code = TaskErrorKind.UNMET_DEPENDENCIES

    def __init__(self, titles: list[str]):
        self.titles = titles
        super().__init__(
            message=(
                "Cannot mark task as done. The following dependent tasks are "
                f"not completed: {', '.join(titles)}"
            ),
            items=titles,
        )


class HasDependentsError(TaskServiceError):
    """Deletion blocked by tasks that depend on the target."""

    code = TaskErrorKind.HAS_DEPENDENTS

    def __init__(self, titles: list[str]):
        self.titles = titles
        super().__init__(
            message=(
                "Cannot delete task. The following tasks depend on it: "
                f"{', '.join(titles)}"
            ),
            items=titles,
        )


class CyclicDependencyError(TaskServiceError):
    """The requested dependencies would close a cycle in the graph."""

    code = TaskErrorKind.CYCLIC_DEPENDENCY

    def __init__(self, path: list[str]):
        self.path = path
        super().__init__(
            message=f"Dependency cycle detected: {' -> '.join(path)}",
            items=path,
        )


class InvalidRecurrenceError(TaskServiceError):
    """Recurrence flag and pattern are inconsistent."""

    code = TaskErrorKind.INVALID_RECURRENCE


class StorageError(TaskServiceError):
    """Opaque failure from the storage backend."""

    code = TaskErrorKind.STORAGE_FAILURE

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message=message)
