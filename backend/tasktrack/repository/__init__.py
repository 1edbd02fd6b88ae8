"""Task storage backends."""

from tasktrack.repository.base import TaskFilter, TaskRepository, TaskSort
from tasktrack.repository.memory import InMemoryTaskRepository
from tasktrack.repository.sql import SQLAlchemyTaskRepository

__all__ = [
    "InMemoryTaskRepository",
    "SQLAlchemyTaskRepository",
    "TaskFilter",
    "TaskRepository",
    "TaskSort",
]
