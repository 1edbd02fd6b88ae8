"""SQLAlchemy models."""

from tasktrack.models.task import Task, TaskDependency

__all__ = ["Task", "TaskDependency"]
