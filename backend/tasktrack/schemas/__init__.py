"""Pydantic schemas."""

from tasktrack.schemas.task import (
    DependencySummary,
    RecurrencePattern,
    TaskCreate,
    TaskDetail,
    TaskListFilters,
    TaskPriority,
    TaskRecord,
    TaskStatus,
    TaskUpdate,
)

__all__ = [
    "DependencySummary",
    "RecurrencePattern",
    "TaskCreate",
    "TaskDetail",
    "TaskListFilters",
    "TaskPriority",
    "TaskRecord",
    "TaskStatus",
    "TaskUpdate",
]
