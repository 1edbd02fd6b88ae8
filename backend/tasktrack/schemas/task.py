"""Task schemas shared by the service layer, the repositories and the API."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaskStatus(str, Enum):
    NOT_DONE = "not_done"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrencePattern(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Sort ranks: sorting by priority or status follows these, not the string values
PRIORITY_RANK = {TaskPriority.LOW: 0, TaskPriority.MEDIUM: 1, TaskPriority.HIGH: 2}
STATUS_RANK = {TaskStatus.NOT_DONE: 0, TaskStatus.IN_PROGRESS: 1, TaskStatus.DONE: 2}

SortField = Literal["created_at", "updated_at", "due_date", "priority", "status", "title"]
SortOrder = Literal["asc", "desc"]


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so every stored timestamp is comparable."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TaskBase(BaseModel):
    """Fields every representation of a stored task carries."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.NOT_DONE
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern = RecurrencePattern.NONE
    last_recurrence: datetime | None = None
    next_recurrence: datetime | None = None
    recurrence_source_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class TaskRecord(TaskBase):
    """A task as stored: dependencies are bare ids."""

    dependencies: list[UUID] = Field(default_factory=list)


class DependencySummary(BaseModel):
    """Summary of a dependency, as embedded in task responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    status: TaskStatus


class TaskDetail(TaskBase):
    """A task with its dependencies resolved to summaries."""

    dependencies: list[DependencySummary] = Field(default_factory=list)


class TaskCreate(BaseModel):
    """Create a new task."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    status: TaskStatus = TaskStatus.NOT_DONE
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern = RecurrencePattern.NONE
    # Raw strings: the dependency validator owns the format check
    dependencies: list[str] = Field(default_factory=list)

    @field_validator("due_date")
    @classmethod
    def due_date_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


# Fields a PATCH may clear by sending null
_NULLABLE_UPDATE_FIELDS = {"description", "due_date"}


class TaskUpdate(BaseModel):
    """Partial update of a task. Only fields that are sent are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    is_recurring: bool | None = None
    recurrence_pattern: RecurrencePattern | None = None
    dependencies: list[str] | None = None

    @field_validator("due_date")
    @classmethod
    def due_date_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def check_fields(self) -> "TaskUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        for name in self.model_fields_set - _NULLABLE_UPDATE_FIELDS:
            if getattr(self, name) is None:
                raise ValueError(f"'{name}' cannot be null")
        return self


class TaskListFilters(BaseModel):
    """Query filters for listing tasks."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    search: str | None = None
    sort: SortField = "created_at"
    order: SortOrder = "desc"
