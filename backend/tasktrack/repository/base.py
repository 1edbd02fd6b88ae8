"""Task repository interface.

The task service only talks to storage through :class:`TaskRepository`.
Filters are plain predicates (equality, membership, case-insensitive title
substring, dependency membership, recurrence due-time) so that both the
SQL and the in-memory backends can evaluate them.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from tasktrack.schemas.task import (
    SortField,
    TaskPriority,
    TaskRecord,
    TaskStatus,
)


@dataclass(frozen=True)
class TaskFilter:
    """Conjunction of predicates over task records. ``None`` means "any"."""

    id: UUID | None = None
    ids: Collection[UUID] | None = None
    owner_id: UUID | None = None
    status: TaskStatus | None = None
    status_ne: TaskStatus | None = None
    priority: TaskPriority | None = None
    title_contains: str | None = None
    depends_on: UUID | None = None
    is_recurring: bool | None = None
    next_recurrence_lte: datetime | None = None

    def matches(self, record: TaskRecord) -> bool:
        """Evaluate the filter against a record in memory."""
        if self.id is not None and record.id != self.id:
            return False
        if self.ids is not None and record.id not in self.ids:
            return False
        if self.owner_id is not None and record.owner_id != self.owner_id:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.status_ne is not None and record.status == self.status_ne:
            return False
        if self.priority is not None and record.priority != self.priority:
            return False
        if (
            self.title_contains is not None
            and self.title_contains.casefold() not in record.title.casefold()
        ):
            return False
        if self.depends_on is not None and self.depends_on not in record.dependencies:
            return False
        if self.is_recurring is not None and record.is_recurring != self.is_recurring:
            return False
        if self.next_recurrence_lte is not None and (
            record.next_recurrence is None
            or record.next_recurrence > self.next_recurrence_lte
        ):
            return False
        return True


@dataclass(frozen=True)
class TaskSort:
    field: SortField = "created_at"
    descending: bool = True


class TaskRepository(ABC):
    """Storage for task records."""

    @abstractmethod
    async def find(
        self, filter: TaskFilter, sort: TaskSort | None = None
    ) -> list[TaskRecord]:
        """Return all matching records. Without ``sort`` the order is oldest first."""

    @abstractmethod
    async def find_one(self, filter: TaskFilter) -> TaskRecord | None:
        """Return one matching record, or None."""

    @abstractmethod
    async def insert(self, record: TaskRecord) -> TaskRecord:
        """Store a new record and return it."""

    @abstractmethod
    async def update_one(
        self, filter: TaskFilter, patch: dict[str, Any]
    ) -> TaskRecord | None:
        """Apply ``patch`` (field name -> value) to the first match.

        Returns the updated record, or None when nothing matched.
        """

    @abstractmethod
    async def delete_one(self, filter: TaskFilter) -> TaskRecord | None:
        """Delete the first match and return it, or None when nothing matched."""

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager[None]:
        """Group the writes made inside the block into one all-or-nothing unit."""
