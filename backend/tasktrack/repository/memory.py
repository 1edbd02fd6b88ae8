"""Dict-backed task repository for tests and local development."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from tasktrack.repository.base import TaskFilter, TaskRepository, TaskSort
from tasktrack.schemas.task import PRIORITY_RANK, STATUS_RANK, TaskRecord


def _sort_key(record: TaskRecord, field: str) -> Any:
    value = getattr(record, field)
    if field == "priority":
        return PRIORITY_RANK[value]
    if field == "status":
        return STATUS_RANK[value]
    return value


class InMemoryTaskRepository(TaskRepository):
    """Keeps records in insertion order; every read returns copies."""

    def __init__(self, records: list[TaskRecord] | None = None):
        self._tasks: dict[UUID, TaskRecord] = {}
        for record in records or []:
            self._tasks[record.id] = record.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._tasks)

    async def find(
        self, filter: TaskFilter, sort: TaskSort | None = None
    ) -> list[TaskRecord]:
        matches = [r for r in self._tasks.values() if filter.matches(r)]
        if sort is not None:
            present = [r for r in matches if getattr(r, sort.field) is not None]
            missing = [r for r in matches if getattr(r, sort.field) is None]
            present.sort(key=lambda r: _sort_key(r, sort.field), reverse=sort.descending)
            # Records without a value always go last
            matches = present + missing
        return [r.model_copy(deep=True) for r in matches]

    async def find_one(self, filter: TaskFilter) -> TaskRecord | None:
        for record in self._tasks.values():
            if filter.matches(record):
                return record.model_copy(deep=True)
        return None

    async def insert(self, record: TaskRecord) -> TaskRecord:
        self._tasks[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def update_one(
        self, filter: TaskFilter, patch: dict[str, Any]
    ) -> TaskRecord | None:
        for task_id, record in self._tasks.items():
            if filter.matches(record):
                # Re-validate so a bad patch fails here instead of corrupting the store
                updated = TaskRecord.model_validate({**record.model_dump(), **patch})
                self._tasks[task_id] = updated
                return updated.model_copy(deep=True)
        return None

    async def delete_one(self, filter: TaskFilter) -> TaskRecord | None:
        for task_id, record in self._tasks.items():
            if filter.matches(record):
                del self._tasks[task_id]
                return record
        return None

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        snapshot = dict(self._tasks)
        try:
            yield
        except BaseException:
            self._tasks = snapshot
            raise
