"""SQLAlchemy-backed task repository."""

from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.models.task import Task, TaskDependency
from tasktrack.repository.base import TaskFilter, TaskRepository, TaskSort
from tasktrack.schemas.task import PRIORITY_RANK, STATUS_RANK, TaskRecord, as_utc
from tasktrack.services.exceptions import StorageError

logger = structlog.get_logger()

_DATETIME_FIELDS = ("due_date", "last_recurrence", "next_recurrence", "created_at", "updated_at")


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("task_storage_failed", operation=operation, error=str(e))
        raise StorageError(f"Storage operation '{operation}' failed") from e


class SQLAlchemyTaskRepository(TaskRepository):
    """Task repository over the ``tasks`` and ``task_dependencies`` tables.

    Writes are flushed, not committed: the owner of the session (the request
    dependency or the worker) decides when the transaction ends.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Query building
    # =========================================================================

    def _where(self, filter: TaskFilter) -> list:
        clauses = []
        if filter.id is not None:
            clauses.append(Task.id == filter.id)
        if filter.ids is not None:
            clauses.append(Task.id.in_(list(filter.ids)))
        if filter.owner_id is not None:
            clauses.append(Task.owner_id == filter.owner_id)
        if filter.status is not None:
            clauses.append(Task.status == filter.status.value)
        if filter.status_ne is not None:
            clauses.append(Task.status != filter.status_ne.value)
        if filter.priority is not None:
            clauses.append(Task.priority == filter.priority.value)
        if filter.title_contains is not None:
            escaped = (
                filter.title_contains.replace("\\", "\\\\")
                .replace("%", "\\%")
                .replace("_", "\\_")
            )
            clauses.append(Task.title.ilike(f"%{escaped}%", escape="\\"))
        if filter.depends_on is not None:
            clauses.append(
                Task.dependency_links.any(TaskDependency.depends_on_id == filter.depends_on)
            )
        if filter.is_recurring is not None:
            clauses.append(Task.is_recurring == filter.is_recurring)
        if filter.next_recurrence_lte is not None:
            clauses.append(Task.next_recurrence <= filter.next_recurrence_lte)
        return clauses

    def _order_by(self, sort: TaskSort | None) -> list:
        if sort is None:
            return [Task.created_at.asc()]

        if sort.field == "priority":
            column = case(
                {p.value: rank for p, rank in PRIORITY_RANK.items()},
                value=Task.priority,
            )
        elif sort.field == "status":
            column = case(
                {s.value: rank for s, rank in STATUS_RANK.items()},
                value=Task.status,
            )
        else:
            column = getattr(Task, sort.field)

        ordered = column.desc() if sort.descending else column.asc()
        return [ordered.nulls_last()]

    def _to_record(self, task: Task) -> TaskRecord:
        data = {
            "id": task.id,
            "owner_id": task.owner_id,
            "title": task.title,
            "description": task.description,
            "status": task.status,
            "priority": task.priority,
            "is_recurring": task.is_recurring,
            "recurrence_pattern": task.recurrence_pattern,
            "recurrence_source_id": task.recurrence_source_id,
            "dependencies": task.dependency_ids,
        }
        # SQLite hands back naive datetimes; everything we write is UTC
        for name in _DATETIME_FIELDS:
            data[name] = as_utc(getattr(task, name))
        return TaskRecord.model_validate(data)

    async def _first(self, filter: TaskFilter) -> Task | None:
        result = await self.db.execute(
            select(Task).where(*self._where(filter)).order_by(Task.created_at.asc()).limit(1)
        )
        return result.scalar_one_or_none()

    def _set_dependencies(self, task: Task, dependency_ids: list) -> None:
        wanted = list(dict.fromkeys(dependency_ids))
        # Diff instead of replacing so unchanged edges keep their rows
        task.dependency_links = [
            link for link in task.dependency_links if link.depends_on_id in wanted
        ]
        existing = {link.depends_on_id for link in task.dependency_links}
        for dependency_id in wanted:
            if dependency_id not in existing:
                task.dependency_links.append(TaskDependency(depends_on_id=dependency_id))

    # =========================================================================
    # TaskRepository
    # =========================================================================

    async def find(
        self, filter: TaskFilter, sort: TaskSort | None = None
    ) -> list[TaskRecord]:
        with _storage_errors("find"):
            result = await self.db.execute(
                select(Task).where(*self._where(filter)).order_by(*self._order_by(sort))
            )
            return [self._to_record(task) for task in result.scalars().all()]

    async def find_one(self, filter: TaskFilter) -> TaskRecord | None:
        with _storage_errors("find_one"):
            task = await self._first(filter)
            return self._to_record(task) if task else None

    async def insert(self, record: TaskRecord) -> TaskRecord:
        with _storage_errors("insert"):
            fields = record.model_dump(exclude={"dependencies"})
            task = Task(**{k: _column_value(v) for k, v in fields.items()})
            task.dependency_links = [
                TaskDependency(depends_on_id=dependency_id)
                for dependency_id in dict.fromkeys(record.dependencies)
            ]
            self.db.add(task)
            await self.db.flush()
            return self._to_record(task)

    async def update_one(
        self, filter: TaskFilter, patch: dict[str, Any]
    ) -> TaskRecord | None:
        with _storage_errors("update_one"):
            task = await self._first(filter)
            if task is None:
                return None

            for name, value in patch.items():
                if name == "dependencies":
                    self._set_dependencies(task, value)
                else:
                    setattr(task, name, _column_value(value))

            await self.db.flush()
            return self._to_record(task)

    async def delete_one(self, filter: TaskFilter) -> TaskRecord | None:
        with _storage_errors("delete_one"):
            task = await self._first(filter)
            if task is None:
                return None

            record = self._to_record(task)
            await self.db.delete(task)
            await self.db.flush()
            return record

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        async with self.db.begin_nested():
            yield
