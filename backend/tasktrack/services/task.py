"""Task service: CRUD over tasks with the dependency and recurrence rules enforced."""

from collections.abc import Callable, Sequence
from datetime import datetime
from uuid import UUID, uuid4

import structlog

from tasktrack.repository.base import TaskFilter, TaskRepository, TaskSort
from tasktrack.schemas.task import (
    DependencySummary,
    TaskCreate,
    TaskDetail,
    TaskListFilters,
    TaskRecord,
    TaskStatus,
    TaskUpdate,
)
from tasktrack.services.dependencies import DependencyValidator, parse_id
from tasktrack.services.exceptions import InvalidIdError, NotFoundError
from tasktrack.services.gates import CompletionGate, DeletionGate
from tasktrack.services.recurrence import RecurrenceScheduler, SweepReport, utcnow

logger = structlog.get_logger()


class TaskService:
    """Service for managing a user's tasks.

    Every operation is scoped to the caller's ``owner_id`` except the
    dependents lookup in the deletion gate. Validation and gates read before
    they write without locking, so concurrent requests touching the same
    part of the graph can race.
    """

    def __init__(
        self,
        repository: TaskRepository,
        clock: Callable[[], datetime] = utcnow,
        reject_dependency_cycles: bool = False,
        scheduler: RecurrenceScheduler | None = None,
    ):
        self.repository = repository
        self.clock = clock
        self.reject_dependency_cycles = reject_dependency_cycles
        self.dependencies = DependencyValidator(repository)
        self.completion_gate = CompletionGate(repository)
        self.deletion_gate = DeletionGate(repository)
        self.scheduler = scheduler or RecurrenceScheduler(repository, clock=clock)

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_tasks(
        self,
        owner_id: UUID,
        filters: TaskListFilters | None = None,
    ) -> list[TaskDetail]:
        """List the owner's tasks, newest first unless another sort is requested."""
        filters = filters or TaskListFilters()
        records = await self.repository.find(
            TaskFilter(
                owner_id=owner_id,
                status=filters.status,
                priority=filters.priority,
                title_contains=filters.search or None,
            ),
            TaskSort(field=filters.sort, descending=filters.order == "desc"),
        )
        return await self._with_dependency_summaries(records)

    async def get_task(self, owner_id: UUID, task_id: str | UUID) -> TaskDetail | None:
        """Get a task by ID. Returns None if it doesn't exist or isn't the owner's."""
        parsed_id = self._parse_task_id(task_id)
        record = await self.repository.find_one(TaskFilter(id=parsed_id, owner_id=owner_id))
        if record is None:
            return None
        return (await self._with_dependency_summaries([record]))[0]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_task(self, owner_id: UUID, data: TaskCreate) -> TaskDetail:
        """Create a task after validating its dependencies and schedule."""
        now = self.clock()
        dependency_ids = await self.dependencies.validate(data.dependencies, owner_id)

        if data.status == TaskStatus.DONE:
            await self.completion_gate.assert_completable(None, dependency_ids)

        recurrence = self.scheduler.resolve_create(
            data.is_recurring, data.recurrence_pattern, now
        )

        record = TaskRecord(
            id=uuid4(),
            owner_id=owner_id,
            title=data.title,
            description=data.description,
            status=data.status,
            priority=data.priority,
            due_date=data.due_date,
            dependencies=dependency_ids,
            created_at=now,
            updated_at=now,
            **recurrence,
        )
        created = await self.repository.insert(record)

        logger.info(
            "task_created",
            task_id=str(created.id),
            owner_id=str(owner_id),
            dependencies=len(dependency_ids),
            recurrence_pattern=created.recurrence_pattern.value,
        )
        return (await self._with_dependency_summaries([created]))[0]

    async def update_task(
        self,
        owner_id: UUID,
        task_id: str | UUID,
        patch: TaskUpdate,
    ) -> TaskDetail:
        """Apply a partial update; fields not sent keep their stored values."""
        parsed_id = self._parse_task_id(task_id)
        current = await self.repository.find_one(TaskFilter(id=parsed_id, owner_id=owner_id))
        if current is None:
            raise NotFoundError(str(task_id))

        now = self.clock()
        changes = patch.model_dump(exclude_unset=True)

        if "dependencies" in changes:
            changes["dependencies"] = await self.dependencies.validate(
                changes["dependencies"], owner_id, exclude_id=parsed_id
            )
            if self.reject_dependency_cycles:
                await self.dependencies.assert_acyclic(
                    parsed_id, changes["dependencies"], owner_id
                )

        # Re-confirming DONE on a done task is not re-checked
        if changes.get("status") == TaskStatus.DONE and current.status != TaskStatus.DONE:
            await self.completion_gate.assert_completable(
                parsed_id, changes.get("dependencies", current.dependencies)
            )

        changes.update(self.scheduler.resolve_update(current, changes, now))
        changes["updated_at"] = now

        updated = await self.repository.update_one(
            TaskFilter(id=parsed_id, owner_id=owner_id), changes
        )
        if updated is None:
            raise NotFoundError(str(task_id))

        logger.info(
            "task_updated",
            task_id=str(parsed_id),
            owner_id=str(owner_id),
            fields=sorted(patch.model_fields_set),
        )
        return (await self._with_dependency_summaries([updated]))[0]

    async def delete_task(self, owner_id: UUID, task_id: str | UUID) -> None:
        """Delete a task nobody depends on.

        The row can disappear between the gate and the delete; that surfaces
        as NotFoundError.
        """
        parsed_id = self._parse_task_id(task_id)
        await self.deletion_gate.assert_deletable(parsed_id)

        deleted = await self.repository.delete_one(TaskFilter(id=parsed_id, owner_id=owner_id))
        if deleted is None:
            raise NotFoundError(str(task_id))

        logger.info("task_deleted", task_id=str(parsed_id), owner_id=str(owner_id))

    # =========================================================================
    # Recurrence
    # =========================================================================

    async def process_recurring(self, now: datetime | None = None) -> SweepReport:
        """Run the recurrence sweep. Called by the periodic worker; never raises."""
        try:
            return await self.scheduler.sweep(now)
        except Exception as e:
            logger.exception("recurring_processing_failed", error=str(e))
            return SweepReport(aborted=True, error=str(e))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_task_id(task_id: str | UUID) -> UUID:
        parsed = parse_id(task_id)
        if parsed is None:
            raise InvalidIdError(str(task_id))
        return parsed

    async def _with_dependency_summaries(
        self, records: Sequence[TaskRecord]
    ) -> list[TaskDetail]:
        """Replace dependency ids with (id, title, status) summaries, one query total."""
        wanted = {dep for record in records for dep in record.dependencies}
        summaries: dict[UUID, DependencySummary] = {}
        if wanted:
            for dep in await self.repository.find(TaskFilter(ids=wanted)):
                summaries[dep.id] = DependencySummary(id=dep.id, title=dep.title, status=dep.status)

        details = []
        for record in records:
            data = record.model_dump(exclude={"dependencies"})
            data["dependencies"] = [
                summaries[dep] for dep in record.dependencies if dep in summaries
            ]
            details.append(TaskDetail.model_validate(data))
        return details
