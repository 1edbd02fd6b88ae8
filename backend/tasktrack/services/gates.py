"""Pre-condition checks that block completing or deleting a task."""

from collections.abc import Collection
from uuid import UUID

import structlog

from tasktrack.repository.base import TaskFilter, TaskRepository
from tasktrack.schemas.task import TaskStatus
from tasktrack.services.exceptions import HasDependentsError, UnmetDependenciesError

logger = structlog.get_logger()


class CompletionGate:
    """A task may only become DONE once all of its direct dependencies are DONE.

    Only direct dependencies are inspected; a dependency's own dependencies
    are enforced when that dependency is completed.
    """

    def __init__(self, repository: TaskRepository):
        self.repository = repository

    async def assert_completable(
        self, task_id: UUID | None, dependency_ids: Collection[UUID]
    ) -> None:
        if not dependency_ids:
            return

        blocking = await self.repository.find(
            TaskFilter(ids=list(dependency_ids), status_ne=TaskStatus.DONE)
        )
        if blocking:
            titles = [task.title for task in blocking]
            logger.info(
                "task_completion_blocked",
                task_id=str(task_id) if task_id else None,
                blocking=titles,
            )
            raise UnmetDependenciesError(titles)


class DeletionGate:
    """A task may not be deleted while any task depends on it.

    The lookup is not owner-scoped: any task in the store referencing the
    target blocks the delete.
    """

    def __init__(self, repository: TaskRepository):
        self.repository = repository

    async def assert_deletable(self, task_id: UUID) -> None:
        dependents = await self.repository.find(TaskFilter(depends_on=task_id))
        if dependents:
            titles = [task.title for task in dependents]
            logger.info(
                "task_deletion_blocked",
                task_id=str(task_id),
                dependents=titles,
            )
            raise HasDependentsError(titles)
