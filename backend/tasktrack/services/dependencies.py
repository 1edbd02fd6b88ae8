"""Validation of task dependency references."""

from collections.abc import Iterable
from uuid import UUID

import structlog

from tasktrack.repository.base import TaskFilter, TaskRepository
from tasktrack.services.exceptions import (
    CyclicDependencyError,
    DependencyNotFoundError,
    InvalidReferenceError,
    SelfReferenceError,
)

logger = structlog.get_logger()


def parse_id(value: str | UUID) -> UUID | None:
    """Parse a task identifier, returning None when it is malformed."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


class DependencyValidator:
    """Checks that dependency references are well-formed, owned and acyclic."""

    def __init__(self, repository: TaskRepository):
        self.repository = repository

    async def validate(
        self,
        candidate_ids: Iterable[str | UUID],
        owner_id: UUID,
        exclude_id: UUID | None = None,
    ) -> list[UUID]:
        """Validate candidate dependencies for a task of ``owner_id``.

        Every id is format-checked before any lookup, so the first malformed
        id is reported even when later ids are also missing. Returns the
        parsed ids with duplicates removed.
        """
        parsed: list[UUID] = []
        for candidate in candidate_ids:
            dependency_id = parse_id(candidate)
            if dependency_id is None:
                raise InvalidReferenceError(str(candidate))
            parsed.append(dependency_id)

        unique = list(dict.fromkeys(parsed))

        if exclude_id is not None and exclude_id in unique:
            raise SelfReferenceError(str(exclude_id))

        for dependency_id in unique:
            exists = await self.repository.find_one(
                TaskFilter(id=dependency_id, owner_id=owner_id)
            )
            if exists is None:
                raise DependencyNotFoundError(str(dependency_id))

        return unique

    async def assert_acyclic(
        self,
        task_id: UUID,
        candidate_ids: list[UUID],
        owner_id: UUID,
    ) -> None:
        """Reject dependencies from which ``task_id`` is already reachable.

        Walks the owner's stored graph breadth-first, one query per level.
        """
        parents: dict[UUID, UUID | None] = {dep: None for dep in candidate_ids}
        titles: dict[UUID, str] = {}
        frontier = list(candidate_ids)

        while frontier:
            records = await self.repository.find(
                TaskFilter(ids=frontier, owner_id=owner_id)
            )
            next_frontier: list[UUID] = []
            for record in records:
                titles[record.id] = record.title
                for dep in record.dependencies:
                    if dep == task_id:
                        path = self._path(record.id, parents, titles)
                        logger.info(
                            "dependency_cycle_rejected",
                            task_id=str(task_id),
                            path=path,
                        )
                        raise CyclicDependencyError(path)
                    if dep not in parents:
                        parents[dep] = record.id
                        next_frontier.append(dep)
            frontier = next_frontier

    @staticmethod
    def _path(
        last: UUID, parents: dict[UUID, UUID | None], titles: dict[UUID, str]
    ) -> list[str]:
        # Candidate first, then each hop down to the task that closes the cycle
        path = []
        node: UUID | None = last
        while node is not None:
            path.append(titles.get(node, str(node)))
            node = parents[node]
        return list(reversed(path))
