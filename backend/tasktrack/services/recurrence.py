"""Recurrence scheduling: next-occurrence arithmetic and the periodic sweep."""

import asyncio
from calendar import monthrange
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import structlog

from tasktrack.repository.base import TaskFilter, TaskRepository
from tasktrack.schemas.task import RecurrencePattern, TaskRecord, TaskStatus
from tasktrack.services.exceptions import InvalidRecurrenceError, NotFoundError

logger = structlog.get_logger()

# Shared by every scheduler in the process so overlapping triggers are skipped
_sweep_lock = asyncio.Lock()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years); time and tzinfo are kept.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_next(from_ts: datetime, pattern: RecurrencePattern | str) -> datetime:
    """Return the next occurrence after ``from_ts``; unknown patterns don't advance."""
    try:
        pattern = RecurrencePattern(pattern)
    except ValueError:
        return from_ts

    if pattern == RecurrencePattern.DAILY:
        return from_ts + timedelta(days=1)
    if pattern == RecurrencePattern.WEEKLY:
        return from_ts + timedelta(days=7)
    if pattern == RecurrencePattern.MONTHLY:
        return add_months(from_ts, 1)
    return from_ts


@dataclass
class SweepFailure:
    task_id: UUID
    error: str


@dataclass
class SweepReport:
    """Outcome of one recurrence sweep."""

    spawned: list[UUID] = field(default_factory=list)
    failures: list[SweepFailure] = field(default_factory=list)
    skipped: bool = False
    aborted: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "spawned": len(self.spawned),
            "failed": len(self.failures),
            "skipped": self.skipped,
            "aborted": self.aborted,
            "error": self.error,
        }


class RecurrenceScheduler:
    """Schedules recurring tasks and spawns their instances when due."""

    def __init__(
        self,
        repository: TaskRepository,
        clock: Callable[[], datetime] = utcnow,
        lock: asyncio.Lock | None = None,
    ):
        self.repository = repository
        self.clock = clock
        self.lock = lock or _sweep_lock

    # =========================================================================
    # Transitions
    # =========================================================================

    def enable(self, pattern: RecurrencePattern, now: datetime) -> dict[str, Any]:
        """Start (or restart) the schedule at ``now``."""
        return {
            "is_recurring": True,
            "recurrence_pattern": pattern,
            "last_recurrence": now,
            "next_recurrence": compute_next(now, pattern),
        }

    def disable(self) -> dict[str, Any]:
        return {
            "is_recurring": False,
            "recurrence_pattern": RecurrencePattern.NONE,
            "next_recurrence": None,
        }

    def resolve_create(
        self, is_recurring: bool, pattern: RecurrencePattern, now: datetime
    ) -> dict[str, Any]:
        """Recurrence fields for a new task."""
        if is_recurring:
            if pattern == RecurrencePattern.NONE:
                raise InvalidRecurrenceError("A recurring task needs a recurrence pattern")
            return self.enable(pattern, now)

        if pattern != RecurrencePattern.NONE:
            raise InvalidRecurrenceError("A recurrence pattern requires is_recurring to be true")
        return {
            "is_recurring": False,
            "recurrence_pattern": RecurrencePattern.NONE,
            "last_recurrence": None,
            "next_recurrence": None,
        }

    def resolve_update(
        self, current: TaskRecord, changes: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        """Recurrence fields to merge into an update of ``current``.

        Returns an empty dict when the update leaves the schedule alone.
        """
        if "is_recurring" not in changes and "recurrence_pattern" not in changes:
            return {}

        wants_recurring = changes.get("is_recurring", current.is_recurring)
        pattern = changes.get("recurrence_pattern", current.recurrence_pattern)

        if not wants_recurring:
            if "is_recurring" in changes:
                return self.disable()
            if pattern != RecurrencePattern.NONE:
                raise InvalidRecurrenceError(
                    "A recurrence pattern requires is_recurring to be true"
                )
            return {"recurrence_pattern": RecurrencePattern.NONE}

        if pattern == RecurrencePattern.NONE:
            raise InvalidRecurrenceError("A recurring task needs a recurrence pattern")

        # Spawned instances are recurring but unscheduled; enabling makes them a series
        if (
            not current.is_recurring
            or current.next_recurrence is None
            or pattern != current.recurrence_pattern
        ):
            return self.enable(pattern, now)
        return {}

    # =========================================================================
    # Sweep
    # =========================================================================

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Spawn an instance of every due recurring task and advance its schedule.

        A sweep already running in this process causes the new one to be
        skipped. Per-task failures are recorded and the sweep moves on; a
        failure to fetch the due set aborts the sweep. Nothing is raised.
        """
        if self.lock.locked():
            logger.warning("recurring_sweep_skipped", reason="sweep_in_progress")
            return SweepReport(skipped=True)

        async with self.lock:
            return await self._sweep(now or self.clock())

    async def _sweep(self, now: datetime) -> SweepReport:
        try:
            due = await self.repository.find(
                TaskFilter(is_recurring=True, next_recurrence_lte=now)
            )
        except Exception as e:
            logger.error("recurring_sweep_fetch_failed", error=str(e))
            return SweepReport(aborted=True, error=str(e))

        report = SweepReport()
        for source in due:
            try:
                spawned = await self._spawn(source, now)
                report.spawned.append(spawned.id)
            except Exception as e:
                logger.error(
                    "recurring_task_spawn_failed",
                    task_id=str(source.id),
                    error=str(e),
                )
                report.failures.append(SweepFailure(task_id=source.id, error=str(e)))
                continue

        logger.info(
            "recurring_sweep_completed",
            due=len(due),
            spawned=len(report.spawned),
            failed=len(report.failures),
        )
        return report

    async def _spawn(self, source: TaskRecord, now: datetime) -> TaskRecord:
        """Create the next instance of ``source`` and advance its schedule.

        Both writes share one ``atomic()`` block; on a backend without
        transactions a failed advance leaves the spawn behind and the next
        sweep spawns again.
        """
        instance = TaskRecord(
            id=uuid4(),
            owner_id=source.owner_id,
            title=source.title,
            description=source.description,
            status=TaskStatus.NOT_DONE,
            priority=source.priority,
            is_recurring=source.is_recurring,
            recurrence_pattern=source.recurrence_pattern,
            dependencies=list(source.dependencies),
            recurrence_source_id=source.id,
            created_at=now,
            updated_at=now,
        )

        async with self.repository.atomic():
            created = await self.repository.insert(instance)
            advanced = await self.repository.update_one(
                TaskFilter(id=source.id),
                {
                    "last_recurrence": now,
                    "next_recurrence": compute_next(now, source.recurrence_pattern),
                    "updated_at": now,
                },
            )
            if advanced is None:
                # Source vanished mid-sweep; roll the spawn back with it
                raise NotFoundError(str(source.id))

        logger.info(
            "recurring_task_spawned",
            task_id=str(created.id),
            source_id=str(source.id),
            next_recurrence=str(advanced.next_recurrence),
        )
        return created
