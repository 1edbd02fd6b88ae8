"""Tests for recurrence arithmetic, schedule transitions and the sweep."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import OWNER_ID, T0, make_record
from tasktrack.repository.memory import InMemoryTaskRepository
from tasktrack.repository.base import TaskFilter
from tasktrack.schemas.task import (
    RecurrencePattern,
    TaskPriority,
    TaskStatus,
)
from tasktrack.services.exceptions import InvalidRecurrenceError, StorageError
from tasktrack.services.recurrence import (
    RecurrenceScheduler,
    add_months,
    compute_next,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# =============================================================================
# compute_next
# =============================================================================


class TestComputeNext:
    def test_daily_adds_one_day(self):
        assert compute_next(T0, RecurrencePattern.DAILY) == T0 + timedelta(days=1)

    def test_weekly_adds_seven_days(self):
        assert compute_next(T0, RecurrencePattern.WEEKLY) == T0 + timedelta(days=7)

    def test_monthly_keeps_day_and_time(self):
        assert compute_next(utc(2024, 1, 15, 9, 30), RecurrencePattern.MONTHLY) == utc(
            2024, 2, 15, 9, 30
        )

    @pytest.mark.parametrize(
        "start, expected",
        [
            (utc(2024, 1, 31), utc(2024, 2, 29)),
            (utc(2023, 1, 31), utc(2023, 2, 28)),
            (utc(2024, 3, 31), utc(2024, 4, 30)),
            (utc(2024, 12, 15), utc(2025, 1, 15)),
        ],
    )
    def test_monthly_clamps_to_end_of_month(self, start, expected):
        assert compute_next(start, RecurrencePattern.MONTHLY) == expected

    def test_none_does_not_advance(self):
        assert compute_next(T0, RecurrencePattern.NONE) == T0

    def test_unknown_pattern_does_not_advance(self):
        assert compute_next(T0, "fortnightly") == T0

    def test_accepts_string_values(self):
        assert compute_next(T0, "daily") == T0 + timedelta(days=1)

    def test_add_months_across_years(self):
        assert add_months(utc(2024, 11, 30), 3) == utc(2025, 2, 28)


# =============================================================================
# Transitions
# =============================================================================


class TestTransitions:
    def test_create_recurring_starts_schedule(self, scheduler):
        fields = scheduler.resolve_create(True, RecurrencePattern.WEEKLY, T0)

        assert fields["is_recurring"] is True
        assert fields["last_recurrence"] == T0
        assert fields["next_recurrence"] == T0 + timedelta(days=7)

    def test_create_recurring_without_pattern_is_rejected(self, scheduler):
        with pytest.raises(InvalidRecurrenceError):
            scheduler.resolve_create(True, RecurrencePattern.NONE, T0)

    def test_create_pattern_without_recurring_is_rejected(self, scheduler):
        with pytest.raises(InvalidRecurrenceError):
            scheduler.resolve_create(False, RecurrencePattern.DAILY, T0)

    def test_create_plain_task_has_no_schedule(self, scheduler):
        fields = scheduler.resolve_create(False, RecurrencePattern.NONE, T0)

        assert fields["next_recurrence"] is None
        assert fields["recurrence_pattern"] == RecurrencePattern.NONE

    @pytest.mark.parametrize(
        "pattern",
        [RecurrencePattern.DAILY, RecurrencePattern.WEEKLY, RecurrencePattern.MONTHLY],
    )
    def test_disable_always_clears_pattern_and_next(self, scheduler, pattern):
        current = make_record(
            is_recurring=True,
            recurrence_pattern=pattern,
            last_recurrence=T0,
            next_recurrence=compute_next(T0, pattern),
        )

        fields = scheduler.resolve_update(current, {"is_recurring": False}, T0)

        assert fields == {
            "is_recurring": False,
            "recurrence_pattern": RecurrencePattern.NONE,
            "next_recurrence": None,
        }

    def test_disable_wins_over_pattern_in_same_update(self, scheduler):
        current = make_record(
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.DAILY,
            next_recurrence=T0,
        )

        fields = scheduler.resolve_update(
            current,
            {"is_recurring": False, "recurrence_pattern": RecurrencePattern.WEEKLY},
            T0,
        )

        assert fields["recurrence_pattern"] == RecurrencePattern.NONE

    def test_enable_without_any_pattern_is_rejected(self, scheduler):
        current = make_record(recurrence_pattern=RecurrencePattern.NONE)

        with pytest.raises(InvalidRecurrenceError):
            scheduler.resolve_update(current, {"is_recurring": True}, T0)

    def test_changing_pattern_restarts_schedule(self, scheduler):
        later = T0 + timedelta(hours=5)
        current = make_record(
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.DAILY,
            last_recurrence=T0,
            next_recurrence=T0 + timedelta(days=1),
        )

        fields = scheduler.resolve_update(
            current, {"recurrence_pattern": RecurrencePattern.MONTHLY}, later
        )

        assert fields["last_recurrence"] == later
        assert fields["next_recurrence"] == add_months(later, 1)

    def test_same_pattern_is_a_no_op(self, scheduler):
        current = make_record(
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.DAILY,
            last_recurrence=T0,
            next_recurrence=T0 + timedelta(days=1),
        )

        fields = scheduler.resolve_update(
            current,
            {"is_recurring": True, "recurrence_pattern": RecurrencePattern.DAILY},
            T0 + timedelta(hours=3),
        )

        assert fields == {}

    def test_pattern_on_non_recurring_task_is_rejected(self, scheduler):
        with pytest.raises(InvalidRecurrenceError):
            scheduler.resolve_update(
                make_record(), {"recurrence_pattern": RecurrencePattern.DAILY}, T0
            )

    def test_untouched_recurrence_fields(self, scheduler):
        assert scheduler.resolve_update(make_record(), {"title": "x"}, T0) == {}


# =============================================================================
# Sweep
# =============================================================================


def recurring(pattern=RecurrencePattern.DAILY, next_recurrence=T0, **overrides):
    return make_record(
        is_recurring=True,
        recurrence_pattern=pattern,
        last_recurrence=T0,
        next_recurrence=next_recurrence,
        **overrides,
    )


class FlakyRepository(InMemoryTaskRepository):
    """Fails to advance the listed source tasks."""

    def __init__(self, fail_ids, **kwargs):
        super().__init__(**kwargs)
        self.fail_ids = set(fail_ids)

    async def update_one(self, filter, patch):
        if filter.id in self.fail_ids:
            raise StorageError("disk on fire")
        return await super().update_one(filter, patch)


class BrokenFindRepository(InMemoryTaskRepository):
    async def find(self, filter, sort=None):
        raise StorageError("connection refused")


class TestSweep:
    async def test_daily_task_spawns_one_instance_and_advances(self, repository, scheduler):
        source = recurring(
            title="Water plants",
            priority=TaskPriority.HIGH,
            description="Balcony",
            status=TaskStatus.DONE,
        )
        await repository.insert(source)

        report = await scheduler.sweep(T0)

        assert len(report.spawned) == 1
        spawned = await repository.find_one(TaskFilter(id=report.spawned[0]))
        assert spawned.status == TaskStatus.NOT_DONE
        assert spawned.title == "Water plants"
        assert spawned.priority == TaskPriority.HIGH
        assert spawned.description == "Balcony"
        assert spawned.owner_id == OWNER_ID
        assert spawned.recurrence_source_id == source.id
        assert spawned.next_recurrence is None
        assert spawned.created_at == T0

        advanced = await repository.find_one(TaskFilter(id=source.id))
        assert advanced.last_recurrence == T0
        assert advanced.next_recurrence == T0 + timedelta(days=1)

    @pytest.mark.parametrize(
        "pattern, expected",
        [
            (RecurrencePattern.WEEKLY, T0 + timedelta(days=7)),
            (RecurrencePattern.MONTHLY, utc(2024, 2, 15, 9, 30)),
        ],
    )
    async def test_advances_by_pattern(self, repository, scheduler, pattern, expected):
        source = recurring(pattern=pattern)
        await repository.insert(source)

        await scheduler.sweep(T0)

        advanced = await repository.find_one(TaskFilter(id=source.id))
        assert advanced.next_recurrence == expected

    async def test_spawn_copies_dependencies(self, repository, scheduler):
        dependency = make_record(title="Buy soil")
        await repository.insert(dependency)
        source = recurring(dependencies=[dependency.id])
        await repository.insert(source)

        report = await scheduler.sweep(T0)

        spawned = await repository.find_one(TaskFilter(id=report.spawned[0]))
        assert spawned.dependencies == [dependency.id]

    async def test_tasks_not_yet_due_are_left_alone(self, repository, scheduler):
        await repository.insert(recurring(next_recurrence=T0 + timedelta(minutes=1)))

        report = await scheduler.sweep(T0)

        assert report.spawned == []
        assert len(repository) == 1

    async def test_spawned_instances_are_not_swept_again(self, repository, scheduler):
        await repository.insert(recurring())

        await scheduler.sweep(T0)
        report = await scheduler.sweep(T0 + timedelta(days=1))

        assert len(report.spawned) == 1
        assert len(repository) == 3

    async def test_failed_task_does_not_block_the_rest(self, clock):
        bad = recurring(title="bad")
        good = recurring(title="good")
        repository = FlakyRepository([bad.id], records=[bad, good])
        scheduler = RecurrenceScheduler(repository, clock=clock, lock=asyncio.Lock())

        report = await scheduler.sweep(T0)

        assert len(report.spawned) == 1
        assert [f.task_id for f in report.failures] == [bad.id]
        assert "disk on fire" in report.failures[0].error
        # The failed task's spawn was rolled back with it
        spawned = await repository.find(TaskFilter(title_contains="bad"))
        assert [t.id for t in spawned] == [bad.id]

    async def test_fetch_failure_aborts_without_raising(self, clock):
        scheduler = RecurrenceScheduler(
            BrokenFindRepository(), clock=clock, lock=asyncio.Lock()
        )

        report = await scheduler.sweep(T0)

        assert report.aborted is True
        assert "connection refused" in report.error

    async def test_overlapping_sweep_is_skipped(self, repository, clock):
        lock = asyncio.Lock()
        scheduler = RecurrenceScheduler(repository, clock=clock, lock=lock)
        await repository.insert(recurring())

        async with lock:
            report = await scheduler.sweep(T0)

        assert report.skipped is True
        assert len(repository) == 1

    async def test_uses_clock_when_no_time_given(self, repository, scheduler, clock):
        await repository.insert(recurring(next_recurrence=T0 + timedelta(hours=2)))
        clock.advance(hours=2)

        report = await scheduler.sweep()

        assert len(report.spawned) == 1
