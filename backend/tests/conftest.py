"""Shared fixtures for the task service tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from tasktrack.repository.memory import InMemoryTaskRepository
from tasktrack.schemas.task import TaskRecord
from tasktrack.services.recurrence import RecurrenceScheduler
from tasktrack.services.task import TaskService

OWNER_ID = UUID("11111111-1111-4111-8111-111111111111")
OTHER_OWNER_ID = UUID("22222222-2222-4222-8222-222222222222")
T0 = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_record(**overrides) -> TaskRecord:
    data = {
        "id": uuid4(),
        "owner_id": OWNER_ID,
        "title": "Task",
        "created_at": T0,
        "updated_at": T0,
    }
    data.update(overrides)
    return TaskRecord.model_validate(data)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def repository() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture
def scheduler(repository, clock) -> RecurrenceScheduler:
    return RecurrenceScheduler(repository, clock=clock, lock=asyncio.Lock())


@pytest.fixture
def service(repository, clock, scheduler) -> TaskService:
    return TaskService(repository, clock=clock, scheduler=scheduler)
