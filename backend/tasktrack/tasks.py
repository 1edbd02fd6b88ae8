"""Celery background tasks."""

import asyncio

import redis
import structlog
from redis.exceptions import LockError

from tasktrack.config import get_settings
from tasktrack.services.recurrence import SweepReport
from tasktrack.worker import celery_app

logger = structlog.get_logger()
settings = get_settings()

SWEEP_LOCK_NAME = "tasktrack:recurrence-sweep"


def _sweep_lock():
    """Redis lock that keeps sweeps from overlapping across worker processes."""
    client = redis.Redis.from_url(str(settings.redis_url))
    return client.lock(SWEEP_LOCK_NAME, timeout=settings.recurrence_lock_timeout_seconds)


async def _process() -> SweepReport:
    from tasktrack.db.session import async_session_factory, engine
    from tasktrack.repository.sql import SQLAlchemyTaskRepository
    from tasktrack.services.task import TaskService

    try:
        async with async_session_factory() as db:
            service = TaskService(SQLAlchemyTaskRepository(db))
            report = await service.process_recurring()
            await db.commit()
            return report
    finally:
        # Pooled connections belong to this event loop, which asyncio.run closes
        await engine.dispose()


@celery_app.task(bind=True, name="tasktrack.tasks.process_recurring_tasks")
def process_recurring_tasks(self) -> dict:
    """
    Spawn instances of all due recurring tasks and advance their schedules.

    Scheduled hourly by Celery Beat (see ``tasktrack.worker``). A run that
    finds another sweep holding the lock is skipped rather than queued.
    """
    try:
        lock = _sweep_lock()
        if not lock.acquire(blocking=False):
            logger.warning("recurring_tasks_skipped", reason="lock_held")
            return {"status": "skipped"}
    except Exception as e:
        logger.error("recurring_tasks_lock_failed", error=str(e))
        return {"status": "error", "error": str(e)}

    try:
        report = asyncio.run(_process())
        logger.info("recurring_tasks_processed", **report.to_dict())
        return {"status": "error" if report.aborted else "success", **report.to_dict()}
    except Exception as e:
        logger.error(
            "recurring_tasks_processing_failed",
            error=str(e),
        )
        return {
            "status": "error",
            "error": str(e),
        }
    finally:
        try:
            lock.release()
        except LockError:
            # Lock expired while the sweep ran
            logger.warning("recurring_tasks_lock_lost")
