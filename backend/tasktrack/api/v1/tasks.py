"""Tasks API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from tasktrack.api.v1.auth import CurrentOwner
from tasktrack.config import get_settings
from tasktrack.db.session import DBSession
from tasktrack.repository.sql import SQLAlchemyTaskRepository
from tasktrack.schemas.task import (
    SortField,
    SortOrder,
    TaskCreate,
    TaskDetail,
    TaskListFilters,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)
from tasktrack.services.exceptions import NotFoundError
from tasktrack.services.task import TaskService

router = APIRouter()
settings = get_settings()


def get_task_service(db: DBSession) -> TaskService:
    """Build a task service over the request's database session."""
    return TaskService(
        SQLAlchemyTaskRepository(db),
        reject_dependency_cycles=settings.reject_dependency_cycles,
    )


TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]


@router.get("/", response_model=list[TaskDetail])
async def list_tasks(
    owner_id: CurrentOwner,
    service: TaskServiceDep,
    status_filter: TaskStatus | None = Query(None, alias="status"),
    priority: TaskPriority | None = Query(None),
    search: str | None = Query(None, max_length=100),
    sort: SortField = Query("created_at"),
    order: SortOrder = Query("desc"),
) -> list[TaskDetail]:
    """List the caller's tasks with optional filters."""
    filters = TaskListFilters(
        status=status_filter,
        priority=priority,
        search=search,
        sort=sort,
        order=order,
    )
    return await service.list_tasks(owner_id, filters)


@router.get("/{task_id}", response_model=TaskDetail)
async def get_task(
    task_id: str,
    owner_id: CurrentOwner,
    service: TaskServiceDep,
) -> TaskDetail:
    """Get a single task."""
    task = await service.get_task(owner_id, task_id)
    if task is None:
        raise NotFoundError(task_id)
    return task


@router.post("/", response_model=TaskDetail, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    owner_id: CurrentOwner,
    service: TaskServiceDep,
) -> TaskDetail:
    """Create a new task."""
    return await service.create_task(owner_id, data)


@router.patch("/{task_id}", response_model=TaskDetail)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    owner_id: CurrentOwner,
    service: TaskServiceDep,
) -> TaskDetail:
    """Update a task. Only the fields present in the body are changed."""
    return await service.update_task(owner_id, task_id, data)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    owner_id: CurrentOwner,
    service: TaskServiceDep,
) -> dict[str, str]:
    """Delete a task that no other task depends on."""
    await service.delete_task(owner_id, task_id)
    return {"message": "Task deleted successfully"}
