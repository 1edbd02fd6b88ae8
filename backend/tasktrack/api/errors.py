"""Translation of task service errors into HTTP responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import ORJSONResponse

from tasktrack.services.exceptions import TaskErrorKind, TaskServiceError

logger = structlog.get_logger()

STATUS_BY_KIND: dict[TaskErrorKind, int] = {
    TaskErrorKind.INVALID_ID: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.INVALID_REFERENCE: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.SELF_REFERENCE: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.DEPENDENCY_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.UNMET_DEPENDENCIES: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.HAS_DEPENDENTS: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.CYCLIC_DEPENDENCY: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.INVALID_RECURRENCE: status.HTTP_400_BAD_REQUEST,
    TaskErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TaskErrorKind.STORAGE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def task_service_error_handler(
    request: Request, exc: TaskServiceError
) -> ORJSONResponse:
    status_code = STATUS_BY_KIND.get(exc.code, status.HTTP_400_BAD_REQUEST)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "task_request_rejected",
        code=exc.code.value,
        status_code=status_code,
        items=exc.items,
    )
    return ORJSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskServiceError, task_service_error_handler)
