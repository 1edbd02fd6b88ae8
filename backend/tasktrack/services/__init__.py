"""Services package."""

from tasktrack.services.dependencies import DependencyValidator
from tasktrack.services.gates import CompletionGate, DeletionGate
from tasktrack.services.recurrence import (
    RecurrenceScheduler,
    SweepFailure,
    SweepReport,
    compute_next,
)
from tasktrack.services.task import TaskService

__all__ = [
    "CompletionGate",
    "DeletionGate",
    "DependencyValidator",
    "RecurrenceScheduler",
    "SweepFailure",
    "SweepReport",
    "TaskService",
    "compute_next",
]
