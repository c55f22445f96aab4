"""In-process job queue and bounded scheduler."""

from .models import (
    CatalogRecord,
    FileFailure,
    FileItem,
    JobDescriptor,
    JobOutcome,
    JobPayload,
    JobStatus,
    QueueStats,
    SessionStats,
)
from .priority import PriorityJobQueue
from .scheduler import Scheduler

__all__ = [
    "CatalogRecord",
    "FileFailure",
    "FileItem",
    "JobDescriptor",
    "JobOutcome",
    "JobPayload",
    "JobStatus",
    "QueueStats",
    "SessionStats",
    "PriorityJobQueue",
    "Scheduler",
]
