"""Pydantic models for job queue data structures.

This module defines the type-safe models used throughout the queue system.
All models use Pydantic for validation and serialization.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..errors import ErrorType


class JobStatus(str, Enum):
    """Job processing states with explicit semantics.

    State transitions:
        waiting → processing     (scheduler dispatches)
        processing → completed   (processor returned an outcome)
        processing → failed      (attempts exhausted or non-retryable error)
        processing → waiting     (retry, only while attempts < max_attempts)
        waiting → failed         (cancelled before dispatch)
    """

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class FileItem(BaseModel):
    """One uploaded file awaiting ingestion."""

    name: str = Field(..., min_length=1, description="Client-side filename")
    size: int = Field(..., ge=0, description="Declared size in bytes")
    mime_type: str = Field(..., description="Declared MIME type")
    data: bytes = Field(default=b"", repr=False, description="Raw file bytes")


class JobPayload(BaseModel):
    """Everything a job needs to ingest one batch."""

    owner_id: str = Field(..., description="User who owns the resulting album")
    batch_label: str = Field(default="", description="Event / batch label")
    parent_name: str = Field(..., description="Name of the album to create")
    session_id: str = Field(default="", description="Client session for progress reporting")
    files: List[FileItem] = Field(default_factory=list)


class CatalogRecord(BaseModel):
    """Catalog entry written once per successfully ingested file."""

    id: Optional[str] = Field(default=None, description="Assigned by the catalog store")
    owner_id: str
    parent_id: str
    filename: str
    mime_type: str
    size: int = Field(ge=0, description="Stored byte size of the original variant")
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    storage_key: Optional[str] = Field(default=None, description="None in fallback mode")
    storage_url: str
    medium_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    degraded: bool = Field(default=False, description="True when stored as a base64 data URI")
    created_at: datetime = Field(default_factory=datetime.now)


class FileFailure(BaseModel):
    """Per-file error entry."""

    filename: str
    error: str
    error_type: ErrorType = ErrorType.PERMANENT


class JobOutcome(BaseModel):
    """Aggregated per-file results for one job."""

    parent_id: Optional[str] = None
    succeeded: List[CatalogRecord] = Field(default_factory=list)
    failed: List[FileFailure] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded_filenames(self) -> List[str]:
        return [record.filename for record in self.succeeded]


class JobDescriptor(BaseModel):
    """A queued ingestion job.

    Mutated only by the scheduler (status, attempts, timestamps).
    """

    id: str = Field(default_factory=lambda: f"job-{uuid.uuid4().hex}")
    payload: JobPayload
    priority: int = Field(default=0, description="Higher = dispatched first")
    status: JobStatus = Field(default=JobStatus.WAITING)
    created_at: datetime = Field(default_factory=datetime.now)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    file_count: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_error: Optional[str] = Field(default=None, description="Last job-level error")
    outcome: Optional[JobOutcome] = None
    cancel_requested: bool = False

    def model_post_init(self, __context) -> None:
        if not self.file_count:
            self.file_count = len(self.payload.files)

    @property
    def session_id(self) -> str:
        return self.payload.session_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def release_files(self) -> None:
        """Drop file payloads once the job is terminal."""
        self.payload.files = []

    def summary(self) -> dict:
        """JSON-friendly view without file bytes."""
        data = {
            "job_id": self.id,
            "status": self.status.value,
            "priority": self.priority,
            "session_id": self.session_id,
            "parent_name": self.payload.parent_name,
            "file_count": self.file_count,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "last_error": self.last_error,
        }
        if self.outcome is not None:
            data["outcome"] = self.outcome.model_dump(mode="json")
        return data


class QueueStats(BaseModel):
    """Point-in-time counts."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class SessionStats(QueueStats):
    """Counts scoped to one client session."""

    session_id: str
    total_jobs: int = 0

    @property
    def is_processing_complete(self) -> bool:
        return self.waiting == 0 and self.active == 0

    @property
    def progress(self) -> int:
        """Percent of this session's jobs that completed."""
        if self.total_jobs == 0:
            return 0
        return round(self.completed / self.total_jobs * 100)
