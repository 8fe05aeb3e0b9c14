from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    completed = "Completed"
    failed = "Failed"
    deadline_exceeded = "DeadlineExceeded"
    running = "Running"
    unknown = "Unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (
            JobStatus.completed,
            JobStatus.failed,
            JobStatus.deadline_exceeded,
        )


class ContainerState(str, Enum):
    running = "Running"
    creating = "Creating"
    err_image_pull = "ErrImagePull"
    unknown = "Unknown"


class WaitOutcome(str, Enum):
    """What a wait resolves to. ErrImagePull comes from the container, not the job."""

    completed = "Completed"
    failed = "Failed"
    deadline_exceeded = "DeadlineExceeded"
    err_image_pull = "ErrImagePull"
    running = "Running"

    @classmethod
    def from_job_status(cls, status: JobStatus) -> "WaitOutcome":
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal job status")
        return cls(status.value)


class JobCondition(BaseModel):
    type: str
    reason: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None


class JobSnapshot(BaseModel):
    succeeded: int = 0
    failed: int = 0
    active: int = 0
    completions: int = 1
    backoff_limit: int = 6
    conditions: List[JobCondition] = Field(default_factory=list)

    @classmethod
    def from_manifest(cls, manifest: dict) -> "JobSnapshot":
        """Builds a snapshot from a batch/v1 Job document"""
        spec = manifest.get("spec") or {}
        status = manifest.get("status") or {}

        def _count(source: dict, key: str, default: int = 0) -> int:
            value: Any = source.get(key)
            return default if value is None else int(value)

        return cls(
            succeeded=_count(status, "succeeded"),
            failed=_count(status, "failed"),
            active=_count(status, "active"),
            completions=_count(spec, "completions", 1),
            backoff_limit=_count(spec, "backoffLimit", 6),
            conditions=[
                JobCondition.model_validate(condition)
                for condition in status.get("conditions") or []
            ],
        )


class ContainerDiagnostic(BaseModel):
    ok: bool
    output: str = ""


class WaitResult(BaseModel):
    job_name: str
    outcome: WaitOutcome
    elapsed_time: float
    ticks: int

    @property
    def succeeded(self) -> bool:
        return self.outcome == WaitOutcome.completed


class WaitConfig(BaseModel):
    poll_interval: float = Field(default=1.0, gt=0)
    follow_logs: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)  # None waits forever
