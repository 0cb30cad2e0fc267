"""Job status sinks.

The pipeline reports phase progress and terminal status through a
JobStatusSink. The in-memory sink backs tests and local runs, the logging
sink is a no-persistence default, and the Celery sink publishes progress as
task state so clients can poll the result backend.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from clipcaption.schemas.job import JobStatus, PipelinePhase

logger = logging.getLogger(__name__)


class JobStatusSink(Protocol):
    async def update_progress(self, job_id: str, phase: PipelinePhase, percent: int) -> None:
        ...

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> None:
        ...


@dataclass
class JobRecord:
    """Status of one composition job."""

    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    progress_phase: Optional[PipelinePhase] = None
    progress_percent: Optional[int] = None
    error_message: Optional[str] = None
    output_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "progress_phase": self.progress_phase.value if self.progress_phase else None,
            "progress_percent": self.progress_percent,
            "error_message": self.error_message,
            "output_url": self.output_url,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class InMemoryJobStatusSink:
    """Keeps JobRecords in a dict.

    Progress fields only describe a processing job; they are cleared when
    the job leaves processing.
    """

    def __init__(self) -> None:
        self.records: dict[str, JobRecord] = {}
        self.progress_history: list[tuple[str, PipelinePhase, int]] = []

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self.records.get(job_id)

    def _record(self, job_id: str) -> JobRecord:
        if job_id not in self.records:
            self.records[job_id] = JobRecord(job_id=job_id)
        return self.records[job_id]

    async def update_progress(self, job_id: str, phase: PipelinePhase, percent: int) -> None:
        record = self._record(job_id)
        if record.status != JobStatus.PROCESSING:
            logger.warning(f"[STATUS] Ignoring progress for {record.status.value} job {job_id}")
            return
        record.progress_phase = phase
        record.progress_percent = percent
        record.updated_at = datetime.now(timezone.utc)
        self.progress_history.append((job_id, phase, percent))

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> None:
        record = self._record(job_id)
        record.status = status
        record.error_message = error_message
        if output_url is not None:
            record.output_url = output_url
        if status != JobStatus.PROCESSING:
            record.progress_phase = None
            record.progress_percent = None
        record.updated_at = datetime.now(timezone.utc)


class LoggingJobStatusSink:
    """Writes status changes to the log only."""

    async def update_progress(self, job_id: str, phase: PipelinePhase, percent: int) -> None:
        logger.info(f"[STATUS] Job {job_id}: {phase.value} {percent}%")

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> None:
        if status == JobStatus.FAILED:
            logger.error(f"[STATUS] Job {job_id} failed: {error_message}")
        else:
            logger.info(f"[STATUS] Job {job_id}: {status.value}")


class CeleryTaskStatusSink:
    """Publishes progress through a bound Celery task's state."""

    def __init__(self, task):
        self.task = task

    async def update_progress(self, job_id: str, phase: PipelinePhase, percent: int) -> None:
        self.task.update_state(
            state="PROGRESS",
            meta={"job_id": job_id, "progress": percent, "stage": phase.value},
        )

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> None:
        # Terminal states are set by Celery from the task's return value or exception
        if status == JobStatus.PROCESSING:
            self.task.update_state(
                state="PROGRESS",
                meta={"job_id": job_id, "progress": 0, "stage": status.value},
            )
            return
        logger.info(
            f"[STATUS] Job {job_id}: {status.value}"
            + (f" ({error_message})" if error_message else "")
        )
