"""Job tracking: the observability sink for finished extraction jobs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from .models import ExtractionResult, LaneName, PdfDocument, TraceEntry

logger = structlog.get_logger()


class DocumentSummary(BaseModel):
    """A PDF as reported outside the service (no payload bytes)."""

    name: str
    size: int
    url: str | None = None

    @classmethod
    def from_document(cls, document: PdfDocument) -> DocumentSummary:
        return cls(name=document.name, size=document.size, url=document.url)


class JobAttempt(BaseModel):
    success: bool
    error: str | None = None
    lane: LaneName | None = None
    documents: list[DocumentSummary] = Field(default_factory=list)
    trace: list[TraceEntry] = Field(default_factory=list)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class JobRecord(BaseModel):
    """Every recorded attempt for one job id, oldest first."""

    job_id: str
    message_id: str | None = None
    attempts: list[JobAttempt] = Field(default_factory=list)

    @property
    def latest(self) -> JobAttempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def status(self) -> str:
        latest = self.latest
        if latest is None:
            return "pending"
        return "succeeded" if latest.success else "failed"


class JobTracker(Protocol):
    """Anything that can persist the outcome of an extraction job."""

    async def record(
        self,
        job_id: str,
        result: ExtractionResult,
        *,
        message_id: str | None = None,
    ) -> JobRecord: ...

    async def get(self, job_id: str) -> JobRecord | None: ...


class InMemoryJobTracker:
    """Process-local tracker; attempts are appended to, never rewritten.

    At most *max_records* jobs are kept.  Recording a job marks it most
    recent; the least recently recorded job is evicted past the limit.
    """

    def __init__(self, *, max_records: int = 1000) -> None:
        if max_records < 1:
            raise ValueError("max_records must be at least 1")
        self._max_records = max_records
        self._records: dict[str, JobRecord] = {}

    async def record(
        self,
        job_id: str,
        result: ExtractionResult,
        *,
        message_id: str | None = None,
    ) -> JobRecord:
        attempt = JobAttempt(
            success=result.success,
            error=result.error,
            lane=result.lane,
            documents=[DocumentSummary.from_document(d) for d in result.pdf_buffers],
            trace=list(result.trace),
        )
        record = self._records.pop(job_id, None)
        if record is None:
            record = JobRecord(job_id=job_id, message_id=message_id)
        record.attempts.append(attempt)
        self._records[job_id] = record

        while len(self._records) > self._max_records:
            evicted = next(iter(self._records))
            del self._records[evicted]
            logger.debug("job_record_evicted", job_id=evicted)

        logger.info(
            "job_recorded",
            job_id=job_id,
            message_id=message_id,
            status=record.status,
            lane=result.lane.value if result.lane else None,
            error=result.error,
            document_count=len(attempt.documents),
            trace_entries=len(attempt.trace),
            attempt=len(record.attempts),
        )
        return record

    async def get(self, job_id: str) -> JobRecord | None:
        return self._records.get(job_id)

    def __len__(self) -> int:
        return len(self._records)
