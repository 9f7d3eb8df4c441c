"""HTTP API: extraction webhook, job inspection and health probes."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .jobs import DocumentSummary
from .models import ExtractionRule, InboundEmail, LaneName, TraceEntry

if TYPE_CHECKING:
    from .service import ExtractionService


class ExtractionRequest(BaseModel):
    job_id: str | None = None
    email: InboundEmail
    rule: ExtractionRule = Field(default_factory=ExtractionRule)


class ExtractionResponse(BaseModel):
    job_id: str
    success: bool
    error: str | None = None
    lane: LaneName | None = None
    documents: list[DocumentSummary] = Field(default_factory=list)
    trace: list[TraceEntry] = Field(default_factory=list)


def create_app(service: ExtractionService) -> FastAPI:
    """Create the FastAPI app bound to a started :class:`ExtractionService`."""
    app = FastAPI(title="billing-extraction", docs_url=None, redoc_url=None)

    @app.post("/v1/extractions", response_model=ExtractionResponse)
    async def create_extraction(request: ExtractionRequest) -> ExtractionResponse:
        if not service.is_ready:
            raise HTTPException(status_code=503, detail="service not ready")

        job_id = request.job_id or uuid.uuid4().hex
        result = await service.extract(job_id, request.email, request.rule)
        return ExtractionResponse(
            job_id=job_id,
            success=result.success,
            error=result.error,
            lane=result.lane,
            documents=[DocumentSummary.from_document(d) for d in result.pdf_buffers],
            trace=result.trace,
        )

    @app.get("/v1/extractions/{job_id}")
    async def get_extraction(job_id: str) -> JSONResponse:
        record = await service.tracker.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"unknown job {job_id}")
        body = record.model_dump(mode="json")
        body["status"] = record.status
        return JSONResponse(body)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "service": "billing-extraction",
            "jobs_processed": service.jobs_processed,
            "jobs_succeeded": service.jobs_succeeded,
            "jobs_failed": service.jobs_failed,
            "ai_enabled": service.ai_enabled,
            "uptime_seconds": round(service.uptime_seconds, 1),
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = service.is_ready
        return JSONResponse(
            {"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
