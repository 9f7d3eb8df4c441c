"""Tests for billing_extraction.api."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from billing_extraction.api import create_app
from billing_extraction.config import AISettings, AppConfig, BrowserUseSettings
from billing_extraction.models import ExtractionResult, LaneName, PdfDocument, TraceEntry
from billing_extraction.orchestrator import LaneOrchestrator
from billing_extraction.service import ExtractionService

from tests.conftest import PDF_BYTES, b64

WEBHOOK_EMAIL = {
    "MessageID": "pm-7781",
    "From": "billing@city.gov.za",
    "To": "bills@inbox.example.com",
    "Subject": "Municipal account March",
    "Date": "Mon, 03 Mar 2025 08:15:00 +0200",
    "TextBody": "Please find your account attached.",
    "HtmlBody": "",
    "Attachments": [
        {
            "Name": "invoice_march.pdf",
            "ContentType": "application/pdf",
            "Content": b64(PDF_BYTES),
            "ContentLength": len(PDF_BYTES),
        }
    ],
}


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(ai=AISettings(api_key=None), browser_use=BrowserUseSettings(api_key=None))


def _client(service: ExtractionService) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(service)), base_url="http://test")


class TestExtractionEndpoints:
    @pytest.mark.asyncio
    async def test_post_extraction_end_to_end(self, config: AppConfig):
        service = ExtractionService(config)
        await service.start()
        try:
            async with _client(service) as client:
                resp = await client.post(
                    "/v1/extractions",
                    json={"job_id": "job-42", "email": WEBHOOK_EMAIL, "rule": {"extractForInvoice": True}},
                )
                lookup = await client.get("/v1/extractions/job-42")
        finally:
            await service.stop()

        assert resp.status_code == 200
        data = resp.json()
        assert data["job_id"] == "job-42"
        assert data["success"] is True
        assert data["lane"] == "lane1_attachments"
        assert data["documents"] == [{"name": "invoice_march.pdf", "size": len(PDF_BYTES), "url": None}]
        assert data["trace"][0]["step"] == "lane_started"

        assert lookup.status_code == 200
        record = lookup.json()
        assert record["job_id"] == "job-42"
        assert record["message_id"] == "pm-7781"
        assert record["status"] == "succeeded"
        assert len(record["attempts"]) == 1

    @pytest.mark.asyncio
    async def test_job_id_generated_when_missing(self, config: AppConfig):
        orchestrator = AsyncMock(spec=LaneOrchestrator)
        orchestrator.run.return_value = ExtractionResult(
            success=True,
            pdf_buffers=[PdfDocument(name="s.pdf", content=PDF_BYTES, url="https://city.gov.za/s.pdf")],
            trace=[TraceEntry(step="lane_started", data={"lane": "lane2_direct"})],
            lane=LaneName.DIRECT_LINK,
        )
        service = ExtractionService(config, orchestrator=orchestrator)
        await service.start()

        async with _client(service) as client:
            resp = await client.post("/v1/extractions", json={"email": WEBHOOK_EMAIL})

        data = resp.json()
        assert resp.status_code == 200
        assert len(data["job_id"]) == 32
        assert data["documents"][0]["url"] == "https://city.gov.za/s.pdf"
        assert orchestrator.run.await_args.kwargs["job_id"] == data["job_id"]

    @pytest.mark.asyncio
    async def test_failed_extraction_returns_error(self, config: AppConfig):
        orchestrator = AsyncMock(spec=LaneOrchestrator)
        orchestrator.run.return_value = ExtractionResult.failure("all extraction lanes exhausted", [])
        service = ExtractionService(config, orchestrator=orchestrator)
        await service.start()

        async with _client(service) as client:
            resp = await client.post("/v1/extractions", json={"job_id": "j", "email": WEBHOOK_EMAIL})

        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["error"] == "all extraction lanes exhausted"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, config: AppConfig):
        service = ExtractionService(config, orchestrator=AsyncMock(spec=LaneOrchestrator))
        await service.start()
        async with _client(service) as client:
            resp = await client.post("/v1/extractions", json={"email": {"Subject": "no message id"}})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_not_ready(self, config: AppConfig):
        async with _client(ExtractionService(config)) as client:
            resp = await client.post("/v1/extractions", json={"email": WEBHOOK_EMAIL})
        assert resp.status_code == 503

    @pytest.mark.asyncio
    async def test_unknown_job(self, config: AppConfig):
        async with _client(ExtractionService(config)) as client:
            resp = await client.get("/v1/extractions/nope")
        assert resp.status_code == 404


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, config: AppConfig):
        async with _client(ExtractionService(config)) as client:
            resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["service"] == "billing-extraction"
        assert data["jobs_processed"] == 0
        assert data["ai_enabled"] is False

    @pytest.mark.asyncio
    async def test_ready_before_and_after_start(self, config: AppConfig):
        service = ExtractionService(config, orchestrator=None)
        async with _client(service) as client:
            assert (await client.get("/ready")).status_code == 503
            await service.start()
            try:
                resp = await client.get("/ready")
            finally:
                await service.stop()
        assert resp.status_code == 200
        assert resp.json() == {"ready": True}
