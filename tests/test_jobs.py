"""Tests for billing_extraction.jobs."""

from __future__ import annotations

import pytest

from billing_extraction.jobs import DocumentSummary, InMemoryJobTracker
from billing_extraction.models import ExtractionResult, LaneName, PdfDocument, TraceEntry

from tests.conftest import PDF_BYTES


def _succeeded() -> ExtractionResult:
    return ExtractionResult(
        success=True,
        pdf_buffers=[PdfDocument(name="march.pdf", content=PDF_BYTES, url="https://city.gov.za/march.pdf")],
        trace=[TraceEntry(step="lane_started"), TraceEntry(step="lane_finished")],
        lane=LaneName.DIRECT_LINK,
    )


class TestInMemoryJobTracker:
    @pytest.mark.asyncio
    async def test_record_and_get(self):
        tracker = InMemoryJobTracker()
        record = await tracker.record("job-1", _succeeded(), message_id="msg-1")

        assert record.job_id == "job-1"
        assert record.message_id == "msg-1"
        assert record.status == "succeeded"
        assert record.latest.lane is LaneName.DIRECT_LINK
        assert record.latest.documents == [
            DocumentSummary(name="march.pdf", size=len(PDF_BYTES), url="https://city.gov.za/march.pdf")
        ]
        assert [e.step for e in record.latest.trace] == ["lane_started", "lane_finished"]
        assert await tracker.get("job-1") is record
        assert len(tracker) == 1

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        assert await InMemoryJobTracker().get("missing") is None

    @pytest.mark.asyncio
    async def test_attempts_are_appended(self):
        tracker = InMemoryJobTracker()
        await tracker.record("job-1", ExtractionResult.failure("all extraction lanes exhausted", []))
        record = await tracker.record("job-1", _succeeded())

        assert len(record.attempts) == 2
        assert record.attempts[0].success is False
        assert record.attempts[0].error == "all extraction lanes exhausted"
        assert record.status == "succeeded"
        assert len(tracker) == 1

    @pytest.mark.asyncio
    async def test_serializes_without_payload_bytes(self):
        tracker = InMemoryJobTracker()
        record = await tracker.record("job-1", _succeeded())
        dumped = record.model_dump(mode="json")
        assert dumped["attempts"][0]["documents"][0] == {
            "name": "march.pdf",
            "size": len(PDF_BYTES),
            "url": "https://city.gov.za/march.pdf",
        }
        assert "content" not in dumped["attempts"][0]["documents"][0]

    @pytest.mark.asyncio
    async def test_oldest_job_evicted_past_limit(self):
        tracker = InMemoryJobTracker(max_records=2)
        await tracker.record("job-1", _succeeded())
        await tracker.record("job-2", _succeeded())
        await tracker.record("job-3", _succeeded())

        assert len(tracker) == 2
        assert await tracker.get("job-1") is None
        assert await tracker.get("job-3") is not None

    @pytest.mark.asyncio
    async def test_recording_again_keeps_job_recent(self):
        tracker = InMemoryJobTracker(max_records=2)
        await tracker.record("job-1", _succeeded())
        await tracker.record("job-2", _succeeded())
        await tracker.record("job-1", _succeeded())
        await tracker.record("job-3", _succeeded())

        assert await tracker.get("job-2") is None
        record = await tracker.get("job-1")
        assert record is not None
        assert len(record.attempts) == 2

    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryJobTracker(max_records=0)
