"""Shared fixtures and builders for the extraction test suite."""

from __future__ import annotations

import base64
from typing import Any

import pytest

from billing_extraction.config import (
    AISettings,
    BrowserUseSettings,
    GuardrailSettings,
    HttpSettings,
    RetrySettings,
)
from billing_extraction.models import Attachment, ExtractionRule, Guardrails, InboundEmail

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
NOT_PDF_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


def b64(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


# ------------------------------------------------------------------
# Builders
# ------------------------------------------------------------------


def make_attachment(
    name: str = "statement.pdf",
    content: bytes = PDF_BYTES,
    content_type: str = "application/pdf",
) -> Attachment:
    return Attachment(
        Name=name,
        ContentType=content_type,
        Content=b64(content),
        ContentLength=len(content),
    )


def make_email(
    *,
    subject: str = "Your municipal account",
    text_body: str = "",
    html_body: str = "",
    attachments: list[Attachment] | None = None,
    message_id: str = "msg-001",
) -> InboundEmail:
    return InboundEmail(
        MessageID=message_id,
        From="billing@city.gov.za",
        To="bills@inbox.example.com",
        Subject=subject,
        TextBody=text_body,
        HtmlBody=html_body,
        Attachments=attachments or [],
    )


def make_rule(**lane3: Any) -> ExtractionRule:
    """Build a rule; keyword arguments become ``lane3Config`` fields (camelCase)."""
    payload: dict[str, Any] = {"extractForInvoice": True, "extractForPayment": False}
    if lane3:
        payload["lane3Config"] = lane3
    return ExtractionRule.model_validate(payload)


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES


@pytest.fixture
def guardrails() -> Guardrails:
    return Guardrails(max_steps=25, max_time=300, allowed_domains=[])


@pytest.fixture
def guardrail_settings() -> GuardrailSettings:
    return GuardrailSettings(max_steps=25, max_time_seconds=300, allowed_domains=[])


@pytest.fixture
def ai_settings() -> AISettings:
    return AISettings(api_key=None)


@pytest.fixture
def http_settings() -> HttpSettings:
    return HttpSettings(timeout_seconds=5.0, transport_retries=0)


@pytest.fixture
def retry_settings() -> RetrySettings:
    return RetrySettings(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.05)


@pytest.fixture
def browser_settings() -> BrowserUseSettings:
    return BrowserUseSettings(
        api_key="bu_test_key",
        base_url="https://browser.test/api/v2",
        poll_interval_seconds=0.01,
    )
