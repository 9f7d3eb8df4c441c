"""Tests for billing_extraction.lanes.pin_portal."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import respx
from structlog.testing import capture_logs

from billing_extraction.config import HttpSettings
from billing_extraction.http import create_http_client
from billing_extraction.lanes.pin_portal import PinPortalLane
from billing_extraction.models import LaneName
from billing_extraction.pin import PinExtractor

from tests.conftest import PDF_BYTES, make_email, make_rule

PORTAL = "https://eservices.city.gov.za/statement"
PIN_EMAIL_BODY = "Your statement is ready. Your PIN is: 5678"


def _pdf_headers(name: str | None = None) -> dict[str, str]:
    headers = {"content-type": "application/pdf"}
    if name:
        headers["content-disposition"] = f'attachment; filename="{name}"'
    return headers


class TestPinPortalLane:
    @pytest.mark.asyncio
    async def test_no_pin(self, http_settings: HttpSettings):
        email = make_email(text_body=f"Your statement is ready at {PORTAL}")
        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(email, make_rule())

        assert result.success is False
        assert result.error == "Could not extract PIN from email"
        assert result.lane is LaneName.PIN_PORTAL

    @pytest.mark.asyncio
    async def test_no_portal_url(self, http_settings: HttpSettings):
        email = make_email(text_body=PIN_EMAIL_BODY)
        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(email, make_rule())

        assert result.success is False
        assert result.error == "No portal URL available"

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_with_pin_param_from_portal_hint(self, http_settings: HttpSettings):
        route = respx.get(PORTAL).respond(200, content=PDF_BYTES, headers=_pdf_headers("March.pdf"))
        email = make_email(text_body=PIN_EMAIL_BODY)

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(email, make_rule(), portal_url=PORTAL)

        assert result.success is True
        assert result.pdf_buffers[0].name == "March.pdf"
        assert result.pdf_buffers[0].url == PORTAL
        assert route.calls[0].request.url.params["pin"] == "5678"

        extracted = next(e for e in result.trace if e.step == "pin_extracted")
        assert extracted.data == {"pin": "56****", "method": "pattern", "confidence": 0.6}
        assert "5678" not in str([e.data for e in result.trace])

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_with_custom_param_and_extra_params(self, http_settings: HttpSettings):
        route = respx.post(PORTAL).respond(200, content=PDF_BYTES, headers=_pdf_headers())
        rule = make_rule(
            method="pin_portal",
            pinPortalConfig={
                "downloadUrl": PORTAL,
                "httpMethod": "post",
                "pinParam": "accessCode",
                "pinPattern": r"access code[:\s]+(\d{6})",
                "extraParams": {"account": "4410023"},
            },
        )
        email = make_email(text_body="Use access code: 246810 to view. Old PIN 1111 no longer works.")

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(email, rule)

        assert result.success is True
        assert result.pdf_buffers[0].name.startswith("statement-")
        request = route.calls[0].request
        assert request.content == b"account=4410023&accessCode=246810"

    @pytest.mark.asyncio
    @respx.mock
    async def test_pin_placeholder_in_download_url(self, http_settings: HttpSettings):
        route = respx.get(url__regex=r"https://eservices\.city\.gov\.za/pdf/\d+").respond(
            200, content=PDF_BYTES, headers=_pdf_headers()
        )
        rule = make_rule(pinPortalConfig={"downloadUrl": "https://eservices.city.gov.za/pdf/{pin}"})

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(make_email(text_body=PIN_EMAIL_BODY), rule)

        assert result.success is True
        assert str(route.calls[0].request.url) == "https://eservices.city.gov.za/pdf/5678"
        assert result.pdf_buffers[0].url == "https://eservices.city.gov.za/pdf/{pin}"

    @pytest.mark.asyncio
    @respx.mock
    async def test_filled_in_url_kept_out_of_logs_and_trace(self, http_settings: HttpSettings):
        route = respx.get("https://eservices.city.gov.za/pdf/987654").respond(
            200, content=PDF_BYTES, headers=_pdf_headers()
        )
        rule = make_rule(pinPortalConfig={"downloadUrl": "https://eservices.city.gov.za/pdf/{pin}"})
        email = make_email(text_body="Your PIN is: 987654")

        with capture_logs() as logs:
            async with create_http_client(http_settings) as client:
                result = await PinPortalLane(client, PinExtractor()).run(email, rule)

        assert result.success is True
        assert route.called
        assert any(e.get("url") == "https://eservices.city.gov.za/pdf/{pin}" for e in logs)
        assert "987654" not in str(logs)
        assert "987654" not in str([e.data for e in result.trace])

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_filled_in_url_hides_pin(self, http_settings: HttpSettings):
        respx.get("https://eservices.city.gov.za/pdf/987654").respond(404)
        rule = make_rule(pinPortalConfig={"downloadUrl": "https://eservices.city.gov.za/pdf/{pin}"})
        email = make_email(text_body="Your PIN is: 987654")

        with capture_logs() as logs:
            async with create_http_client(http_settings) as client:
                result = await PinPortalLane(client, PinExtractor()).run(email, rule)

        assert result.success is False
        assert result.error == "HTTP 404: Not Found"
        assert "987654" not in str(logs)
        assert "987654" not in str([e.data for e in result.trace])

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_first_email_link(self, http_settings: HttpSettings):
        route = respx.get(PORTAL).respond(200, content=PDF_BYTES, headers=_pdf_headers())
        email = make_email(html_body=f'<a href="{PORTAL}">Open</a>', text_body=PIN_EMAIL_BODY)

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(email, make_rule())

        assert result.success is True
        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_html_response_escalates(self, http_settings: HttpSettings):
        respx.get(PORTAL).respond(200, text="<html><form></form></html>", headers={"content-type": "text/html"})

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(
                make_email(text_body=PIN_EMAIL_BODY), make_rule(), portal_url=PORTAL
            )

        assert result.success is False
        assert result.error == "Portal returned an interactive page instead of a PDF"
        assert result.escalation_url == PORTAL

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self, http_settings: HttpSettings):
        respx.get(PORTAL).respond(403)

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(
                make_email(text_body=PIN_EMAIL_BODY), make_rule(), portal_url=PORTAL
            )

        assert result.success is False
        assert result.error == "HTTP 403: Forbidden"

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_pdf_rejected(self, http_settings: HttpSettings):
        respx.get(PORTAL).respond(200, content=b"PK\x03\x04zip", headers={"content-type": "application/zip"})

        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(
                make_email(text_body=PIN_EMAIL_BODY), make_rule(), portal_url=PORTAL
            )

        assert result.success is False
        assert result.error.startswith("Portal response rejected")

    @pytest.mark.asyncio
    async def test_unsupported_method(self, http_settings: HttpSettings):
        rule = make_rule(pinPortalConfig={"downloadUrl": PORTAL, "httpMethod": "PUT"})
        async with create_http_client(http_settings) as client:
            result = await PinPortalLane(client, PinExtractor()).run(make_email(text_body=PIN_EMAIL_BODY), rule)
        assert result.success is False
        assert "Unsupported portal HTTP method" in result.error

    @pytest.mark.asyncio
    async def test_custom_pattern_passed_to_extractor(self, http_settings: HttpSettings):
        extractor = AsyncMock(spec=PinExtractor)
        extractor.extract.return_value = None
        rule = make_rule(pinPortalConfig={"pinPattern": r"code (\d{4})"})
        email = make_email(subject="Statement", text_body="body")

        async with create_http_client(http_settings) as client:
            await PinPortalLane(client, extractor).run(email, rule)

        extractor.extract.assert_awaited_once_with("body", "Statement", r"code (\d{4})")
