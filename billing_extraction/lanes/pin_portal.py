"""Lane 3: unlock a simple PIN-authenticated download endpoint."""

from __future__ import annotations

import re
import time
from urllib.parse import quote

import httpx
import structlog

from ..exceptions import DownloadError, PdfValidationError
from ..http import content_type_of, fetch, is_html
from ..links import extract_all_links
from ..models import ExtractionResult, ExtractionRule, InboundEmail, LaneName, PdfDocument
from ..pdf import validate_pdf
from ..pin import PinExtractor
from ..trace import Trace
from .base import BaseLane

logger = structlog.get_logger()

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def _attachment_name(response: httpx.Response) -> str:
    match = _FILENAME_RE.search(response.headers.get("content-disposition", ""))
    if match and match.group(1).lower().endswith(".pdf"):
        return match.group(1)
    return f"statement-{int(time.time() * 1000)}.pdf"


class PinPortalLane(BaseLane):
    """Derive a PIN from the email and send it to the portal's download endpoint.

    The endpoint comes from the rule's ``pinPortalConfig.downloadUrl``, else
    the portal URL handed over by an earlier lane, else the first link in
    the email.  A ``{pin}`` placeholder in the URL is substituted; otherwise
    the PIN travels as a query parameter (GET) or form field (POST).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        pin_extractor: PinExtractor,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        self._client = client
        self._pin_extractor = pin_extractor

    @property
    def name(self) -> LaneName:
        return LaneName.PIN_PORTAL

    async def run(
        self,
        email: InboundEmail,
        rule: ExtractionRule,
        *,
        portal_url: str | None = None,
        trace: Trace | None = None,
    ) -> ExtractionResult:
        trace = trace if trace is not None else Trace()
        trace.add("start", lane=self.name.value)
        config = rule.pin_portal_config

        trace.add("pin_extraction_start", custom_pattern=bool(config.pin_pattern))
        pin_result = await self._pin_extractor.extract(email.body, email.subject, config.pin_pattern)
        if pin_result is None:
            return ExtractionResult.failure(
                "Could not extract PIN from email",
                trace.entries,
                lane=self.name,
            )
        trace.add(
            "pin_extracted",
            pin=pin_result.masked,
            method=pin_result.method.value,
            confidence=pin_result.confidence,
        )

        target = config.download_url or portal_url
        if not target:
            links = extract_all_links(email)
            target = links[0].url if links else None
        if not target:
            return ExtractionResult.failure("No portal URL available", trace.entries, lane=self.name)

        method = config.http_method.upper()
        if method not in ("GET", "POST"):
            return ExtractionResult.failure(
                f"Unsupported portal HTTP method '{config.http_method}'",
                trace.entries,
                lane=self.name,
            )

        fields: dict[str, str] = dict(config.extra_params)
        url = target
        if "{pin}" in target:
            url = target.replace("{pin}", quote(pin_result.pin))
        else:
            fields[config.pin_param] = pin_result.pin

        trace.add("portal_request", url=target, method=method)
        try:
            response = await fetch(
                self._client,
                url,
                method=method,
                params=(fields or None) if method == "GET" else None,
                data=(fields or None) if method == "POST" else None,
                display_url=target,
            )
        except DownloadError as exc:
            # Scrub the PIN from messages that echo the request URL
            error = str(exc).replace(pin_result.pin, pin_result.masked)
            logger.warning("pin_portal_request_failed", url=target, error=error)
            trace.add("portal_request_failed", status_code=exc.status_code, error=error)
            return ExtractionResult.failure(error, trace.entries, lane=self.name)

        trace.add(
            "portal_response",
            status_code=response.status_code,
            content_type=content_type_of(response),
            size=len(response.content),
        )

        if is_html(response):
            logger.info("pin_portal_interactive", url=target)
            return ExtractionResult.failure(
                "Portal returned an interactive page instead of a PDF",
                trace.entries,
                lane=self.name,
                escalation_url=target if "{pin}" not in target else None,
            )

        try:
            content = validate_pdf(response.content)
        except PdfValidationError as exc:
            return ExtractionResult.failure(f"Portal response rejected: {exc}", trace.entries, lane=self.name)

        document = PdfDocument(name=_attachment_name(response), content=content, url=target)
        trace.add("complete", pdf_size=document.size, file_name=document.name)
        logger.info("pin_portal_extracted", url=target, size=document.size)
        return ExtractionResult(success=True, pdf_buffers=[document], trace=trace.entries, lane=self.name)
