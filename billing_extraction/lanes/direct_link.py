"""Lane 2: download a PDF from a plain link in the email body."""

from __future__ import annotations

import time
from urllib.parse import unquote, urlsplit

import httpx
import structlog

from ..exceptions import DownloadError, PdfValidationError
from ..http import content_type_of, fetch, is_html
from ..links import EmailLink, detect_interaction, extract_pdf_links
from ..models import ExtractionResult, ExtractionRule, InboundEmail, LaneName, PdfDocument
from ..pdf import validate_pdf
from ..trace import Trace
from .base import BaseLane

logger = structlog.get_logger()


def file_name_for(link: EmailLink) -> str:
    if link.label and link.label.lower().endswith(".pdf"):
        return link.label
    last_segment = unquote(urlsplit(link.url).path.rsplit("/", 1)[-1])
    if last_segment.lower().endswith(".pdf"):
        return last_segment
    return f"downloaded-{int(time.time() * 1000)}.pdf"


class DirectLinkLane(BaseLane):
    """One unauthenticated GET per candidate link, no autonomous interaction.

    A link that answers with an interactive HTML page is not downloaded;
    it is reported as the lane's ``escalation_url`` instead.
    """

    def __init__(self, client: httpx.AsyncClient, *, timeout_seconds: float | None = None) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        self._client = client

    @property
    def name(self) -> LaneName:
        return LaneName.DIRECT_LINK

    async def run(
        self,
        email: InboundEmail,
        rule: ExtractionRule | None = None,
        *,
        portal_url: str | None = None,
        trace: Trace | None = None,
    ) -> ExtractionResult:
        trace = trace if trace is not None else Trace()
        trace.add("start", lane=self.name.value)

        links = extract_pdf_links(email)
        trace.add("links_extracted", link_count=len(links))
        if not links:
            return ExtractionResult.failure("No links found in email", trace.entries, lane=self.name)

        accepted: list[PdfDocument] = []
        escalation_url: str | None = None

        for link in links:
            try:
                response = await fetch(self._client, link.url)
            except DownloadError as exc:
                logger.warning("direct_link_failed", url=link.url, error=str(exc))
                trace.add("url_failed", url=link.url, status_code=exc.status_code, error=str(exc))
                continue

            trace.add(
                "url_fetched",
                url=link.url,
                status_code=response.status_code,
                content_type=content_type_of(response),
            )

            if is_html(response):
                interaction = detect_interaction(response.text)
                trace.add(
                    "interaction_detected",
                    url=link.url,
                    requires_interaction=interaction.requires_interaction,
                    interaction_type=interaction.interaction_type,
                    confidence=interaction.confidence,
                )
                if interaction.requires_interaction:
                    logger.info(
                        "direct_link_requires_interaction",
                        url=link.url,
                        interaction_type=interaction.interaction_type,
                    )
                    escalation_url = escalation_url or link.url
                    continue

            try:
                content = validate_pdf(response.content)
            except PdfValidationError as exc:
                trace.add("pdf_rejected", url=link.url, reason=str(exc))
                continue

            document = PdfDocument(name=file_name_for(link), content=content, url=link.url)
            accepted.append(document)
            trace.add("pdf_downloaded", url=link.url, file_name=document.name, size=document.size)

        if not accepted:
            return ExtractionResult.failure(
                "No PDFs could be downloaded from links",
                trace.entries,
                lane=self.name,
                escalation_url=escalation_url,
            )

        trace.add("complete", pdf_count=len(accepted))
        logger.info("direct_links_extracted", pdf_count=len(accepted))
        return ExtractionResult(success=True, pdf_buffers=accepted, trace=trace.entries, lane=self.name)
