"""Lane 1: PDFs already attached to the email."""

from __future__ import annotations

import structlog

from ..classifier import DocumentClassifier
from ..exceptions import PdfValidationError
from ..models import ExtractionResult, ExtractionRule, InboundEmail, LaneName, PdfDocument
from ..pdf import decode_base64, looks_like_pdf, validate_pdf
from ..trace import Trace
from .base import BaseLane

logger = structlog.get_logger()


class AttachmentsLane(BaseLane):
    """Decode, validate and classify PDF attachments.

    Bad attachments are skipped individually; the lane fails only when
    no attachment survives.  Classification annotates the trace and never
    gates acceptance.
    """

    def __init__(self, classifier: DocumentClassifier, *, timeout_seconds: float | None = None) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        self._classifier = classifier

    @property
    def name(self) -> LaneName:
        return LaneName.ATTACHMENTS

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

        if not email.attachments:
            return ExtractionResult.failure("No attachments found in email", trace.entries, lane=self.name)

        trace.add("attachments_found", count=len(email.attachments))
        accepted: list[PdfDocument] = []

        for attachment in email.attachments:
            if not looks_like_pdf(attachment.name, attachment.content_type):
                logger.debug("attachment_not_pdf", file_name=attachment.name)
                trace.add(
                    "attachment_skipped",
                    file_name=attachment.name,
                    reason="not a PDF",
                    content_type=attachment.content_type,
                )
                continue

            try:
                content = validate_pdf(decode_base64(attachment.content))
            except PdfValidationError as exc:
                logger.warning("attachment_rejected", file_name=attachment.name, error=str(exc))
                trace.add("attachment_rejected", file_name=attachment.name, reason=str(exc))
                continue

            classification = await self._classifier.classify(attachment.name, attachment.content_type)
            trace.add(
                "document_classified",
                file_name=attachment.name,
                type=classification.type.value,
                confidence=classification.confidence,
            )
            accepted.append(PdfDocument(name=attachment.name, content=content))

        if not accepted:
            return ExtractionResult.failure("No valid PDF attachments found", trace.entries, lane=self.name)

        trace.add("complete", pdf_count=len(accepted))
        logger.info("attachments_extracted", pdf_count=len(accepted))
        return ExtractionResult(success=True, pdf_buffers=accepted, trace=trace.entries, lane=self.name)
