"""Lane 3B: autonomous browser session against an interactive portal."""

from __future__ import annotations

import time

import structlog

from ..browser import BrowserUseDriver
from ..exceptions import GuardrailViolation, PdfValidationError
from ..goal import GoalGenerator
from ..guardrails import check_url, resolve_guardrails
from ..links import extract_all_links
from ..models import ExtractionResult, ExtractionRule, Guardrails, InboundEmail, LaneName, PdfDocument
from ..pdf import validate_pdf
from ..trace import Trace
from .base import BaseLane

logger = structlog.get_logger()


class AgenticBrowserLane(BaseLane):
    """Last resort: hand a generated goal to the browser driver.

    Guardrails are resolved per rule and checked before any goal is
    generated or any browser is started.  Every failure, including
    driver and goal-generation errors, comes back as a failed result.
    """

    def __init__(
        self,
        goal_generator: GoalGenerator,
        driver: BrowserUseDriver,
        default_guardrails: Guardrails,
        *,
        grace_seconds: float = 30.0,
    ) -> None:
        super().__init__()
        self._goal_generator = goal_generator
        self._driver = driver
        self._defaults = default_guardrails
        self._grace_seconds = grace_seconds

    @property
    def name(self) -> LaneName:
        return LaneName.AGENTIC

    def time_budget(self, rule: ExtractionRule) -> float | None:
        return resolve_guardrails(rule, self._defaults).max_time + self._grace_seconds

    async def run(
        self,
        email: InboundEmail,
        rule: ExtractionRule,
        *,
        portal_url: str | None = None,
        trace: Trace | None = None,
    ) -> ExtractionResult:
        url = portal_url
        if not url:
            links = extract_all_links(email)
            url = links[0].url if links else None
        if not url:
            trace = trace if trace is not None else Trace()
            trace.add("start", lane=self.name.value)
            return ExtractionResult.failure(
                "No links found for interactive portal",
                trace.entries,
                lane=self.name,
            )
        return await self.browse(url, email, rule, trace=trace)

    async def browse(
        self,
        url: str,
        email: InboundEmail,
        rule: ExtractionRule,
        *,
        trace: Trace | None = None,
    ) -> ExtractionResult:
        """Drive the browser from *url* until it downloads a PDF or gives up."""
        trace = trace if trace is not None else Trace()
        trace.add("start", lane=self.name.value, url=url)

        guardrails = resolve_guardrails(rule, self._defaults)
        try:
            check_url(url, guardrails)
        except GuardrailViolation as exc:
            trace.add(
                "guardrails_checked",
                url_allowed=False,
                allowed_domains=guardrails.allowed_domains,
            )
            logger.warning("agentic_url_blocked", url=url, allowed_domains=guardrails.allowed_domains)
            return ExtractionResult.failure(str(exc), trace.entries, lane=self.name)
        trace.add(
            "guardrails_checked",
            url_allowed=True,
            max_steps=guardrails.max_steps,
            max_time=guardrails.max_time,
        )

        try:
            started = time.monotonic()
            goal = await self._goal_generator.generate(url, email, rule)
            trace.add(
                "goal_generated",
                goal_length=len(goal),
                duration_ms=int((time.monotonic() - started) * 1000),
            )

            outcome = await self._driver.run(url, goal, guardrails, trace=trace)
            if not outcome.success or outcome.pdf_content is None:
                return ExtractionResult.failure(
                    outcome.error or "Browser task did not produce a PDF",
                    trace.entries,
                    lane=self.name,
                )

            content = validate_pdf(outcome.pdf_content)
        except PdfValidationError as exc:
            trace.add("pdf_rejected", reason=str(exc))
            return ExtractionResult.failure(
                f"Browser returned an invalid PDF: {exc}",
                trace.entries,
                lane=self.name,
            )
        except Exception as exc:
            logger.exception("agentic_lane_failed", url=url)
            trace.add("error", error=str(exc), error_type=type(exc).__name__)
            return ExtractionResult.failure(str(exc), trace.entries, lane=self.name)

        document = PdfDocument(
            name=f"statement-{int(time.time() * 1000)}.pdf",
            content=content,
            url=url,
        )
        trace.add("complete", pdf_size=document.size, file_name=document.name)
        logger.info("agentic_extracted", url=url, size=document.size)
        return ExtractionResult(success=True, pdf_buffers=[document], trace=trace.entries, lane=self.name)
