"""ExtractionService: wire the pipeline once, run jobs, serve the API."""

from __future__ import annotations

import asyncio
import signal
import time
from typing import Any, Protocol

import httpx
import structlog
import uvicorn

from .ai import build_agent, create_model
from .api import create_app
from .browser import BrowserUseDriver
from .classifier import CLASSIFIER_SYSTEM_PROMPT, ClassifierOutput, DocumentClassifier
from .config import AppConfig
from .goal import GOAL_SYSTEM_PROMPT, GoalGenerator
from .guardrails import default_guardrails
from .http import create_http_client
from .jobs import InMemoryJobTracker, JobTracker
from .lanes import AgenticBrowserLane, AttachmentsLane, DirectLinkLane, PinPortalLane
from .models import ExtractionResult, ExtractionRule, InboundEmail, PdfDocument
from .orchestrator import LaneOrchestrator
from .pin import PIN_SYSTEM_PROMPT, PinCandidate, PinExtractor

logger = structlog.get_logger()


class DocumentExtractor(Protocol):
    """Downstream consumer that parses PDF bytes into invoice / payment data."""

    async def extract(
        self,
        pdf_buffers: list[PdfDocument],
        invoice_config: dict[str, Any] | None,
        payment_config: dict[str, Any] | None,
    ) -> Any: ...


class ExtractionService:
    """Owns the shared clients, the lanes and the orchestrator.

    Everything is built once in :meth:`start`; jobs only read it.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        tracker: JobTracker | None = None,
        downstream: DocumentExtractor | None = None,
        orchestrator: LaneOrchestrator | None = None,
    ) -> None:
        self._config = config
        self._tracker: JobTracker = (
            tracker if tracker is not None else InMemoryJobTracker(max_records=config.job_history_size)
        )
        self._downstream = downstream
        self._orchestrator = orchestrator
        self._owns_orchestrator = orchestrator is None

        self._http: httpx.AsyncClient | None = None
        self._driver: BrowserUseDriver | None = None
        self._shutdown_event = asyncio.Event()

        self._jobs_processed: int = 0
        self._jobs_succeeded: int = 0
        self._jobs_failed: int = 0
        self._start_time: float = 0.0

    # ------------------------------------------------------------------
    # Public properties (used by health checks)
    # ------------------------------------------------------------------

    @property
    def jobs_processed(self) -> int:
        return self._jobs_processed

    @property
    def jobs_succeeded(self) -> int:
        return self._jobs_succeeded

    @property
    def jobs_failed(self) -> int:
        return self._jobs_failed

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._start_time if self._start_time else 0.0

    @property
    def ai_enabled(self) -> bool:
        return self._config.ai.enabled

    @property
    def tracker(self) -> JobTracker:
        return self._tracker

    @property
    def is_ready(self) -> bool:
        return self._orchestrator is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._start_time = time.monotonic()
        if self._orchestrator is None:
            self._orchestrator = await self._build_orchestrator()
        logger.info("extraction_service_started", ai_enabled=self.ai_enabled)

    async def stop(self) -> None:
        if self._driver is not None:
            await self._driver.stop()
            self._driver = None
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        if self._owns_orchestrator:
            self._orchestrator = None
        logger.info("extraction_service_stopped")

    async def _build_orchestrator(self) -> LaneOrchestrator:
        cfg = self._config
        model = create_model(cfg.ai)

        classifier = DocumentClassifier(
            build_agent(model, cfg.ai, output_type=ClassifierOutput, system_prompt=CLASSIFIER_SYSTEM_PROMPT),
        )
        pin_extractor = PinExtractor(
            build_agent(
                model,
                cfg.ai,
                output_type=PinCandidate,
                system_prompt=PIN_SYSTEM_PROMPT,
                temperature=0.1,
            ),
            max_context_chars=cfg.ai.max_context_chars,
        )
        goal_generator = GoalGenerator(
            build_agent(model, cfg.ai, output_type=str, system_prompt=GOAL_SYSTEM_PROMPT, temperature=0.3),
            max_context_chars=cfg.ai.max_context_chars,
        )

        self._http = create_http_client(cfg.http)
        self._driver = BrowserUseDriver(cfg.browser_use, cfg.retry)
        await self._driver.start()

        lanes = [
            AttachmentsLane(classifier, timeout_seconds=cfg.timeouts.attachments_seconds),
            DirectLinkLane(self._http, timeout_seconds=cfg.timeouts.direct_link_seconds),
            PinPortalLane(self._http, pin_extractor, timeout_seconds=cfg.timeouts.pin_portal_seconds),
            AgenticBrowserLane(
                goal_generator,
                self._driver,
                default_guardrails(cfg.guardrails),
                grace_seconds=cfg.timeouts.agentic_grace_seconds,
            ),
        ]
        return LaneOrchestrator(lanes, job_timeout_seconds=cfg.timeouts.job_seconds)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def extract(self, job_id: str, email: InboundEmail, rule: ExtractionRule) -> ExtractionResult:
        """Run the cascade for one email, record it, and forward any PDFs."""
        if self._orchestrator is None:
            raise RuntimeError("extraction service is not started")

        result = await self._orchestrator.run(email, rule, job_id=job_id)

        self._jobs_processed += 1
        if result.has_documents:
            self._jobs_succeeded += 1
        else:
            self._jobs_failed += 1

        await self._tracker.record(job_id, result, message_id=email.message_id)

        if result.has_documents and self._downstream is not None:
            await self._forward(job_id, result, rule)
        return result

    async def _forward(self, job_id: str, result: ExtractionResult, rule: ExtractionRule) -> None:
        assert self._downstream is not None
        invoice_config = rule.invoice_extraction_config if rule.extract_for_invoice else None
        payment_config = rule.payment_extraction_config if rule.extract_for_payment else None
        try:
            await self._downstream.extract(result.pdf_buffers, invoice_config, payment_config)
        except Exception:
            # The extraction itself succeeded and is already recorded
            logger.exception("downstream_extraction_failed", job_id=job_id)
        else:
            logger.info("downstream_extraction_submitted", job_id=job_id, pdf_count=len(result.pdf_buffers))

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start the pipeline and serve the HTTP API until SIGTERM / SIGINT."""
        self._install_signal_handlers()
        await self.start()
        try:
            config = uvicorn.Config(
                create_app(self),
                host=self._config.host,
                port=self._config.port,
                log_level="warning",
            )
            server = uvicorn.Server(config)

            serve_task = asyncio.create_task(server.serve())
            await self._shutdown_event.wait()
            server.should_exit = True
            await serve_task
        finally:
            await self.stop()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._shutdown_event.set)
