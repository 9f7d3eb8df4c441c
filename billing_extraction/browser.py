"""Agentic browser driver backed by the Browser Use Cloud REST API.

The driver enforces the guardrails it is given: the step budget is sent
with the task, the time budget bounds status polling, and the remote task
is stopped when the budget runs out or the caller cancels.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from .config import BrowserUseSettings, RetrySettings
from .exceptions import BrowserTaskError
from .models import Guardrails, TraceEntry
from .pdf import has_pdf_signature
from .retry import TRANSIENT_ERRORS, with_retry
from .trace import Trace

logger = structlog.get_logger()

TERMINAL_STATUSES = frozenset({"finished", "stopped", "failed"})


@dataclass
class AgenticBrowserResult:
    """Outcome of one browser task; ``pdf_content`` is set on success."""

    success: bool
    pdf_content: bytes | None = None
    error: str | None = None
    trace: list[TraceEntry] = field(default_factory=list)


def _is_running(task: dict[str, Any]) -> bool:
    return task.get("status") not in TERMINAL_STATUSES


class BrowserUseDriver:
    """Runs a natural-language goal as a Browser Use Cloud task and fetches the PDF."""

    def __init__(self, settings: BrowserUseSettings, retry_settings: RetrySettings) -> None:
        self._settings = settings
        self._retry = retry_settings
        self._client: httpx.AsyncClient | None = None
        self._files: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def api_key(self) -> str:
        key = self._settings.api_key.get_secret_value() if self._settings.api_key else ""
        return key

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._settings.base_url,
            headers={"X-Browser-Use-API-Key": self.api_key},
            timeout=httpx.Timeout(30.0),
        )
        # Output files are served from presigned URLs on a third-party host;
        # the API key must not travel with those requests.
        self._files = httpx.AsyncClient(timeout=httpx.Timeout(60.0), follow_redirects=True)
        logger.info("browser_driver_started", base_url=self._settings.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        if self._files is not None:
            await self._files.aclose()
        logger.info("browser_driver_stopped")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        url: str,
        goal: str,
        guardrails: Guardrails,
        *,
        trace: Trace | None = None,
    ) -> AgenticBrowserResult:
        """Run one task.

        Steps go into *trace* as they happen; the result carries only the
        entries this call added.
        """
        trace = trace if trace is not None else Trace()
        first = len(trace)
        trace.add("browser_start", url=url, guardrails=guardrails.model_dump())
        task_id: str | None = None

        try:
            if not self.api_key.startswith("bu_"):
                raise BrowserTaskError(
                    "BROWSER_USE_API_KEY is not set or invalid; it must start with 'bu_'"
                )
            if self._client is None:
                raise BrowserTaskError("browser driver not started")

            task_id = await self._create_task(url, goal, guardrails)
            trace.add("task_created", task_id=task_id)
            logger.info("browser_task_created", task_id=task_id)

            task = await self._wait_for_task(task_id, guardrails.max_time)
            output_files = task.get("outputFiles") or []
            trace.add(
                "task_completed",
                status=task.get("status"),
                output_length=len(task.get("output") or ""),
                output_files=len(output_files),
            )

            if task.get("status") != "finished":
                raise BrowserTaskError(f"Browser task ended with status '{task.get('status')}'")

            pdf_files = [f for f in output_files if str(f.get("fileName", "")).lower().endswith(".pdf")]
            if not pdf_files:
                trace.add("no_pdf_found", files=[f.get("fileName") for f in output_files])
                raise BrowserTaskError(
                    f"No PDF files found in task output. Found {len(output_files)} file(s)"
                )

            pdf_file = pdf_files[0]
            content = await self._download_output_file(task_id, str(pdf_file["id"]))
            trace.add("pdf_downloaded", file_name=pdf_file.get("fileName"), size=len(content))

            if not has_pdf_signature(content):
                raise BrowserTaskError(f"Downloaded file {pdf_file.get('fileName')} is not a valid PDF")

            trace.add("browser_complete", pdf_size=len(content))
            return AgenticBrowserResult(success=True, pdf_content=content, trace=trace.entries[first:])

        except asyncio.CancelledError:
            if task_id is not None:
                await self._stop_task_quietly(task_id)
            raise
        except Exception as exc:
            logger.warning("browser_task_failed", task_id=task_id, error=str(exc))
            trace.add("browser_error", error=str(exc), error_type=type(exc).__name__)
            return AgenticBrowserResult(success=False, error=str(exc), trace=trace.entries[first:])

    # ------------------------------------------------------------------
    # REST calls
    # ------------------------------------------------------------------

    async def _create_task(self, url: str, goal: str, guardrails: Guardrails) -> str:
        assert self._client is not None
        payload: dict[str, Any] = {
            "task": goal,
            "llm": self._settings.llm,
            "startUrl": url,
            "maxSteps": guardrails.max_steps,
        }
        if guardrails.allowed_domains:
            payload["allowedDomains"] = guardrails.allowed_domains

        @with_retry(self._retry, operation="create_task")
        async def _post() -> httpx.Response:
            assert self._client is not None
            return await self._client.post("/tasks", json=payload)

        response = await _post()
        response.raise_for_status()
        task_id = response.json().get("id")
        if not task_id:
            raise BrowserTaskError("Browser Use did not return a task id")
        return str(task_id)

    async def _get_task(self, task_id: str) -> dict[str, Any]:
        assert self._client is not None
        response = await self._client.get(f"/tasks/{task_id}")
        response.raise_for_status()
        return response.json()

    async def _wait_for_task(self, task_id: str, max_time: int) -> dict[str, Any]:
        poll = retry(
            retry=retry_if_result(_is_running) | retry_if_exception_type(TRANSIENT_ERRORS),
            wait=wait_fixed(self._settings.poll_interval_seconds),
            stop=stop_after_delay(max_time),
        )(self._get_task)
        try:
            return await poll(task_id)
        except RetryError as exc:
            await self._stop_task_quietly(task_id)
            raise BrowserTaskError(f"Task timeout after {max_time}s") from exc

    async def _download_output_file(self, task_id: str, file_id: str) -> bytes:
        assert self._client is not None and self._files is not None

        @with_retry(self._retry, operation="resolve_output_file")
        async def _resolve() -> httpx.Response:
            assert self._client is not None
            return await self._client.get(f"/files/tasks/{task_id}/output-files/{file_id}")

        response = await _resolve()
        response.raise_for_status()
        download_url = response.json().get("downloadUrl")
        if not download_url:
            raise BrowserTaskError(f"No download URL for output file {file_id}")

        file_response = await self._files.get(download_url)
        file_response.raise_for_status()
        return file_response.content

    async def _stop_task_quietly(self, task_id: str) -> None:
        """Best-effort remote stop so an abandoned job leaves no browser running."""
        if self._client is None:
            return
        try:
            async with asyncio.timeout(10):
                await self._client.patch(f"/tasks/{task_id}", json={"action": "stop"})
            logger.info("browser_task_stopped", task_id=task_id)
        except Exception as exc:
            logger.warning("browser_task_stop_failed", task_id=task_id, error=str(exc))
