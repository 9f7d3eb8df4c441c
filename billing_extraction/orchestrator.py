"""LaneOrchestrator: run extraction lanes cheapest first until one yields PDFs."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog
from structlog.contextvars import bound_contextvars

from .lanes.base import BaseLane
from .models import ExtractionResult, ExtractionRule, InboundEmail, LaneMethod, LaneName
from .trace import Trace

logger = structlog.get_logger()

EXHAUSTED_ERROR = "all extraction lanes exhausted"
LANE_TIMEOUT_ERROR = "lane timed out"
DEADLINE_ERROR = "extraction deadline exceeded"

_LANE_ORDER: tuple[LaneName, ...] = (
    LaneName.ATTACHMENTS,
    LaneName.DIRECT_LINK,
    LaneName.PIN_PORTAL,
    LaneName.AGENTIC,
)

_PLANS: dict[LaneMethod, frozenset[LaneName]] = {
    LaneMethod.AUTO: frozenset(_LANE_ORDER),
    LaneMethod.PIN_PORTAL: frozenset({LaneName.ATTACHMENTS, LaneName.DIRECT_LINK, LaneName.PIN_PORTAL}),
    LaneMethod.AGENTIC: frozenset({LaneName.ATTACHMENTS, LaneName.DIRECT_LINK, LaneName.AGENTIC}),
    LaneMethod.NONE: frozenset({LaneName.ATTACHMENTS, LaneName.DIRECT_LINK}),
}

# Older rules still say "playwright" for the PIN portal lane
_METHOD_ALIASES = {"playwright": LaneMethod.PIN_PORTAL}


def resolve_method(rule: ExtractionRule) -> LaneMethod:
    """Map ``lane3Config.method`` to a :class:`LaneMethod`, defaulting to ``auto``."""
    raw = rule.lane3_config.method if rule.lane3_config else None
    if not raw:
        return LaneMethod.AUTO

    value = raw.strip().lower()
    if value in _METHOD_ALIASES:
        return _METHOD_ALIASES[value]
    try:
        return LaneMethod(value)
    except ValueError:
        logger.warning("unknown_lane_method", method=raw, fallback=LaneMethod.AUTO.value)
        return LaneMethod.AUTO


class LaneOrchestrator:
    """Fixed-priority cascade over the configured lanes.

    Each lane runs under ``min(lane budget, remaining job budget)``.  Lane
    errors and lane timeouts are recorded in the merged trace, after the
    steps the lane had recorded so far, and the cascade moves on; only
    exhausting the job budget stops it early.
    Cancellation of the caller propagates into the running lane.
    """

    def __init__(self, lanes: Iterable[BaseLane], *, job_timeout_seconds: float = 900.0) -> None:
        self._lanes = {lane.name: lane for lane in lanes}
        self._job_timeout_seconds = job_timeout_seconds

    def lanes_for(self, rule: ExtractionRule) -> list[BaseLane]:
        plan = _PLANS[resolve_method(rule)]
        return [self._lanes[name] for name in _LANE_ORDER if name in plan and name in self._lanes]

    async def run(
        self,
        email: InboundEmail,
        rule: ExtractionRule,
        *,
        job_id: str | None = None,
    ) -> ExtractionResult:
        with bound_contextvars(job_id=job_id, message_id=email.message_id):
            return await self._cascade(email, rule)

    async def _cascade(self, email: InboundEmail, rule: ExtractionRule) -> ExtractionResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._job_timeout_seconds
        trace = Trace()
        portal_url: str | None = None

        for lane in self.lanes_for(rule):
            lane_name = lane.name.value
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("extraction_deadline_exceeded", next_lane=lane_name)
                trace.add("error", lane=lane_name, error=DEADLINE_ERROR)
                return ExtractionResult.failure(DEADLINE_ERROR, trace.entries, escalation_url=portal_url)

            budget = lane.time_budget(rule)
            bounded_by_job = budget is None or budget >= remaining
            timeout = remaining if bounded_by_job else budget

            trace.add("lane_started", lane=lane_name)
            logger.info("lane_started", lane=lane_name, timeout_seconds=round(timeout, 3))

            lane_trace = Trace()
            try:
                async with asyncio.timeout(timeout):
                    result = await lane.run(email, rule, portal_url=portal_url, trace=lane_trace)
            except TimeoutError:
                trace.extend(lane_trace.entries)
                if bounded_by_job:
                    logger.warning("extraction_deadline_exceeded", lane=lane_name)
                    trace.add("error", lane=lane_name, error=DEADLINE_ERROR)
                    trace.add("lane_finished", lane=lane_name, success=False, error=DEADLINE_ERROR)
                    return ExtractionResult.failure(DEADLINE_ERROR, trace.entries, escalation_url=portal_url)
                logger.warning("lane_timed_out", lane=lane_name, timeout_seconds=round(timeout, 3))
                trace.add("error", lane=lane_name, error=LANE_TIMEOUT_ERROR, timeout_seconds=timeout)
                trace.add("lane_finished", lane=lane_name, success=False, error=LANE_TIMEOUT_ERROR)
                continue
            except Exception as exc:
                logger.exception("lane_failed", lane=lane_name)
                trace.extend(lane_trace.entries)
                trace.add("error", lane=lane_name, error=str(exc), error_type=type(exc).__name__)
                trace.add("lane_finished", lane=lane_name, success=False, error=str(exc))
                continue

            trace.extend(result.trace)
            trace.add("lane_finished", lane=lane_name, success=result.success, error=result.error)

            if result.has_documents:
                logger.info("extraction_succeeded", lane=lane_name, pdf_count=len(result.pdf_buffers))
                return ExtractionResult(
                    success=True,
                    pdf_buffers=result.pdf_buffers,
                    trace=trace.entries,
                    lane=result.lane or lane.name,
                )

            logger.info("lane_unsuccessful", lane=lane_name, error=result.error)
            if result.escalation_url:
                portal_url = result.escalation_url

        logger.warning("extraction_lanes_exhausted")
        return ExtractionResult.failure(EXHAUSTED_ERROR, trace.entries, escalation_url=portal_url)
