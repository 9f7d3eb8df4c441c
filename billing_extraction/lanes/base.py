"""Abstract base class for extraction lanes."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import ExtractionResult, ExtractionRule, InboundEmail, LaneName
from ..trace import Trace


class BaseLane(ABC):
    """One self-contained extraction strategy.

    Every lane returns an :class:`ExtractionResult` carrying the entries
    it recorded.  Expected failures are reported through ``success=False`` and ``error``;
    anything a lane raises is caught by the orchestrator.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._timeout_seconds = timeout_seconds

    @property
    @abstractmethod
    def name(self) -> LaneName:
        """The lane identifier used in traces and results."""

    def time_budget(self, rule: ExtractionRule) -> float | None:
        """Seconds this lane may run for *rule*; ``None`` means unbounded."""
        return self._timeout_seconds

    @abstractmethod
    async def run(
        self,
        email: InboundEmail,
        rule: ExtractionRule,
        *,
        portal_url: str | None = None,
        trace: Trace | None = None,
    ) -> ExtractionResult:
        """Attempt extraction.

        *portal_url* is an interactive-portal URL discovered by a cheaper
        lane, if any.  Steps are recorded into *trace* as they happen, so
        they survive a timeout; a new :class:`Trace` is used when omitted.
        """
