"""PinExtractor: derive a portal access PIN from email text.

Strategy order, most precise first:

1. Language model over subject + body.  The model can follow in-email
   disambiguation such as "use PIN 5678, not 1234" which fixed patterns
   cannot.
2. A rule-supplied regex (first capture group).
3. A fixed list of common phrasings.
"""

from __future__ import annotations

import re
from typing import Any

import structlog
from pydantic import BaseModel
from pydantic_ai import Agent

from .models import PinExtractionResult, PinMethod

logger = structlog.get_logger()

PIN_RE = re.compile(r"^\d{4,8}$")

PIN_SYSTEM_PROMPT = """
You are extracting a PIN or access code from an email that explains how to
access a secure statement or invoice portal. The email may say explicitly
which PIN to use; follow those instructions. The PIN is typically 4-8 digits.
Return "pin" (digits only, or null if there is none) and "reason" (a brief
explanation of why you chose it).
"""

COMMON_PIN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"PIN[\s:]*[:\-]?\s*(\d{4,8})(?!\d)", re.IGNORECASE),
    re.compile(r"(?:\d[\s-]?digit[\s-]?PIN|PIN[\s-]?is)[\s:]*[:\-]?\s*(\d{4,8})(?!\d)", re.IGNORECASE),
    re.compile(r"(?:enter|use|your)\s+PIN[\s:]*[:\-]?\s*(\d{4,8})(?!\d)", re.IGNORECASE),
    re.compile(r"(?:code|password)[\s:]*[:\-]?\s*(\d{4,8})(?!\d)", re.IGNORECASE),
)


class PinCandidate(BaseModel):
    """Structured model output; validated again before it is trusted."""

    pin: str | None = None
    reason: str | None = None


class PinExtractor:
    """AI-first PIN extraction with deterministic regex fallbacks."""

    def __init__(self, agent: Agent[None, Any] | None = None, *, max_context_chars: int = 4000) -> None:
        self._agent = agent
        self._max_context_chars = max_context_chars

    async def extract(
        self,
        body: str,
        subject: str | None = None,
        custom_pattern: str | None = None,
    ) -> PinExtractionResult | None:
        result = await self._extract_with_ai(body, subject)
        if result is not None:
            return result

        haystacks = [text for text in (body, subject) if text]

        if custom_pattern:
            result = self._extract_with_custom_pattern(haystacks, custom_pattern)
            if result is not None:
                return result

        for pattern in COMMON_PIN_PATTERNS:
            for text in haystacks:
                match = pattern.search(text)
                if match:
                    logger.info("pin_found_common_pattern", pattern=pattern.pattern)
                    return PinExtractionResult(
                        pin=match.group(1),
                        confidence=0.6,
                        method=PinMethod.PATTERN,
                    )

        logger.warning("pin_not_found")
        return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _extract_with_ai(self, body: str, subject: str | None) -> PinExtractionResult | None:
        if self._agent is None:
            return None

        context = f"Subject: {subject}\n\n{body}" if subject else body
        prompt = (
            "Extract the PIN or access code from this email. Pay attention to "
            'phrases like "use PIN", "enter PIN", "your PIN is".\n\n'
            f"Email:\n{context[: self._max_context_chars]}"
        )

        try:
            run = await self._agent.run(prompt)
            candidate = run.output
            if not isinstance(candidate, PinCandidate):
                candidate = PinCandidate.model_validate(candidate)
        except Exception as exc:
            logger.warning("pin_ai_extraction_failed", error=str(exc))
            return None

        pin = (candidate.pin or "").strip()
        if not PIN_RE.match(pin):
            logger.info("pin_ai_no_valid_pin", returned=bool(pin))
            return None

        logger.info("pin_found_ai", pin=pin[:2] + "****")
        return PinExtractionResult(
            pin=pin,
            confidence=0.9,
            method=PinMethod.AI,
            reason=candidate.reason,
        )

    @staticmethod
    def _extract_with_custom_pattern(
        haystacks: list[str],
        custom_pattern: str,
    ) -> PinExtractionResult | None:
        try:
            regex = re.compile(custom_pattern, re.IGNORECASE)
        except re.error as exc:
            logger.warning("pin_custom_pattern_invalid", pattern=custom_pattern, error=str(exc))
            return None

        if regex.groups < 1:
            logger.warning("pin_custom_pattern_without_group", pattern=custom_pattern)
            return None

        for text in haystacks:
            match = regex.search(text)
            if match and match.group(1) and PIN_RE.match(match.group(1)):
                logger.info("pin_found_custom_pattern")
                return PinExtractionResult(
                    pin=match.group(1),
                    confidence=0.8,
                    method=PinMethod.PATTERN,
                )
        return None
