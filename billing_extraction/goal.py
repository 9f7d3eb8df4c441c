"""GoalGenerator: write the natural-language task for the agentic browser."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic_ai import Agent

from .exceptions import GoalGenerationError
from .models import ExtractionRule, InboundEmail

logger = structlog.get_logger()

GOAL_SYSTEM_PROMPT = """
You write task instructions for an autonomous web browser agent that must
download a billing document (municipal, utility or levy bill) as a PDF from a
portal linked in an email.

Write one concise instruction that:
- starts at the given URL;
- states any PIN, account number, reference or access code the email says to
  use, exactly as written in the email, and which one to prefer if several
  are mentioned;
- describes how to reach and download the PDF statement or invoice;
- tells the agent to stop once the PDF is downloaded and not to submit
  payments, change settings or visit unrelated sites.
Return only the instruction text.
"""


class GoalGenerator:
    """Turn rule configuration and the full email context into a browser goal."""

    def __init__(self, agent: Agent[None, Any] | None = None, *, max_context_chars: int = 4000) -> None:
        self._agent = agent
        self._max_context_chars = max_context_chars

    async def generate(self, url: str, email: InboundEmail, rule: ExtractionRule) -> str:
        if self._agent is None:
            return self.template_goal(url, email, rule)

        try:
            result = await self._agent.run(self._build_prompt(url, email, rule))
        except Exception as exc:
            raise GoalGenerationError(f"goal generation failed: {exc}") from exc

        goal = str(result.output or "").strip()
        if not goal:
            raise GoalGenerationError("goal generation returned empty text")
        return goal

    def _build_prompt(self, url: str, email: InboundEmail, rule: ExtractionRule) -> str:
        sections = [f"Portal URL: {url}"]
        sections.extend(self._rule_context(rule))
        sections.append(f"Email subject: {email.subject}")
        sections.append(f"Email body:\n{email.body[: self._max_context_chars]}")
        return "\n\n".join(sections)

    @staticmethod
    def _rule_context(rule: ExtractionRule) -> list[str]:
        parts: list[str] = []
        wanted = []
        if rule.extract_for_invoice:
            wanted.append("invoice")
        if rule.extract_for_payment:
            wanted.append("payment")
        if wanted:
            parts.append(f"The document is needed for: {', '.join(wanted)} extraction")
        if rule.invoice_instruction:
            parts.append(f"Invoice instructions: {rule.invoice_instruction}")
        if rule.payment_instruction:
            parts.append(f"Payment instructions: {rule.payment_instruction}")
        if rule.agentic_config.portal_context:
            parts.append(f"Portal notes: {rule.agentic_config.portal_context}")
        return parts

    def template_goal(self, url: str, email: InboundEmail, rule: ExtractionRule) -> str:
        """Deterministic goal used when no language model is configured."""
        lines = [
            f"Go to {url}.",
            "If the page asks for a PIN, access code or account number, use the "
            "value given in the email below.",
            "Find the latest statement or invoice and download it as a PDF.",
            "Stop as soon as the PDF is downloaded. Do not make payments or change "
            "any account settings.",
        ]
        lines.extend(self._rule_context(rule))
        lines.append(f"Email subject: {email.subject}")
        lines.append(f"Email body:\n{email.body[: self._max_context_chars]}")
        return "\n".join(lines)
