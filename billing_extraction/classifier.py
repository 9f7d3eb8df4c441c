"""DocumentClassifier: label a candidate file as invoice, statement or other.

Filename heuristics run first; the language model is consulted only when
they are inconclusive.  Classification never raises: any model failure
degrades to a low-confidence ``statement``.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field
from pydantic_ai import Agent

from .models import DocumentClassification, DocumentType

logger = structlog.get_logger()

CLASSIFIER_SYSTEM_PROMPT = """
You are classifying documents received by a property manager.
Classify as 'invoice' (a bill requesting payment for a period),
'statement' (an account summary with opening/closing balances), or 'other'.
Return the type, a confidence between 0 and 1, and a short reason.
"""

_INVOICE_HINTS = ("invoice", "inv")
_STATEMENT_HINTS = ("statement", "stmt", "bill")

DEFAULT_CLASSIFICATION = DocumentClassification(
    type=DocumentType.STATEMENT,
    confidence=0.5,
    reason="unable to determine type, defaulting to statement",
)


class ClassifierOutput(BaseModel):
    """Structured model output for document classification."""

    type: DocumentType
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    reason: str | None = None


class DocumentClassifier:
    """Classify attachments by filename, falling back to the language model."""

    def __init__(self, agent: Agent[None, Any] | None = None) -> None:
        self._agent = agent

    async def classify(
        self,
        file_name: str,
        content_type: str | None = None,
    ) -> DocumentClassification:
        lower = file_name.lower()

        if any(hint in lower for hint in _INVOICE_HINTS):
            return DocumentClassification(
                type=DocumentType.INVOICE,
                confidence=0.8,
                reason="filename contains 'invoice'",
            )
        if any(hint in lower for hint in _STATEMENT_HINTS):
            return DocumentClassification(
                type=DocumentType.STATEMENT,
                confidence=0.8,
                reason="filename contains 'statement' or 'bill'",
            )

        if self._agent is None:
            return DEFAULT_CLASSIFICATION

        prompt = f"Classify this document based on its filename: {file_name}"
        if content_type:
            prompt += f"\nContent type: {content_type}"

        try:
            result = await self._agent.run(prompt)
            output = result.output
            if not isinstance(output, ClassifierOutput):
                output = ClassifierOutput.model_validate(output)
        except Exception as exc:
            logger.warning("document_classification_failed", file_name=file_name, error=str(exc))
            return DEFAULT_CLASSIFICATION

        return DocumentClassification(
            type=output.type,
            confidence=output.confidence,
            reason=output.reason,
        )
