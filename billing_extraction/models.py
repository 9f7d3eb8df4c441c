"""Data models for the extraction pipeline.

Inbound payloads (email, rule) are frozen once validated.  Results are
created fresh per lane invocation and never mutated after a lane returns.
"""

from __future__ import annotations

import email.utils
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class DocumentType(str, Enum):
    """Kind of billing document."""

    INVOICE = "invoice"
    STATEMENT = "statement"
    OTHER = "other"


class PinMethod(str, Enum):
    """How a PIN was derived."""

    AI = "ai"
    PATTERN = "pattern"


class LaneName(str, Enum):
    """Identifiers of the extraction lanes, cheapest first."""

    ATTACHMENTS = "lane1_attachments"
    DIRECT_LINK = "lane2_direct"
    PIN_PORTAL = "lane3_pin_portal"
    AGENTIC = "lane3b_agentic"


class LaneMethod(str, Enum):
    """Values of ``lane3Config.method`` controlling how far the cascade may go."""

    AUTO = "auto"
    PIN_PORTAL = "pin_portal"
    AGENTIC = "agentic"
    NONE = "none"


# ------------------------------------------------------------------
# Inbound email (normalized webhook payload)
# ------------------------------------------------------------------


class Attachment(BaseModel):
    """A base64-encoded attachment as delivered by the email webhook."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(alias="Name")
    content_type: str = Field(default="application/octet-stream", alias="ContentType")
    content: str = Field(default="", alias="Content", description="Base64 encoded bytes")
    content_length: int = Field(default=0, alias="ContentLength")


class InboundEmail(BaseModel):
    """An inbound email believed to carry a bill.

    Accepts the webhook field names (``MessageID``, ``From``, ...) as well
    as the snake_case attribute names.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message_id: str = Field(alias="MessageID")
    sender: str = Field(default="", alias="From")
    recipient: str = Field(default="", alias="To")
    subject: str = Field(default="", alias="Subject")
    text_body: str = Field(default="", alias="TextBody")
    html_body: str = Field(default="", alias="HtmlBody")
    received_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("ReceivedAt", "Date", "received_at"),
    )
    attachments: list[Attachment] = Field(default_factory=list, alias="Attachments")

    @field_validator("subject", "text_body", "html_body", "sender", "recipient", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("received_at", mode="before")
    @classmethod
    def _parse_rfc2822(cls, value: Any) -> Any:
        """Accept RFC 2822 dates (``Mon, 01 Jun 2025 12:00:00 +0000``) besides ISO-8601."""
        if not isinstance(value, str) or not value:
            return value or None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return email.utils.parsedate_to_datetime(value).astimezone(UTC)

    @property
    def body(self) -> str:
        """Best available body: plain text, then HTML, then empty."""
        return self.text_body or self.html_body or ""


# ------------------------------------------------------------------
# Extraction rule (owned by the rule-management subsystem)
# ------------------------------------------------------------------


class _RuleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AgenticConfig(_RuleModel):
    max_steps: int | None = None
    max_time: int | None = Field(default=None, description="Seconds")
    allowed_domains: list[str] | None = None
    portal_context: str | None = Field(
        default=None,
        description="Free-text notes about the portal, passed to the goal generator",
    )


class PinPortalConfig(_RuleModel):
    download_url: str | None = Field(
        default=None,
        description="Portal download endpoint; may contain a '{pin}' placeholder",
    )
    http_method: str = "GET"
    pin_param: str = "pin"
    pin_pattern: str | None = Field(
        default=None,
        description="Regex whose first capture group is the PIN",
    )
    extra_params: dict[str, str] = Field(default_factory=dict)


class Lane3Config(_RuleModel):
    method: str | None = None
    agentic_config: AgenticConfig | None = None
    pin_portal_config: PinPortalConfig | None = None


class ExtractionRule(_RuleModel):
    """Read-only rule describing what to extract and how far to escalate."""

    extract_for_invoice: bool = False
    extract_for_payment: bool = False
    invoice_extraction_config: dict[str, Any] | None = None
    payment_extraction_config: dict[str, Any] | None = None
    invoice_instruction: str | None = None
    payment_instruction: str | None = None
    lane3_config: Lane3Config | None = None

    @property
    def agentic_config(self) -> AgenticConfig:
        if self.lane3_config and self.lane3_config.agentic_config:
            return self.lane3_config.agentic_config
        return AgenticConfig()

    @property
    def pin_portal_config(self) -> PinPortalConfig:
        if self.lane3_config and self.lane3_config.pin_portal_config:
            return self.lane3_config.pin_portal_config
        return PinPortalConfig()


class Guardrails(BaseModel):
    """Effective limits for one agentic browser run."""

    model_config = ConfigDict(frozen=True)

    max_steps: int
    max_time: int = Field(description="Seconds")
    allowed_domains: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


class TraceEntry(BaseModel):
    """One timestamped step in an extraction trace."""

    model_config = ConfigDict(frozen=True)

    step: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: Any = None


class PdfDocument(BaseModel):
    """A validated PDF payload."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    url: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class ExtractionResult(BaseModel):
    """Outcome of one lane invocation, or of the whole cascade."""

    model_config = ConfigDict(frozen=True)

    success: bool
    pdf_buffers: list[PdfDocument] = Field(default_factory=list)
    error: str | None = None
    trace: list[TraceEntry] = Field(default_factory=list)
    lane: LaneName | None = None
    escalation_url: str | None = Field(
        default=None,
        description="Interactive portal URL discovered by this lane for later lanes",
    )

    @property
    def has_documents(self) -> bool:
        return self.success and len(self.pdf_buffers) > 0

    @classmethod
    def failure(
        cls,
        error: str,
        trace: list[TraceEntry],
        *,
        lane: LaneName | None = None,
        escalation_url: str | None = None,
    ) -> ExtractionResult:
        return cls(
            success=False,
            error=error,
            trace=trace,
            lane=lane,
            escalation_url=escalation_url,
        )


class PinExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    pin: str = Field(pattern=r"^\d{4,8}$")
    confidence: float = Field(ge=0.0, le=1.0)
    method: PinMethod
    reason: str | None = None

    @property
    def masked(self) -> str:
        return self.pin[:2] + "****"


class DocumentClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: DocumentType
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str | None = None
