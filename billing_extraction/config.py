"""Extraction service configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Nested configs are populated from their own env-var prefixes.
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class GuardrailSettings(BaseSettings):
    """Process-wide default guardrails for the agentic browser lane."""

    model_config = {"env_prefix": "AGENTIC_"}

    max_steps: int = Field(default=25, description="Maximum browser agent steps per task")
    max_time_seconds: int = Field(
        default=300,
        description="Maximum wall-clock seconds for one browser task",
    )
    allowed_domains: list[str] = Field(
        default_factory=list,
        description="Domains the agent may visit (empty means unrestricted)",
    )


class AISettings(BaseSettings):
    """Language model settings shared by PIN extraction, classification and goal generation."""

    model_config = {"env_prefix": "AI_"}

    api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI-compatible API key (AI paths are skipped when unset)",
    )
    model: str = Field(default="gpt-4o-mini", description="Chat model name")
    base_url: str | None = Field(
        default=None,
        description="Custom OpenAI-compatible endpoint (e.g. Azure deployment URL)",
    )
    max_context_chars: int = Field(
        default=4000,
        description="Maximum email characters sent to the model",
    )
    timeout_seconds: float = Field(default=30.0, description="Per-call model timeout")

    @property
    def enabled(self) -> bool:
        return self.api_key is not None and bool(self.api_key.get_secret_value())


class HttpSettings(BaseSettings):
    """Outbound HTTP settings for direct-link and PIN-portal downloads."""

    model_config = {"env_prefix": "HTTP_"}

    user_agent: str = Field(
        default="BillingExtraction/1.0",
        description="User-Agent header identifying the downloader",
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    transport_retries: int = Field(
        default=1,
        description="Connection-level retries performed by the httpx transport",
    )
    max_redirects: int = Field(default=5, description="Maximum redirects followed per request")


class BrowserUseSettings(BaseSettings):
    """Browser Use Cloud API settings for the agentic browser driver."""

    model_config = {"env_prefix": "BROWSER_USE_"}

    api_key: SecretStr | None = Field(
        default=None,
        description="Browser Use API key (must start with 'bu_')",
    )
    base_url: str = Field(
        default="https://api.browser-use.com/api/v2",
        description="Browser Use Cloud API base URL",
    )
    llm: str = Field(default="browser-use-llm", description="LLM used by the browser agent")
    poll_interval_seconds: float = Field(
        default=5.0,
        description="Seconds between task status polls",
    )


class RetrySettings(BaseSettings):
    """Retry / backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum attempts per control call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=10.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class LaneTimeouts(BaseSettings):
    """Per-lane and per-job deadlines enforced by the orchestrator."""

    model_config = {"env_prefix": "LANE_"}

    attachments_seconds: float = Field(default=60.0, description="Lane 1 deadline")
    direct_link_seconds: float = Field(default=90.0, description="Lane 2 deadline")
    pin_portal_seconds: float = Field(default=90.0, description="Lane 3 deadline")
    agentic_grace_seconds: float = Field(
        default=30.0,
        description="Extra seconds granted to Lane 3B on top of its guardrail max_time",
    )
    job_seconds: float = Field(default=900.0, description="Total budget for one extraction job")


class AppConfig(BaseSettings):
    """Top-level extraction service configuration."""

    model_config = {"env_prefix": "APP_"}

    host: str = Field(default="0.0.0.0", description="API bind address")
    port: int = Field(default=8080, description="API port")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")
    job_history_size: int = Field(
        default=1000,
        ge=1,
        description="Jobs kept by the in-memory tracker for the inspection endpoint",
    )

    guardrails: GuardrailSettings = Field(default_factory=GuardrailSettings)
    ai: AISettings = Field(default_factory=AISettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    browser_use: BrowserUseSettings = Field(default_factory=BrowserUseSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    timeouts: LaneTimeouts = Field(default_factory=LaneTimeouts)
