"""Guardrail checks that run before any autonomous browsing step."""

from __future__ import annotations

from urllib.parse import urlsplit

from .config import GuardrailSettings
from .exceptions import GuardrailViolation
from .models import ExtractionRule, Guardrails


def default_guardrails(settings: GuardrailSettings) -> Guardrails:
    return Guardrails(
        max_steps=settings.max_steps,
        max_time=settings.max_time_seconds,
        allowed_domains=list(settings.allowed_domains),
    )


def resolve_guardrails(rule: ExtractionRule, defaults: Guardrails) -> Guardrails:
    """Merge the rule's agentic config over process defaults.

    Missing or zero numeric limits fall back to the defaults.  A domain
    list present on the rule replaces the default list, even when empty.
    """
    agentic = rule.agentic_config
    return Guardrails(
        max_steps=agentic.max_steps or defaults.max_steps,
        max_time=agentic.max_time or defaults.max_time,
        allowed_domains=(
            list(agentic.allowed_domains)
            if agentic.allowed_domains is not None
            else list(defaults.allowed_domains)
        ),
    )


def is_url_allowed(url: str, guardrails: Guardrails) -> bool:
    """Return True if *url*'s host is in the allowlist (or no allowlist is set).

    The host must equal an allowed domain or be a subdomain of one;
    comparison is case-insensitive.  Unparsable URLs are rejected.
    """
    if not guardrails.allowed_domains:
        return True

    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return False
    if not hostname:
        return False

    hostname = hostname.lower().rstrip(".")
    for domain in guardrails.allowed_domains:
        domain = domain.strip().lower().lstrip(".").rstrip(".")
        if not domain:
            continue
        if hostname == domain or hostname.endswith(f".{domain}"):
            return True
    return False


def check_url(url: str, guardrails: Guardrails) -> None:
    """Raise :class:`GuardrailViolation` if *url* is not allowed."""
    if not is_url_allowed(url, guardrails):
        raise GuardrailViolation(f"URL {url} is not in allowed domains list")
