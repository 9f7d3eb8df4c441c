"""Link discovery in email bodies and interaction detection in portal pages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .models import InboundEmail

_BARE_PDF_URL = re.compile(r"https?://[^\s<>\"']+\.pdf\b[^\s<>\"']*", re.IGNORECASE)
_BARE_URL = re.compile(r"https?://[^\s<>\"')\]]+", re.IGNORECASE)
_DOWNLOAD_PHRASE = re.compile(
    r"(?:download|view|get|access)[\s:]+(?:pdf|document|statement|invoice|bill)[\s:]*"
    r"(https?://[^\s<>\"']+)",
    re.IGNORECASE,
)
_PIN_HINTS = re.compile(
    r"\bpin\b|\d[\s-]?digit|access[\s-]?code|enter[\s-]?code|security[\s-]?code",
    re.IGNORECASE,
)
_LOGIN_HINTS = ("login", "log in", "sign in", "username", "password")
_ACTION_WORDS = re.compile(r"download|view|print|open|access", re.IGNORECASE)


@dataclass(frozen=True)
class EmailLink:
    url: str
    label: str | None = None


@dataclass(frozen=True)
class InteractionDetection:
    requires_interaction: bool
    interaction_type: str | None
    confidence: float


def is_pdf_link(url: str) -> bool:
    """Heuristic: does *url* probably serve a PDF without interaction?"""
    if not url.lower().startswith(("http://", "https://")):
        return False
    lower = url.lower()
    parts = urlsplit(lower)
    if parts.path.endswith(".pdf"):
        return True
    if any(seg in parts.path for seg in ("/pdf/", "/document/", "/download/")):
        return True
    if "type=pdf" in parts.query or "format=pdf" in parts.query:
        return True
    # Tracking/redirect links often carry the filename in the query string
    return ".pdf" in lower


def _clean(url: str) -> str:
    return url.strip().rstrip(".,;")


def _add(links: dict[str, EmailLink], url: str, label: str | None = None) -> None:
    url = _clean(url)
    if url and url not in links:
        links[url] = EmailLink(url=url, label=label or None)


def _anchors(html: str) -> list[tuple[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    anchors: list[tuple[str, str]] = []
    for tag in soup.find_all("a", href=True):
        href = str(tag["href"]).strip()
        if href.lower().startswith(("http://", "https://")):
            anchors.append((href, tag.get_text(" ", strip=True)))
    return anchors


def extract_pdf_links(email: InboundEmail) -> list[EmailLink]:
    """Collect likely direct-download PDF links, HTML body first, deduplicated."""
    links: dict[str, EmailLink] = {}

    if email.html_body.strip():
        for href, text in _anchors(email.html_body):
            if is_pdf_link(href):
                _add(links, href, text)
            elif text and ".pdf" in text.lower():
                # Tracking link whose anchor text names the PDF
                _add(links, href, text)
        for match in _BARE_PDF_URL.finditer(email.html_body):
            _add(links, match.group(0))

    if email.text_body.strip():
        for match in _BARE_PDF_URL.finditer(email.text_body):
            _add(links, match.group(0))
        for match in _DOWNLOAD_PHRASE.finditer(email.text_body):
            if is_pdf_link(match.group(1)):
                _add(links, match.group(1))

    return list(links.values())


def extract_all_links(email: InboundEmail) -> list[EmailLink]:
    """Collect every http(s) link in the email, HTML body first, deduplicated."""
    links: dict[str, EmailLink] = {}
    if email.html_body.strip():
        for href, text in _anchors(email.html_body):
            _add(links, href, text)
    if email.text_body.strip():
        for match in _BARE_URL.finditer(email.text_body):
            _add(links, match.group(0))
    return list(links.values())


def detect_interaction(html: str) -> InteractionDetection:
    """Decide whether a portal page needs input (PIN, login, button) before the PDF."""
    if not html or not html.strip():
        return InteractionDetection(False, None, 1.0)

    soup = BeautifulSoup(html, "html.parser")
    page_text = soup.get_text(" ", strip=True).lower()

    text_inputs = [
        tag
        for tag in soup.find_all("input")
        if str(tag.get("type", "text")).lower() in ("text", "password", "number", "tel")
    ]
    has_pin_input = bool(text_inputs) and bool(_PIN_HINTS.search(html))

    has_form = soup.find("form") is not None
    has_login_form = has_form and any(hint in page_text for hint in _LOGIN_HINTS)

    has_submit = bool(
        soup.find("button", attrs={"type": "submit"})
        or soup.find("input", attrs={"type": "submit"})
    )
    has_action_buttons = any(
        _ACTION_WORDS.search(tag.get_text(" ", strip=True))
        for tag in soup.find_all(["button", "a"])
    )

    if has_pin_input:
        return InteractionDetection(True, "pin", 0.9)
    if has_login_form:
        return InteractionDetection(True, "login", 0.8)
    if has_submit and has_action_buttons:
        return InteractionDetection(True, "button", 0.7)
    if has_submit or has_action_buttons:
        return InteractionDetection(False, "button", 0.7)
    if has_form:
        return InteractionDetection(False, "form", 0.6)
    return InteractionDetection(False, None, 0.5)
