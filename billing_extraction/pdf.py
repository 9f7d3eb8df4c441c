"""PDF payload validation: base64 decoding and signature checks."""

from __future__ import annotations

import base64
import binascii

from .exceptions import PdfValidationError

PDF_SIGNATURE = b"%PDF"
PDF_CONTENT_TYPE = "application/pdf"


def looks_like_pdf(name: str, content_type: str | None) -> bool:
    """Cheap pre-filter: content type or file extension claims PDF."""
    if content_type and content_type.split(";", 1)[0].strip().lower() == PDF_CONTENT_TYPE:
        return True
    return name.lower().endswith(".pdf")


def has_pdf_signature(content: bytes) -> bool:
    return content[:4] == PDF_SIGNATURE


def validate_pdf(content: bytes) -> bytes:
    """Return *content* unchanged if it is a non-empty ``%PDF`` buffer."""
    if not content:
        raise PdfValidationError("content is empty")
    if not has_pdf_signature(content):
        raise PdfValidationError(f"not a valid PDF, leading bytes {content[:4]!r}")
    return content


def decode_base64(encoded: str) -> bytes:
    """Strictly decode a base64 attachment body.

    Line breaks are tolerated (MIME wraps at 76 columns); any other
    non-alphabet character is an error.
    """
    if not encoded or not encoded.strip():
        raise PdfValidationError("attachment has no content")
    compact = "".join(encoded.split())
    try:
        decoded = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PdfValidationError(f"invalid base64 content: {exc}") from exc
    if not decoded:
        raise PdfValidationError("attachment decoded to zero bytes")
    return decoded
