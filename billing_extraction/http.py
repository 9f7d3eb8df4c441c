"""Shared async HTTP transport for portal and direct-link downloads."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from .config import HttpSettings
from .exceptions import DownloadError

logger = structlog.get_logger()

PDF_ACCEPT = "application/pdf,application/octet-stream,*/*"


def create_http_client(settings: HttpSettings) -> httpx.AsyncClient:
    """Build the process-wide client.

    Retries happen only at the transport layer (connection failures);
    HTTP-level errors are never retried.
    """
    return httpx.AsyncClient(
        transport=httpx.AsyncHTTPTransport(retries=settings.transport_retries),
        timeout=httpx.Timeout(settings.timeout_seconds),
        follow_redirects=True,
        max_redirects=settings.max_redirects,
        headers={"User-Agent": settings.user_agent, "Accept": PDF_ACCEPT},
    )


def content_type_of(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";", 1)[0].strip().lower()


def is_html(response: httpx.Response) -> bool:
    return content_type_of(response) in ("text/html", "application/xhtml+xml")


async def fetch(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
    display_url: str | None = None,
) -> httpx.Response:
    """Perform one request and return the response.

    Raises :class:`DownloadError` on transport errors and non-2xx status.
    *display_url* stands in for *url* in logs and errors when the request
    URL carries a secret.
    """
    shown = display_url or url
    try:
        response = await client.request(method, url, params=params, data=data)
    except httpx.HTTPError as exc:
        raise DownloadError(f"request failed: {exc}", url=shown) from exc

    if not response.is_success:
        raise DownloadError(
            f"HTTP {response.status_code}: {response.reason_phrase}",
            url=shown,
            status_code=response.status_code,
        )

    logger.debug(
        "http_fetched",
        url=shown,
        status_code=response.status_code,
        content_type=content_type_of(response),
        size=len(response.content),
    )
    return response
