"""Bounded HTML fetcher: manual redirects, per-hop SSRF checks, size cap.

Every hop is re-resolved and re-checked before it is dialled, so a redirect
chain cannot borrow the trust established by validating the first URL.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx

from app.core.errors import ErrorKind, PreviewError
from app.core.logging import get_logger
from app.services.link_preview.config import DEFAULT_CONFIG, PreviewConfig
from app.services.link_preview.dns import SafeResolver
from app.services.link_preview.ssrf import validate_url_syntax

logger = get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

ClientFactory = Callable[[], httpx.AsyncClient]


@dataclass(frozen=True)
class FetchResult:
    """HTML of the hop that answered 2xx, and that hop's URL."""

    html: str
    final_url: str
    status_code: int = 200


class BoundedFetcher:
    """GETs a page with a timeout, manual redirect handling and a byte cap."""

    def __init__(
        self,
        config: PreviewConfig = DEFAULT_CONFIG,
        resolver: SafeResolver | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver or SafeResolver()
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            timeout=self._config.fetch_timeout_seconds,
        )

    async def fetch(self, url: str) -> FetchResult:
        """Fetch ``url``, following at most ``max_redirects`` redirects.

        Raises:
            PreviewError: FETCH_BLOCKED (private target, redirect chain too
                long), TIMEOUT, or FETCH_ERROR (non-2xx, oversized body,
                missing Location, transport failure).
        """
        current_url = url
        redirects = 0

        async with self._client_factory() as client:
            while True:
                if redirects > self._config.max_redirects:
                    raise PreviewError(ErrorKind.FETCH_BLOCKED, "Too many redirects")

                try:
                    result = await asyncio.wait_for(
                        self._fetch_hop(client, current_url),
                        timeout=self._config.fetch_timeout_seconds,
                    )
                except (TimeoutError, httpx.TimeoutException) as exc:
                    logger.info("link_preview_fetch_timeout", url=current_url, hop=redirects)
                    raise PreviewError(ErrorKind.TIMEOUT, "Request timeout") from exc
                except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
                    logger.info(
                        "link_preview_transport_error",
                        url=current_url,
                        hop=redirects,
                        error=str(exc),
                    )
                    raise PreviewError(ErrorKind.FETCH_ERROR, "Could not fetch URL") from exc

                if isinstance(result, FetchResult):
                    return result

                logger.debug("link_preview_redirect", source=current_url, target=result, hop=redirects + 1)
                current_url = result
                redirects += 1

    async def _fetch_hop(self, client: httpx.AsyncClient, url: str) -> FetchResult | str:
        """One request. Returns the fetched page, or the next hop's absolute URL."""
        await self._resolver.resolve(urlsplit(url).hostname or "")

        async with client.stream(
            "GET",
            url,
            headers=self._config.request_headers,
            follow_redirects=False,
        ) as response:
            status = response.status_code

            if status in REDIRECT_STATUSES:
                location = response.headers.get("location")
                if not location:
                    raise PreviewError(
                        ErrorKind.FETCH_ERROR,
                        "Redirect without location",
                        http_status=status,
                    )
                target = urljoin(url, location)
                try:
                    validate_url_syntax(target, self._config)
                except PreviewError as exc:
                    logger.warning("link_preview_redirect_blocked", source=url, target=target)
                    raise PreviewError(ErrorKind.FETCH_BLOCKED, exc.message) from exc
                return target

            if not response.is_success:
                raise PreviewError(ErrorKind.FETCH_ERROR, f"HTTP {status}", http_status=status)

            cap = self._config.max_response_bytes
            declared = response.headers.get("content-length", "").strip()
            if declared.isdigit() and int(declared) > cap:
                raise PreviewError(ErrorKind.FETCH_ERROR, "Response too large", http_status=status)

            # Servers may omit or lie about Content-Length; count what actually arrives
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > cap:
                    raise PreviewError(ErrorKind.FETCH_ERROR, "Response too large", http_status=status)

        return FetchResult(
            html=body.decode("utf-8", errors="replace"),
            final_url=url,
            status_code=status,
        )
