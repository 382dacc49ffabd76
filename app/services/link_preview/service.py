"""Link preview orchestrator: validate, consult cache, fetch, extract, cache.

    validating → cache_check → (hit: done)
                             | (miss: resolving → fetching → extracting → caching → done)

Every step can end in ``PreviewError``; every failure after validation is
recorded in the cache so a persistently failing URL degrades to cheap
cache hits until its row expires.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorKind, PreviewError
from app.core.logging import get_logger
from app.services.link_preview.cache import CacheStatus, PreviewCache
from app.services.link_preview.config import PreviewConfig
from app.services.link_preview.extractor import PreviewData, extract_metadata
from app.services.link_preview.fetcher import BoundedFetcher
from app.services.link_preview.ssrf import validate_url_syntax
from app.services.link_preview.url import extract_domain, normalize_url

logger = get_logger(__name__)


@dataclass
class PreviewOutcome:
    """A successful preview, fresh or from cache."""

    normalized_url: str
    domain: str
    cached: bool
    data: PreviewData


class LinkPreviewService:
    """Coordinates the SSRF guard, cache, fetcher and extractor for one request."""

    def __init__(
        self,
        config: PreviewConfig | None = None,
        fetcher: BoundedFetcher | None = None,
        cache: PreviewCache | None = None,
    ) -> None:
        self._config = config or PreviewConfig.from_settings()
        self._fetcher = fetcher or BoundedFetcher(self._config)
        self._cache = cache or PreviewCache(self._config)

    async def preview(
        self,
        db: AsyncSession,
        url: str,
        *,
        force: bool = False,
    ) -> PreviewOutcome:
        """Preview ``url``.

        Args:
            db: Session for cache reads/writes.
            url: Raw user-supplied URL.
            force: Skip the cache lookup and re-fetch; the result overwrites
                the cached row.

        Raises:
            PreviewError: INVALID_URL before any network access, otherwise
                FETCH_BLOCKED / TIMEOUT / FETCH_ERROR / NO_METADATA.
        """
        if not url or not url.strip():
            raise PreviewError(ErrorKind.INVALID_URL, "Invalid request")

        # Nothing has touched the network yet, so any refusal is an input error
        try:
            validate_url_syntax(url, self._config)
        except PreviewError as e:
            raise PreviewError(ErrorKind.INVALID_URL, e.message) from e

        try:
            normalized_url = normalize_url(url, self._config)
        except PreviewError as e:
            raise PreviewError(ErrorKind.INVALID_URL, "Could not normalize URL") from e

        domain = extract_domain(normalized_url)

        if not force:
            cached = await self._lookup(db, normalized_url)
            if isinstance(cached, PreviewError):
                logger.info(
                    "link_preview_cached_failure",
                    url=normalized_url,
                    code=cached.kind.value,
                )
                raise cached
            if cached is not None:
                logger.info("link_preview_cache_hit", url=normalized_url)
                return PreviewOutcome(normalized_url, domain, cached=True, data=cached)

        try:
            fetched = await self._fetcher.fetch(normalized_url)
        except PreviewError as e:
            await self._record_failure(db, normalized_url, e)
            raise
        except Exception as e:
            logger.exception("link_preview_fetch_crashed", url=normalized_url)
            error = PreviewError(ErrorKind.FETCH_ERROR, "Could not fetch URL")
            await self._record_failure(db, normalized_url, error)
            raise error from e

        # Extraction is CPU-bound; keep it off the event loop
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(
            None,
            extract_metadata,
            fetched.html,
            fetched.final_url,
            self._config,
        )

        if not data.has_content:
            error = PreviewError(
                ErrorKind.NO_METADATA,
                "No metadata found on page",
                http_status=fetched.status_code,
            )
            await self._record_failure(db, normalized_url, error)
            raise error

        await self._save(
            db,
            normalized_url,
            data,
            CacheStatus.OK,
            http_status=fetched.status_code,
        )

        logger.info(
            "link_preview_completed",
            url=normalized_url,
            final_url=fetched.final_url,
            has_price=data.price is not None,
            image_count=len(data.images),
        )

        return PreviewOutcome(normalized_url, domain, cached=False, data=data)

    async def _lookup(
        self,
        db: AsyncSession,
        normalized_url: str,
    ) -> PreviewData | PreviewError | None:
        # An unreadable cache is treated as a miss
        try:
            return await self._cache.lookup(db, normalized_url)
        except SQLAlchemyError as e:
            logger.warning("link_preview_cache_read_failed", url=normalized_url, error=str(e))
            await db.rollback()
            return None

    async def _record_failure(
        self,
        db: AsyncSession,
        normalized_url: str,
        error: PreviewError,
    ) -> None:
        logger.warning(
            "link_preview_fetch_failed",
            url=normalized_url,
            code=error.kind.value,
            reason=error.message,
            http_status=error.http_status,
        )
        await self._save(
            db,
            normalized_url,
            PreviewData(),
            CacheStatus.ERROR,
            http_status=error.http_status,
            error_code=error.kind,
            error_message=error.message,
        )

    async def _save(
        self,
        db: AsyncSession,
        normalized_url: str,
        data: PreviewData,
        status: CacheStatus,
        http_status: int | None = None,
        error_code: ErrorKind | None = None,
        error_message: str | None = None,
    ) -> None:
        # A cache write failure must not mask the fetch outcome
        try:
            await self._cache.put(
                db,
                normalized_url,
                data,
                status,
                http_status=http_status,
                error_code=error_code,
                error_message=error_message,
            )
        except SQLAlchemyError as e:
            logger.warning("link_preview_cache_save_failed", url=normalized_url, error=str(e))
            await db.rollback()


link_preview_service = LinkPreviewService()
