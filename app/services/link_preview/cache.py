"""Preview cache over the link_previews table.

Both successful and failed outcomes are stored. Expiry is evaluated lazily
at read time; an expired row is treated as absent and overwritten by the
next fetch. Rows with ``status != "ok"`` are never returned as data.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorKind, PreviewError
from app.models.link_preview import LinkPreview
from app.services.link_preview.config import DEFAULT_CONFIG, PreviewConfig
from app.services.link_preview.extractor import PreviewData, PreviewPrice
from app.services.link_preview.url import extract_domain, favicon_fallback_url

_FAILURE_MESSAGES = {
    ErrorKind.FETCH_BLOCKED: "URL points to a blocked address",
    ErrorKind.TIMEOUT: "Request timeout",
    ErrorKind.FETCH_ERROR: "Could not fetch URL",
    ErrorKind.NO_METADATA: "No metadata found on page",
}


class CacheStatus(StrEnum):
    OK = "ok"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PreviewCache:
    """Read/upsert access to cached previews keyed by normalized URL."""

    def __init__(
        self,
        config: PreviewConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._clock = clock

    def ttl_for(self, data: PreviewData) -> timedelta:
        """Prices go stale faster than titles and images."""
        return self._config.price_ttl if data.price else self._config.default_ttl

    # ── Storage primitives ───────────────────────────────────────

    async def _load(self, db: AsyncSession, normalized_url: str) -> LinkPreview | None:
        result = await db.execute(
            select(LinkPreview).where(LinkPreview.normalized_url == normalized_url)
        )
        return result.scalar_one_or_none()

    async def _upsert(self, db: AsyncSession, values: dict[str, Any]) -> None:
        """Atomic insert-or-replace of the full row on normalized_url."""
        stmt = pg_insert(LinkPreview).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LinkPreview.normalized_url],
            set_={key: value for key, value in values.items() if key != "normalized_url"},
        )
        await db.execute(stmt)

    async def _load_fresh(self, db: AsyncSession, normalized_url: str) -> LinkPreview | None:
        row = await self._load(db, normalized_url)
        if row is None or row.expires_at <= self._clock():
            return None
        return row

    # ── Public API ───────────────────────────────────────────────

    async def lookup(
        self,
        db: AsyncSession,
        normalized_url: str,
    ) -> PreviewData | PreviewError | None:
        """One read for both outcomes: the cached preview, the cached failure, or None."""
        row = await self._load_fresh(db, normalized_url)
        if row is None:
            return None
        if row.status == CacheStatus.OK:
            return self._to_data(row, normalized_url)
        return self._to_failure(row)

    async def get(self, db: AsyncSession, normalized_url: str) -> PreviewData | None:
        """Cached preview, or None on miss, expiry, or a cached failure."""
        cached = await self.lookup(db, normalized_url)
        return cached if isinstance(cached, PreviewData) else None

    async def get_failure(self, db: AsyncSession, normalized_url: str) -> PreviewError | None:
        """The cached failure for an unexpired error row, if any."""
        cached = await self.lookup(db, normalized_url)
        return cached if isinstance(cached, PreviewError) else None

    def _to_data(self, row: LinkPreview, normalized_url: str) -> PreviewData:
        price = None
        if row.price_amount is not None and row.price_currency:
            price = PreviewPrice(amount=row.price_amount, currency=row.price_currency)

        return PreviewData(
            title=row.title,
            description=row.description,
            image=row.image,
            images=list(row.images or []),
            price=price,
            favicon=row.favicon
            or favicon_fallback_url(extract_domain(normalized_url), self._config),
        )

    @staticmethod
    def _to_failure(row: LinkPreview) -> PreviewError:
        try:
            kind = ErrorKind(row.error_code)
        except ValueError:
            kind = ErrorKind.FETCH_ERROR
        message = row.error_message or _FAILURE_MESSAGES.get(kind, "Could not fetch URL")
        return PreviewError(kind, message, http_status=row.http_status)

    async def put(
        self,
        db: AsyncSession,
        normalized_url: str,
        data: PreviewData,
        status: CacheStatus,
        http_status: int | None = None,
        error_code: ErrorKind | None = None,
        error_message: str | None = None,
    ) -> datetime:
        """Upsert the outcome of a fetch attempt. Returns the row's expires_at."""
        now = self._clock()
        expires_at = now + self.ttl_for(data)
        await self._upsert(
            db,
            {
                "normalized_url": normalized_url,
                "title": data.title,
                "description": data.description,
                "image": data.image,
                "images": list(data.images),
                "price_amount": data.price.amount if data.price else None,
                "price_currency": data.price.currency if data.price else None,
                "favicon": data.favicon,
                "status": str(status),
                "http_status": http_status,
                "error_code": str(error_code) if error_code else None,
                "error_message": error_message,
                "fetched_at": now,
                "expires_at": expires_at,
            },
        )
        return expires_at
