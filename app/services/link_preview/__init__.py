"""Outbound link-preview fetcher with SSRF protection and a TTL cache."""

from app.services.link_preview.service import (
    LinkPreviewService,
    PreviewOutcome,
    link_preview_service,
)

__all__ = ["LinkPreviewService", "PreviewOutcome", "link_preview_service"]
