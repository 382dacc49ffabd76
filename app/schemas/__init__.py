"""Pydantic schemas for API request/response validation."""

from app.schemas.link_preview import (
    LinkPreviewData,
    LinkPreviewError,
    LinkPreviewFailure,
    LinkPreviewPrice,
    LinkPreviewRequest,
    LinkPreviewSuccess,
)

__all__ = [
    "LinkPreviewData",
    "LinkPreviewError",
    "LinkPreviewFailure",
    "LinkPreviewPrice",
    "LinkPreviewRequest",
    "LinkPreviewSuccess",
]
