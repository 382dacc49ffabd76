"""SQLAlchemy models package."""

from app.models.link_preview import LinkPreview

__all__ = [
    "LinkPreview",
]
