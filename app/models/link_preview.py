"""Link preview cache model: one row per normalized URL, with TTL."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class LinkPreview(Base):
    """Cached outcome (ok or error) of the last fetch of a normalized URL.

    Rows are upserted after every fetch attempt and never deleted; an
    expired row is treated as absent at read time.
    """

    __tablename__ = "link_previews"
    __table_args__ = (
        UniqueConstraint("normalized_url", name="uq_link_previews_normalized_url"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    normalized_url: Mapped[str] = mapped_column(Text, nullable=False)

    title: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    image: Mapped[str | None] = mapped_column(Text)
    images: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    price_amount: Mapped[Decimal | None] = mapped_column(Numeric)
    price_currency: Mapped[str | None] = mapped_column(String(8))
    favicon: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(16), nullable=False)  # ok | error
    http_status: Mapped[int | None] = mapped_column(Integer)
    error_code: Mapped[str | None] = mapped_column(String(32))
    error_message: Mapped[str | None] = mapped_column(Text)

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
