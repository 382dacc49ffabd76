"""Link preview schemas: request body and ok/error response envelopes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel

from app.core.errors import ErrorKind
from app.services.link_preview.service import PreviewOutcome


class LinkPreviewRequest(BaseModel):
    """Body of POST /link-preview."""

    url: str = Field(..., min_length=1, max_length=2048)
    force: StrictBool = False


class LinkPreviewPrice(BaseModel):
    amount: float
    currency: str


class LinkPreviewData(BaseModel):
    title: str | None = None
    description: str | None = None
    image: str | None = None
    images: list[str] = Field(default_factory=list)
    price: LinkPreviewPrice | None = None
    favicon: str | None = None


class LinkPreviewSuccess(BaseModel):
    """Success envelope; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: Literal[True] = True
    normalized_url: str
    domain: str
    cached: bool
    data: LinkPreviewData

    @classmethod
    def from_outcome(cls, outcome: PreviewOutcome) -> LinkPreviewSuccess:
        data = outcome.data
        price = None
        if data.price is not None:
            price = LinkPreviewPrice(amount=float(data.price.amount), currency=data.price.currency)
        return cls(
            normalized_url=outcome.normalized_url,
            domain=outcome.domain,
            cached=outcome.cached,
            data=LinkPreviewData(
                title=data.title,
                description=data.description,
                image=data.image,
                images=list(data.images),
                price=price,
                favicon=data.favicon,
            ),
        )


class LinkPreviewError(BaseModel):
    code: ErrorKind
    message: str


class LinkPreviewFailure(BaseModel):
    """Error envelope returned with 400 (INVALID_URL) or 422."""

    ok: Literal[False] = False
    error: LinkPreviewError
