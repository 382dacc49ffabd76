"""Link preview endpoint: metadata for a user-supplied product URL."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.errors import ErrorKind, PreviewError
from app.deps import DbSession
from app.schemas.link_preview import (
    LinkPreviewError,
    LinkPreviewFailure,
    LinkPreviewRequest,
    LinkPreviewSuccess,
)
from app.services.link_preview import link_preview_service

router = APIRouter()


def failure_response(kind: ErrorKind, message: str) -> JSONResponse:
    """Error envelope with the status mapped from the error kind."""
    body = LinkPreviewFailure(error=LinkPreviewError(code=kind, message=message))
    return JSONResponse(status_code=kind.http_status, content=body.model_dump(mode="json"))


@router.post(
    "",
    response_model=LinkPreviewSuccess,
    responses={
        400: {"model": LinkPreviewFailure},
        422: {"model": LinkPreviewFailure},
    },
)
async def create_link_preview(
    body: LinkPreviewRequest,
    db: DbSession,
):
    """Fetch (or serve from cache) title, description, images, price and favicon."""
    try:
        outcome = await link_preview_service.preview(db, body.url, force=body.force)
    except PreviewError as e:
        return failure_response(e.kind, e.message)
    return LinkPreviewSuccess.from_outcome(outcome)
