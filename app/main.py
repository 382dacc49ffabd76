"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.api.v1.link_preview import failure_response
from app.api.v1.router import api_router
from app.config import get_settings
from app.core.errors import ErrorKind
from app.core.logging import get_logger, setup_logging
from app.core.middleware import ObservabilityMiddleware
from app.database import engine

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("app_started", app_name=settings.app_name)
    yield
    await engine.dispose()


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
app.add_middleware(ObservabilityMiddleware)
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same envelope as a rejected URL."""
    logger.info("request_invalid", path=request.url.path, error_count=len(exc.errors()))
    return failure_response(ErrorKind.INVALID_URL, "Invalid request")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
