"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import link_preview

api_router = APIRouter()

api_router.include_router(link_preview.router, prefix="/link-preview", tags=["link-preview"])
