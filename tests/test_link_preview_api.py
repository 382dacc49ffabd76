"""Tests for the POST /api/v1/link-preview endpoint and the health check."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.errors import ErrorKind, PreviewError
from app.database import get_db
from app.main import app
from app.services.link_preview.extractor import PreviewData, PreviewPrice
from app.services.link_preview.service import PreviewOutcome

ENDPOINT = "/api/v1/link-preview"


# ── Helper ─────────────────────────────────────────────────────────


async def _fake_db():
    yield AsyncMock()


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = _fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _service(**kwargs) -> MagicMock:
    service = MagicMock()
    service.preview = AsyncMock(**kwargs)
    return service


def _outcome(cached: bool = False) -> PreviewOutcome:
    return PreviewOutcome(
        normalized_url="https://shop.example/item",
        domain="shop.example",
        cached=cached,
        data=PreviewData(
            title="Red Scarf",
            description="Hand-knitted wool",
            image="https://cdn.example/scarf.jpg",
            images=["https://cdn.example/scarf.jpg"],
            price=PreviewPrice(Decimal("19.99"), "USD"),
            favicon="https://shop.example/favicon.ico",
        ),
    )


# ── Success ────────────────────────────────────────────────────────


class TestLinkPreviewSuccess:
    def test_camel_case_envelope(self, client):
        service = _service(return_value=_outcome(cached=True))
        with patch("app.api.v1.link_preview.link_preview_service", service):
            resp = client.post(ENDPOINT, json={"url": "https://shop.example/item"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True
        assert body["normalizedUrl"] == "https://shop.example/item"
        assert body["domain"] == "shop.example"
        assert body["cached"] is True
        assert body["data"]["title"] == "Red Scarf"
        assert body["data"]["images"] == ["https://cdn.example/scarf.jpg"]
        assert body["data"]["price"] == {"amount": 19.99, "currency": "USD"}
        assert body["data"]["favicon"] == "https://shop.example/favicon.ico"

    def test_force_is_passed_through(self, client):
        service = _service(return_value=_outcome())
        with patch("app.api.v1.link_preview.link_preview_service", service):
            resp = client.post(ENDPOINT, json={"url": "https://shop.example/item", "force": True})

        assert resp.status_code == 200
        _, kwargs = service.preview.call_args
        assert kwargs["force"] is True

    def test_request_id_echoed(self, client):
        service = _service(return_value=_outcome())
        with patch("app.api.v1.link_preview.link_preview_service", service):
            resp = client.post(
                ENDPOINT,
                json={"url": "https://shop.example/item"},
                headers={"x-request-id": "req-123"},
            )

        assert resp.headers["x-request-id"] == "req-123"


# ── Error mapping ──────────────────────────────────────────────────


class TestLinkPreviewErrors:
    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (ErrorKind.INVALID_URL, 400),
            (ErrorKind.FETCH_BLOCKED, 422),
            (ErrorKind.TIMEOUT, 422),
            (ErrorKind.FETCH_ERROR, 422),
            (ErrorKind.NO_METADATA, 422),
        ],
    )
    def test_status_mapping(self, client, kind, status):
        service = _service(side_effect=PreviewError(kind, "nope"))
        with patch("app.api.v1.link_preview.link_preview_service", service):
            resp = client.post(ENDPOINT, json={"url": "https://shop.example/item"})

        assert resp.status_code == status
        assert resp.json() == {"ok": False, "error": {"code": kind.value, "message": "nope"}}

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"url": ""},
            {"url": 42},
            {"url": "https://shop.example/" + "a" * 2100},
            {"url": "https://shop.example/item", "force": "yes"},
        ],
    )
    def test_malformed_body_is_invalid_url(self, client, payload):
        service = _service(return_value=_outcome())
        with patch("app.api.v1.link_preview.link_preview_service", service):
            resp = client.post(ENDPOINT, json=payload)

        assert resp.status_code == 400
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "INVALID_URL"
        service.preview.assert_not_awaited()

    def test_non_json_body(self, client):
        resp = client.post(ENDPOINT, content=b"url=x", headers={"content-type": "text/plain"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_URL"


# ── Health ─────────────────────────────────────────────────────────


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
