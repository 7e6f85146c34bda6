"""
Tests for the rendering service endpoints (browser mocked out).
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

import render_service
from crawler.browser_crawler import RenderResult, clamp_timeout


@pytest.fixture
def render_mock(monkeypatch):
    mock = AsyncMock(return_value=RenderResult(
        status=200, final_url="https://acme.com/jobs/1", html="<h1>Engineer</h1>", ms=321, wait="domcontentloaded"
    ))
    monkeypatch.setattr(render_service.renderer, "render", mock)
    return mock


@pytest.fixture
def client():
    return TestClient(render_service.app)


class TestRenderService:
    """Render endpoint contract with the browser mocked."""

    def test_health(self, client):
        """The root route answers plain "ok"."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "ok"

    def test_render(self, client, render_mock, monkeypatch):
        """A render returns the result JSON with a clamped timeout."""
        monkeypatch.delenv("RENDERER_KEY", raising=False)
        response = client.get("/render", params={"url": "https://acme.com/jobs/1", "timeout": 60000})

        assert response.status_code == 200
        assert response.json() == {
            "status": 200,
            "finalUrl": "https://acme.com/jobs/1",
            "html": "<h1>Engineer</h1>",
            "ms": 321,
            "wait": "domcontentloaded",
        }
        render_mock.assert_awaited_once_with("https://acme.com/jobs/1", wait="domcontentloaded", timeout=20000)

    def test_bad_key(self, client, render_mock, monkeypatch):
        """A wrong key is rejected before rendering."""
        monkeypatch.setenv("RENDERER_KEY", "s3cret")
        response = client.get("/render", params={"url": "https://acme.com"}, headers={"x-renderer-key": "wrong"})

        assert response.status_code == 401
        assert response.json() == {"error": "bad key"}
        render_mock.assert_not_awaited()

    def test_good_key(self, client, render_mock, monkeypatch):
        """The matching key is accepted."""
        monkeypatch.setenv("RENDERER_KEY", "s3cret")
        response = client.get("/render", params={"url": "https://acme.com"}, headers={"x-renderer-key": "s3cret"})
        assert response.status_code == 200

    def test_missing_url(self, client, render_mock, monkeypatch):
        """A missing url answers 400."""
        monkeypatch.delenv("RENDERER_KEY", raising=False)
        response = client.get("/render")
        assert response.status_code == 400
        assert response.json() == {"error": "missing url"}

    def test_render_failure(self, client, render_mock, monkeypatch):
        """Browser errors answer 500 with the message."""
        monkeypatch.delenv("RENDERER_KEY", raising=False)
        render_mock.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        response = client.get("/render", params={"url": "https://nope.invalid"})

        assert response.status_code == 500
        assert "ERR_NAME_NOT_RESOLVED" in response.json()["error"]


def test_clamp_timeout():
    """Timeouts are clamped to 1..20000 ms."""
    assert clamp_timeout(60000) == 20000
    assert clamp_timeout(0) == 1
    assert clamp_timeout(5000) == 5000
