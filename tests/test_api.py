"""Tests for the HTTP surface: auth, rate limiting, error mapping and CORS."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient

from signalpress.api.server import GENERIC_ERROR, create_app
from signalpress.config import Settings
from signalpress.content.draft import parse_article
from signalpress.errors import ConfigurationError
from signalpress.llm.client import ClaudeClient
from signalpress.research.collector import ResourceCollector
from signalpress.security.rate_limit import RateLimiter
from signalpress.services import Services
from signalpress.storage.database import get_session
from signalpress.storage.models import Draft
from tests.conftest import JWT_SECRET, make_article, make_session, make_token

ORIGIN = "http://localhost:5173"


@pytest.fixture
def services(settings: Settings, mock_claude_client: ClaudeClient) -> Services:
    return Services(
        settings,
        claude_client=mock_claude_client,
        collector=ResourceCollector(settings, http_client=MagicMock()),
    )


@pytest.fixture
def client(settings: Settings, services: Services) -> TestClient:
    return TestClient(create_app(settings, services))


def auth(token: str | None = None) -> dict:
    return {"Authorization": f"Bearer {token or make_token()}"}


def test_create_app_requires_jwt_secret(settings: Settings) -> None:
    with pytest.raises(ConfigurationError):
        create_app(settings.model_copy(update={"jwt_secret": ""}))


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("headers", "message"),
    [
        ({}, "Missing or invalid Authorization header"),
        ({"Authorization": "Token abc"}, "Missing or invalid Authorization header"),
        ({"Authorization": "Bearer not-a-jwt"}, "Invalid token format"),
        (auth(make_token(expires_in=-60)), "Token expired"),
        (auth(make_token(role="anon")), "User authentication required"),
        (auth(make_token(role="service_role")), "User authentication required"),
    ],
)
def test_rejects_bad_credentials(client: TestClient, headers: dict, message: str) -> None:
    resp = client.post("/extract-insights", json={"session_id": "s1"}, headers=headers)
    assert resp.status_code == 401
    assert resp.json() == {"error": message}


def test_rejects_token_without_subject(client: TestClient) -> None:
    token = jwt.encode({"role": "authenticated", "exp": int(time.time()) + 60}, JWT_SECRET, algorithm="HS256")
    resp = client.post("/draft-status", json={"draft_id": "d", "status": "final"}, headers=auth(token))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token: missing user ID"}


def test_rejects_token_signed_with_other_secret(client: TestClient) -> None:
    token = jwt.encode(
        {"sub": "user-1", "role": "authenticated", "exp": int(time.time()) + 60}, "other", algorithm="HS256"
    )
    resp = client.post("/collect-file", json={"file_name": "a.txt", "content": "x"}, headers=auth(token))
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def test_collect_file(client: TestClient) -> None:
    resp = client.post(
        "/collect-file",
        json={"session_id": "s1", "file_name": "notes.txt", "content": "Agent revenue grew 40%."},
        headers=auth(),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["session_id"] == "s1"
    assert body["title"] == "notes.txt"
    assert body["content_length"] > len("Agent revenue grew 40%.")


def test_rate_limit_returns_429(client: TestClient, services: Services, settings: Settings) -> None:
    services.rate_limiter = RateLimiter(settings.db_url, limits={"collect-resource": 1})
    payload = {"file_name": "notes.txt", "content": "text"}

    assert client.post("/collect-file", json=payload, headers=auth()).status_code == 200
    resp = client.post("/collect-file", json=payload, headers=auth())

    assert resp.status_code == 429
    assert "1 calls per hour" in resp.json()["error"]


def test_invalid_body_does_not_consume_quota(client: TestClient, services: Services, settings: Settings) -> None:
    services.rate_limiter = RateLimiter(settings.db_url, limits={"collect-resource": 1})

    rejected = client.post("/collect-file", json={"file_name": "notes.txt"}, headers=auth())
    assert rejected.status_code == 400

    payload = {"file_name": "notes.txt", "content": "text"}
    assert client.post("/collect-file", json=payload, headers=auth()).status_code == 200
    assert client.post("/collect-file", json=payload, headers=auth()).status_code == 429


def test_pipeline_errors_are_generic(client: TestClient, settings: Settings) -> None:
    session_id = make_session(settings)
    resp = client.post("/extract-insights", json={"session_id": session_id}, headers=auth())
    assert resp.status_code == 400
    assert resp.json() == {"error": GENERIC_ERROR}


def test_invalid_body_is_generic(client: TestClient) -> None:
    resp = client.post("/search-news", json={"keywords": ["ai"], "max_results": 50}, headers=auth())
    assert resp.status_code == 400
    assert resp.json() == {"error": GENERIC_ERROR}


def test_analyze_seo_and_draft_status(client: TestClient, settings: Settings) -> None:
    session_id = make_session(settings, stage="final")
    with get_session(settings.db_url) as db:
        draft = Draft(
            session_id=session_id,
            title="AI Agents Reshape Enterprise Software Spending",
            content=parse_article(make_article(with_metadata=False), "").content,
            meta_description="Stored.",
        )
        db.add(draft)
        db.commit()
        draft_id = draft.id

    resp = client.post("/analyze-seo", json={"draft_id": draft_id, "keywords": ["AI agents"]}, headers=auth())
    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"overall_score", "metrics", "suggestions", "generated_meta"}
    assert body["generated_meta"] == {"description": "Stored.", "keywords": ["AI agents"]}

    resp = client.post("/draft-status", json={"draft_id": draft_id, "status": "published"}, headers=auth())
    assert resp.status_code == 200
    assert resp.json()["draft"]["status"] == "published"
    assert resp.json()["draft"]["seo_metrics"]["overall_score"] == body["overall_score"]


def test_draft_status_of_other_user_is_hidden(client: TestClient, settings: Settings) -> None:
    session_id = make_session(settings, stage="final", user_id="someone-else")
    with get_session(settings.db_url) as db:
        draft = Draft(session_id=session_id, content="Body")
        db.add(draft)
        db.commit()
        draft_id = draft.id

    resp = client.post("/draft-status", json={"draft_id": draft_id, "status": "final"}, headers=auth())
    assert resp.status_code == 400
    assert resp.json() == {"error": GENERIC_ERROR}


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def test_cors_preflight(client: TestClient) -> None:
    resp = client.options(
        "/extract-insights",
        headers={
            "Origin": ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == ORIGIN
    assert "POST" in resp.headers["access-control-allow-methods"]


def test_cors_rejects_unknown_origin(client: TestClient) -> None:
    resp = client.options(
        "/extract-insights",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 400
    assert "access-control-allow-origin" not in resp.headers
