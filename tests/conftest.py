"""Shared test fixtures."""

from __future__ import annotations

import json
import time
from pathlib import Path
from unittest.mock import MagicMock

import jwt
import pytest

from signalpress.config import Settings
from signalpress.llm.client import ClaudeClient
from signalpress.storage.database import dispose_engines

JWT_SECRET = "test-secret-not-real"


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def settings(tmp_data_dir: Path):
    """Create test settings with a throwaway SQLite database."""
    yield Settings(
        anthropic_api_key="test-key-not-real",
        jwt_secret=JWT_SECRET,
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        temperature=0.7,
        db_path=tmp_data_dir / "test.db",
    )
    dispose_engines()


@pytest.fixture
def mock_claude_client(settings: Settings) -> ClaudeClient:
    """Create a ClaudeClient with a mocked Anthropic SDK."""
    client = ClaudeClient(settings)
    # Replace the internal Anthropic client with a mock
    mock_anthropic = MagicMock()
    client._client = mock_anthropic
    return client


def make_mock_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
    """Helper to create a mock Anthropic API response."""
    mock_response = MagicMock()
    mock_response.content = [MagicMock(type="text", text=text)]
    mock_response.usage.input_tokens = input_tokens
    mock_response.usage.output_tokens = output_tokens
    return mock_response


def make_token(sub: str = "user-1", role: str = "authenticated", expires_in: int = 3600) -> str:
    """Helper to create a signed user JWT."""
    payload = {"sub": sub, "role": role, "exp": int(time.time()) + expires_in}
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def json_reply(payload: dict) -> str:
    """Provider text that wraps a JSON payload in a fenced block with chatter."""
    return f"Here is the result.\n\n```json\n{json.dumps(payload)}\n```\n"


def make_session(settings: Settings, stage: str = "input", user_id: str = "user-1") -> str:
    """Insert a workflow session at the given stage and return its id."""
    from signalpress.storage.database import get_session
    from signalpress.storage.models import WorkflowSession

    with get_session(settings.db_url) as db:
        wf = WorkflowSession(user_id=user_id, stage=stage)
        db.add(wf)
        db.commit()
        return wf.id


INSIGHTS_PAYLOAD = {
    "insights": [
        {
            "title": "AI agents move from pilots to production budgets",
            "signal": "Three vendors reported agent revenue for the first time.",
            "potential_angle": "What changes when agents get their own budget line",
            "confidence": "high",
            "relevance": "high",
            "tags": ["ai agents", "enterprise software"],
        },
        {
            "title": "Usage-based pricing replaces seats",
            "signal": "Seat counts shrink while usage fees grow.",
            "potential_angle": "Who wins when software is priced per task",
            "confidence": "Medium",
            "relevance": "very high",
            "tags": "pricing, saas",
        },
        {
            "title": "Data platforms consolidate",
            "signal": "Two acquisitions in one quarter.",
            "potential_angle": "Consolidation and the buyer's leverage",
            "confidence": "low",
            "relevance": "medium",
            "tags": ["m&a"],
        },
    ]
}


def research_payload(topic: str = "AI agents in enterprise software") -> dict:
    return {
        "topic": topic,
        "topic_slug": "ai-agents-enterprise",
        "market_data": [
            {"claim": "The agent software market reached $5B in 2025", "source": "Example Research", "url": "https://example.com/r"},
        ],
        "competitor_analysis": [{"company": "Acme", "insight": "Bundles agents into its CRM"}],
        "statistics": [{"stat": "62% of CIOs plan agent pilots", "source": "CIO Survey"}],
        "expert_opinions": [{"quote": "Agents are the new apps", "speaker": "J. Analyst"}],
        "related_trends": [{"trend": "Usage-based pricing", "relevance": "Agents are billed per task"}],
        "sources": [
            {"title": "Agent market report", "url": "https://example.com/r", "category": "report", "published_date": "March 5, 2025"},
            {"title": "Vendor blog", "url": "https://blog.example.com/p", "category": "podcast", "published_date": "sometime"},
        ],
    }


OUTLINE_PAYLOAD = {
    "title": "AI Agents Reshape Enterprise Software Spending",
    "target_audience": "CIOs and software buyers",
    "thesis": "Agents turn software budgets into labor budgets.",
    "tone": "professional",
    "structure_pattern": "trend_analysis",
    "sections": [
        {"id": "s1", "type": "intro", "title": "Why agents matter now", "content": "Hook.", "keywords": ["ai agents"]},
        {"id": "s2", "type": "body", "title": "Where the money goes", "content": "Budgets.", "keywords": ["enterprise software", "ai agents"]},
        {"id": "s3", "type": "body", "title": "Pricing shifts", "content": "Pricing.", "keywords": ["pricing"]},
        {"id": "s4", "type": "conclusion", "title": "What buyers should do", "content": "Actions.", "keywords": ["enterprise software"]},
    ],
}

_SENTENCE = (
    "Enterprise teams are moving AI agents from small pilots into production budgets "
    "because the measured savings finally justify the spending on enterprise software."
)


def make_article(paragraphs: int = 12, with_metadata: bool = True) -> str:
    """Markdown article of roughly ``paragraphs * 115`` words."""
    parts = [" ".join([_SENTENCE] * 5)] * paragraphs
    half = paragraphs // 2
    text = (
        "# AI Agents Reshape Enterprise Software Spending\n\n"
        "Agents are becoming a budget line of their own.\n\n"
        "## Where AI agents create value\n\n" + "\n\n".join(parts[:half]) + "\n\n"
        "## Pricing and enterprise software\n\n### What changes\n\n" + "\n\n".join(parts[half:])
    )
    if with_metadata:
        text += (
            "\n\n---\nmeta_description: AI agents are changing how enterprises buy software.\n"
            "primary_keywords: [AI agents, enterprise software]\n---\n"
        )
    return f"```markdown\n{text}\n```"
