"""Tests for provider clients, the gateway and prompt templates."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from anthropic import APIConnectionError, APIStatusError
from jinja2 import UndefinedError
from pydantic import BaseModel

from signalpress.config import Settings
from signalpress.errors import ConfigurationError, ParseError, ProviderError
from signalpress.llm.client import ClaudeClient
from signalpress.llm.gateway import Parsed, ParseFailure, ProviderGateway, extract_json, recover_json
from signalpress.llm.prompts import SYSTEM_TEMPLATES, render, system_prompt
from signalpress.llm.search import SonarClient
from tests.conftest import make_mock_response

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


# ---------------------------------------------------------------------------
# ClaudeClient
# ---------------------------------------------------------------------------


def test_complete_returns_text(mock_claude_client: ClaudeClient) -> None:
    """Test that complete() returns the text from Claude's response."""
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Hello, this is a test response."
    )

    result = mock_claude_client.complete("You are a test assistant.", "Say hello")

    assert result.text == "Hello, this is a test response."
    assert result.citations == []
    assert mock_claude_client._total_input_tokens == 100
    assert mock_claude_client._total_output_tokens == 200
    kwargs = mock_claude_client._client.messages.create.call_args.kwargs
    assert kwargs["system"] == "You are a test assistant."
    assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]
    assert kwargs["max_tokens"] == 1024


def test_usage_summary_accumulates(mock_claude_client: ClaudeClient) -> None:
    """Test that token usage accumulates across calls."""
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Response 1", input_tokens=50, output_tokens=100
    )
    mock_claude_client.complete("test", "1")

    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Response 2", input_tokens=75, output_tokens=150
    )
    mock_claude_client.complete("test", "2", max_tokens=200)

    summary = mock_claude_client.usage_summary
    assert summary["total_input_tokens"] == 125
    assert summary["total_output_tokens"] == 250
    assert mock_claude_client._client.messages.create.call_args.kwargs["max_tokens"] == 200


def test_client_requires_api_key(settings: Settings) -> None:
    with pytest.raises(ConfigurationError):
        ClaudeClient(settings.model_copy(update={"anthropic_api_key": ""}))


def test_status_error_becomes_provider_error(mock_claude_client: ClaudeClient) -> None:
    response = httpx.Response(529, request=httpx.Request("POST", ANTHROPIC_URL))
    mock_claude_client._client.messages.create.side_effect = APIStatusError(
        "overloaded", response=response, body=None
    )
    with pytest.raises(ProviderError) as exc_info:
        mock_claude_client.complete("s", "u")
    assert exc_info.value.status_code == 529


def test_connection_error_becomes_provider_error(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.side_effect = APIConnectionError(
        request=httpx.Request("POST", ANTHROPIC_URL)
    )
    with pytest.raises(ProviderError):
        mock_claude_client.complete("s", "u")


# ---------------------------------------------------------------------------
# SonarClient
# ---------------------------------------------------------------------------


@pytest.fixture
def sonar(settings: Settings) -> SonarClient:
    client = SonarClient(settings.model_copy(update={"perplexity_api_key": "pplx-test"}))
    client._client = MagicMock()
    return client


def test_sonar_returns_text_and_citations(sonar: SonarClient) -> None:
    sonar._client.post.return_value = MagicMock(
        status_code=200,
        json=MagicMock(return_value={
            "id": "search-1",
            "choices": [{"message": {"role": "assistant", "content": "Findings"}}],
            "citations": ["https://a.example/1", "https://b.example/2"],
        }),
    )

    result = sonar.complete("system", "query", recency="week")

    assert result.text == "Findings"
    assert result.citations == ["https://a.example/1", "https://b.example/2"]
    assert result.response_id == "search-1"
    path = sonar._client.post.call_args.args[0]
    payload = sonar._client.post.call_args.kwargs["json"]
    assert path == "/chat/completions"
    assert payload["search_recency_filter"] == "week"
    assert payload["messages"][0] == {"role": "system", "content": "system"}


def test_sonar_error_status(sonar: SonarClient) -> None:
    sonar._client.post.return_value = MagicMock(status_code=401, text="unauthorized")
    with pytest.raises(ProviderError, match="401"):
        sonar.complete("system", "query")


@pytest.mark.parametrize("body", ["<html>Bad gateway</html>", "[1, 2]"])
def test_sonar_non_object_body_becomes_provider_error(sonar: SonarClient, body: str) -> None:
    sonar._client.post.return_value = httpx.Response(200, text=body)
    with pytest.raises(ProviderError, match="Perplexity API returned"):
        sonar.complete("system", "query")


def test_sonar_requires_api_key(settings: Settings) -> None:
    with pytest.raises(ConfigurationError):
        SonarClient(settings)


# ---------------------------------------------------------------------------
# JSON recovery
# ---------------------------------------------------------------------------


def test_extract_json_from_fenced_block() -> None:
    assert extract_json('noise ```json\n{"a":1}\n``` trailing') == {"a": 1}


def test_extract_json_with_trailing_text() -> None:
    assert extract_json('{"a":1} extra') == {"a": 1}


def test_extract_json_fails_on_prose() -> None:
    with pytest.raises(ParseError) as exc_info:
        extract_json("I could not find anything useful to report today.")
    assert "I could not find" in exc_info.value.excerpt


def test_recover_json_reports_strategy() -> None:
    assert recover_json('```json\n{"a": 1}\n```') == Parsed({"a": 1}, "fenced")
    assert recover_json('{"a": 1}') == Parsed({"a": 1}, "whole")
    assert recover_json('Sure! {"a": {"b": "}"}} hope that helps') == Parsed({"a": {"b": "}"}}, "braces")


def test_recover_json_picks_largest_object() -> None:
    text = 'first {"x": 1} then {"insights": [{"title": "T"}], "n": 2}'
    result = recover_json(text)
    assert isinstance(result, Parsed)
    assert result.value == {"insights": [{"title": "T"}], "n": 2}


def test_recover_json_falls_through_broken_fence() -> None:
    text = '```json\n{"a": 1,,}\n```\nCorrected: {"a": 2}'
    assert recover_json(text) == Parsed({"a": 2}, "braces")


def test_recover_json_failure_excerpt_is_bounded() -> None:
    result = recover_json("no json here " * 100)
    assert isinstance(result, ParseFailure)
    assert len(result.excerpt) <= 203


class Pair(BaseModel):
    a: int
    b: str = "default"


def test_extract_json_validates_model() -> None:
    assert extract_json('```json\n{"a": 3}\n```', Pair) == Pair(a=3)
    with pytest.raises(ParseError):
        extract_json('{"a": "not a number"}', Pair)


def test_gateway_generate_json(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        'Result:\n```json\n{"a": 5, "b": "x"}\n```'
    )
    gateway = ProviderGateway(mock_claude_client)

    value, completion = gateway.generate_json("system", "user", Pair, max_tokens=300)

    assert value == Pair(a=5, b="x")
    assert gateway.provider == "anthropic"
    assert mock_claude_client._client.messages.create.call_args.kwargs["max_tokens"] == 300


def test_gateway_generate_json_raises_parse_error(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.return_value = make_mock_response("Sorry, no.")
    with pytest.raises(ParseError):
        ProviderGateway(mock_claude_client).generate_json("system", "user", Pair)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def test_render_templates() -> None:
    """Test that Jinja2 templates render correctly."""
    insights = render("insights.j2", min_insights=3, max_insights=7)
    assert "between 3 and 7" in insights
    assert "<external_content>" in insights

    research = render("research.j2", categories=("news", "blog", "report"))
    assert "news|blog|report" in research

    outline = render(
        "outline.j2",
        patterns={"how_to": "How-to", "comparison": "Comparison"},
        min_sections=3,
        max_sections=5,
    )
    assert "- how_to: How-to" in outline
    assert "how_to|comparison" in outline
    assert "3 to 5 sections" in outline

    assert "2500-3500 words" in render("draft.j2", min_words=2500, max_words=3500)
    assert "160 characters" in render("meta_description.j2", max_chars=160)


def test_system_prompt_per_operation() -> None:
    assert system_prompt("analyze-seo", max_chars=160) == render("meta_description.j2", max_chars=160)
    assert set(SYSTEM_TEMPLATES) >= {"extract-insights", "deep-research", "generate-outline", "write-draft"}
    with pytest.raises(ValueError):
        system_prompt("collect-resource")


def test_render_reports_missing_template_and_context() -> None:
    with pytest.raises(ConfigurationError):
        render("missing.j2")
    with pytest.raises(UndefinedError):
        render("meta_description.j2")
