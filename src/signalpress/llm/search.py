"""Perplexity Sonar client for search-grounded generation."""

from __future__ import annotations

import logging

import httpx

from signalpress.config import Settings
from signalpress.errors import ConfigurationError, ProviderError
from signalpress.llm.client import Completion

logger = logging.getLogger(__name__)


class SonarClient:
    """Chat-completions wrapper that also returns the provider's citation URLs."""

    name = "perplexity"

    def __init__(self, settings: Settings) -> None:
        if not settings.perplexity_api_key:
            raise ConfigurationError("PERPLEXITY_API_KEY is not set")
        self._model = settings.search_model
        self._max_tokens = settings.max_tokens
        self._client = httpx.Client(
            base_url=settings.search_base_url,
            headers={
                "Authorization": f"Bearer {settings.perplexity_api_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.search_timeout,
        )

    def complete(
        self,
        system: str,
        user_message: str,
        *,
        max_tokens: int | None = None,
        recency: str | None = None,
    ) -> Completion:
        """Run one search-grounded completion."""
        payload: dict = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user_message},
            ],
        }
        if recency:
            payload["search_recency_filter"] = recency

        try:
            resp = self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Perplexity API unreachable: {e}") from e
        if resp.status_code >= 300:
            raise ProviderError(
                f"Perplexity API error: {resp.status_code} - {resp.text[:200]}",
                resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"Perplexity API returned invalid JSON: {resp.text[:200]}", resp.status_code) from e
        if not isinstance(data, dict):
            raise ProviderError("Perplexity API returned an unexpected payload", resp.status_code)
        choices = data.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content") or ""
        citations = [c for c in data.get("citations") or [] if isinstance(c, str)]
        logger.info("%s: %d chars, %d citations", self._model, len(text), len(citations))
        return Completion(text=text, citations=citations, response_id=data.get("id"))

    def close(self) -> None:
        self._client.close()
