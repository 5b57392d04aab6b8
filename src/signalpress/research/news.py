"""Search-grounded lookup of recent news for a set of keywords."""

from __future__ import annotations

import logging

from signalpress.config import Settings
from signalpress.errors import ValidationError
from signalpress.llm.gateway import ParseFailure, ProviderGateway
from signalpress.llm.prompts import system_prompt
from signalpress.security.sanitize import sanitize_string_array, sanitize_user

logger = logging.getLogger(__name__)

RECENCY_WINDOWS = ("hour", "day", "week", "month", "year")
MAX_RESULTS = 20


def _items(value: object) -> list[dict]:
    if isinstance(value, dict):
        value = value.get("results") or []
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


class NewsSearcher:
    """Find recent articles and pair them with the provider's citation URLs."""

    def __init__(self, gateway: ProviderGateway, settings: Settings) -> None:
        self._gateway = gateway
        self._settings = settings

    def search(self, keywords: list[str], recency: str = "month", max_results: int = 10) -> dict:
        terms = sanitize_string_array(keywords, max_item_len=100)
        if not terms:
            raise ValidationError("keywords are required")
        if recency not in RECENCY_WINDOWS:
            raise ValidationError(f"recency must be one of {', '.join(RECENCY_WINDOWS)}")
        max_results = max(1, min(int(max_results), MAX_RESULTS))

        query = ", ".join(terms)
        completion = self._gateway.complete(
            system_prompt("search-news", max_results=max_results),
            f"Search for the latest news about: {query}",
            self._settings.max_tokens,
            recency=recency,
        )

        parsed = self._gateway.recover_json(completion.text)
        if isinstance(parsed, ParseFailure):
            logger.warning("News search returned no JSON: %s", parsed.excerpt)
            items = [{"title": query, "snippet": completion.text[:300]}]
        else:
            items = _items(parsed.value)

        results = [
            {
                "title": sanitize_user(str(item.get("title", "")), 300),
                "url": completion.citations[i] if i < len(completion.citations) else "",
                "snippet": sanitize_user(str(item.get("snippet", "")), 1000),
            }
            for i, item in enumerate(items[:max_results])
        ]
        return {"results": results, "total": len(results), "search_id": completion.response_id}
