"""Wrapper around the Anthropic Claude SDK."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from anthropic import Anthropic, APIConnectionError, APIStatusError

from signalpress.config import Settings
from signalpress.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Text returned by a provider, with any citation URLs it attached."""

    text: str
    citations: list[str] = field(default_factory=list)
    response_id: str | None = None


class ClaudeClient:
    """Thin wrapper providing error mapping and token tracking.

    Calls are made exactly once; a failed call surfaces as ProviderError
    and the caller re-invokes the whole stage.
    """

    name = "anthropic"

    def __init__(self, settings: Settings) -> None:
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        self._client = Anthropic(api_key=settings.anthropic_api_key, max_retries=0)
        self._model = settings.model
        self._max_tokens = settings.max_tokens
        self._temperature = settings.temperature
        self._total_input_tokens = 0
        self._total_output_tokens = 0

    def complete(
        self,
        system: str,
        user_message: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Send one user message to Claude and return the text response."""
        start = time.time()
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens or self._max_tokens,
                temperature=temperature if temperature is not None else self._temperature,
                system=system,
                messages=[{"role": "user", "content": user_message}],
            )
        except APIStatusError as e:
            raise ProviderError(f"Anthropic API error: {e.status_code} - {e.message}", e.status_code) from e
        except APIConnectionError as e:
            raise ProviderError(f"Anthropic API unreachable: {e}") from e

        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        logger.info(
            "%s: %d in / %d out tokens in %.1fs",
            self._model,
            response.usage.input_tokens,
            response.usage.output_tokens,
            time.time() - start,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return Completion(text=text, response_id=getattr(response, "id", None))

    @property
    def usage_summary(self) -> dict:
        return {
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
        }
