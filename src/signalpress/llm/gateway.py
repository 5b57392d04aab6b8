"""Structured generation on top of a provider client.

Providers are asked for JSON but do not always return it cleanly. The
recovery chain tries, in order:

1. the first fenced ```json block,
2. the whole response,
3. the largest top-level ``{...}`` span.

When every step fails the caller gets a ParseFailure carrying a short
excerpt of the response, never the full payload.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, Union, overload

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from signalpress.errors import ParseError
from signalpress.llm.client import Completion

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200

_FENCED_JSON = re.compile(r"```json[ \t]*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)

M = TypeVar("M", bound=BaseModel)


class CompletionClient(Protocol):
    name: str

    def complete(self, system: str, user_message: str, **kwargs: Any) -> Completion: ...


@dataclass(frozen=True)
class Parsed:
    value: Any
    strategy: str  # fenced | whole | braces


@dataclass(frozen=True)
class ParseFailure:
    excerpt: str
    reason: str


JsonResult = Union[Parsed, ParseFailure]


def excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."


def top_level_objects(text: str) -> list[str]:
    """Balanced ``{...}`` spans that are not nested in another span."""
    spans: list[str] = []
    depth = 0
    start = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if depth == 0:
            if ch == "{":
                depth, start, in_string, escaped = 1, i, False, False
            continue
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                spans.append(text[start : i + 1])
    return spans


def _loads(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return False, None


def recover_json(text: str) -> JsonResult:
    """Run the recovery chain over raw provider text."""
    if not text or not text.strip():
        return ParseFailure(excerpt=excerpt(text), reason="empty response")

    fenced = _FENCED_JSON.search(text)
    if fenced:
        ok, value = _loads(fenced.group(1).strip())
        if ok:
            return Parsed(value, "fenced")

    ok, value = _loads(text.strip())
    if ok:
        return Parsed(value, "whole")

    candidates = sorted(top_level_objects(text), key=len, reverse=True)
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])
    for candidate in candidates:
        ok, value = _loads(candidate)
        if ok:
            return Parsed(value, "braces")

    return ParseFailure(excerpt=excerpt(text), reason="no JSON object found")


@overload
def extract_json(text: str, model: None = None) -> Any: ...
@overload
def extract_json(text: str, model: type[M]) -> M: ...


def extract_json(text: str, model: type[BaseModel] | None = None) -> Any:
    """Recover JSON from ``text`` and optionally validate it into ``model``."""
    result = recover_json(text)
    if isinstance(result, ParseFailure):
        raise ParseError(f"Failed to parse JSON from response ({result.reason})", result.excerpt)
    if model is None:
        return result.value
    try:
        return model.model_validate(result.value)
    except PydanticValidationError as e:
        raise ParseError(
            f"Response did not match {model.__name__} ({e.error_count()} errors)",
            excerpt(text),
        ) from e


class ProviderGateway:
    """Issue generation requests and turn the answers into typed values."""

    def __init__(self, client: CompletionClient) -> None:
        self._client = client

    @property
    def provider(self) -> str:
        return getattr(self._client, "name", type(self._client).__name__)

    def complete(
        self, system_prompt: str, user_message: str, max_tokens: int | None = None, **kwargs: Any
    ) -> Completion:
        return self._client.complete(system_prompt, user_message, max_tokens=max_tokens, **kwargs)

    def generate(self, system_prompt: str, user_message: str, max_tokens: int | None = None) -> str:
        """Return the raw text of one generation."""
        return self.complete(system_prompt, user_message, max_tokens).text

    def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        model: type[M],
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> tuple[M, Completion]:
        """Generate and validate a structured answer in one step."""
        completion = self.complete(system_prompt, user_message, max_tokens, **kwargs)
        try:
            return extract_json(completion.text, model), completion
        except ParseError as e:
            logger.warning("%s returned unparseable output: %s", self.provider, e.excerpt)
            raise

    extract_json = staticmethod(extract_json)
    recover_json = staticmethod(recover_json)

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
