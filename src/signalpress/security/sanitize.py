"""Prompt-injection filtering for user input and fetched external text.

Two levels:

* ``sanitize_user`` for authenticated user fields (keywords, audience,
  outline titles and notes).
* ``sanitize_external`` for text fetched from the web or uploaded files.
  The result is wrapped in ``<external_content>`` delimiters so that the
  provider reads it as data, never as instructions.

Both are pure and idempotent: running them twice gives the same output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

USER_MARKER = "[removed]"
EXTERNAL_MARKER = "[content removed]"
ELLIPSIS = "…"

EXTERNAL_OPEN = "<external_content>"
EXTERNAL_CLOSE = "</external_content>"


@dataclass(frozen=True)
class InjectionPattern:
    """One entry of the injection table."""

    name: str
    regex: re.Pattern[str]


def _p(name: str, pattern: str) -> InjectionPattern:
    return InjectionPattern(name, re.compile(pattern, re.IGNORECASE))


INJECTION_PATTERNS: tuple[InjectionPattern, ...] = (
    _p("ignore_instructions", r"ignore\s+(all\s+)?(previous|above|prior)\s+instructions?"),
    _p("forget_instructions", r"forget\s+(your|the|all)?\s*(previous\s+)?instructions?"),
    _p("role_reassignment", r"you\s+are\s+now\s+(a|an|the)\s+"),
    _p("system_tag", r"\[SYSTEM\]"),
    _p("user_tag", r"\[USER\]"),
    _p("assistant_tag", r"\[ASSISTANT\]"),
    _p("im_start", r"<\|im_start\|>"),
    _p("im_end", r"<\|im_end\|>"),
    _p("endoftext", r"<\|endoftext\|>"),
    _p("dashed_system_header", r"---+\s*SYSTEM\s*---+"),
    _p("boxed_system_header", r"===+\s*SYSTEM\s*===+"),
    _p("new_instructions", r"new\s+instructions?\s*:"),
    _p("override_instructions", r"override\s+(previous\s+)?instructions?"),
    _p("disregard_instructions", r"disregard\s+(previous\s+|the\s+)?instructions?"),
    _p("reveal_prompt", r"reveal\s+(your\s+)?(system\s+)?prompt"),
    _p("print_secrets", r"print\s+(the\s+)?(api[_\s]key|anthropic|openai)"),
    _p("data_delimiter", r"</?\s*external_content\s*>"),
)

_MAX_SWEEPS = 5


def strip_control_chars(text: str) -> str:
    """Drop NUL and CR, collapse 3+ newlines to 2 and trim."""
    text = text.replace("\0", "").replace("\r", "")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def sweep(text: str, marker: str, patterns: tuple[InjectionPattern, ...] = INJECTION_PATTERNS) -> str:
    """Replace every pattern match with ``marker`` until nothing matches."""
    for _ in range(_MAX_SWEEPS):
        before = text
        for entry in patterns:
            text = entry.regex.sub(marker, text)
        if text == before:
            break
    return text


def find_injections(text: str) -> list[str]:
    """Names of the patterns that match ``text``."""
    return [entry.name for entry in INJECTION_PATTERNS if entry.regex.search(text)]


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 1)].rstrip() + ELLIPSIS


def _clean(text: str, max_len: int, marker: str) -> str:
    # Loose cut first so the regex sweep never runs over huge payloads
    result = strip_control_chars(text[: max_len * 2])
    result = sweep(result, marker)
    return _truncate(result, max_len)


def sanitize_user(text: str | None, max_len: int = 500) -> str:
    """Sanitize an authenticated user's free-text field."""
    if not text:
        return ""
    return _clean(text, max_len, USER_MARKER)


def unwrap_external(text: str) -> str:
    """Remove one outer ``<external_content>`` wrapper, if present."""
    stripped = text.strip()
    if stripped.startswith(EXTERNAL_OPEN) and stripped.endswith(EXTERNAL_CLOSE):
        return stripped[len(EXTERNAL_OPEN): -len(EXTERNAL_CLOSE)]
    return text


def sanitize_external(text: str | None, max_len: int = 10000) -> str:
    """Sanitize untrusted fetched text and isolate it as data."""
    if not text:
        return ""
    result = _clean(unwrap_external(text), max_len, EXTERNAL_MARKER)
    if not result:
        return ""
    return f"{EXTERNAL_OPEN}\n{result}\n{EXTERNAL_CLOSE}"


def sanitize_string_array(items: list[str] | None, max_item_len: int = 50, max_items: int = 20) -> list[str]:
    """Sanitize a list of short strings such as tags or keywords."""
    if not items:
        return []
    cleaned = (sanitize_user(str(item), max_item_len) for item in items[:max_items])
    return [item for item in cleaned if item]
