"""Fetch source pages and uploaded text into session resources."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from signalpress.config import Settings
from signalpress.errors import ProviderError, ValidationError
from signalpress.security.sanitize import sanitize_external, sanitize_user
from signalpress.security.url_guard import UrlGuard
from signalpress.storage.database import get_session
from signalpress.storage.models import Resource
from signalpress.workflow.states import SessionStateMachine

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Non-content elements removed before text extraction
NOISE_TAGS = ["script", "style", "nav", "header", "footer", "noscript"]

TITLE_MAX_CHARS = 200


@dataclass
class FetchedPage:
    """A fetched page with extracted, not yet sanitized, text."""

    url: str
    title: str
    text: str


def extract_text(html: str) -> tuple[str, str]:
    """Return ``(title, body text)`` with noise blocks and tags removed."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(NOISE_TAGS + ["title"]):
        tag.decompose()
    text = re.sub(r"\s+", " ", soup.get_text(separator=" ")).strip()
    return title, text


class ResourceCollector:
    """Fetch URLs through the SSRF guard and store them as resources."""

    def __init__(
        self,
        settings: Settings,
        *,
        guard: UrlGuard | None = None,
        state_machine: SessionStateMachine | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._db_url = settings.db_url
        self._max_chars = settings.resource_max_chars
        self._max_redirects = settings.max_redirects
        self._guard = guard or UrlGuard()
        self._states = state_machine or SessionStateMachine()
        # Redirects are followed by hand so every hop passes the guard
        self._client = http_client or httpx.Client(
            timeout=settings.fetch_timeout,
            headers=BROWSER_HEADERS,
            follow_redirects=False,
        )

    def fetch(self, url: str) -> FetchedPage:
        """Validate, fetch and extract one page."""
        current = self._guard.validate(url)
        for _ in range(self._max_redirects + 1):
            try:
                resp = self._client.get(current)
            except httpx.HTTPError as e:
                raise ProviderError(f"Failed to fetch URL: {e}") from e

            if resp.is_redirect:
                location = resp.headers.get("location")
                if not location:
                    raise ProviderError(f"Redirect without location: {resp.status_code}", resp.status_code)
                current = self._guard.validate(urljoin(current, location))
                continue

            if not resp.is_success:
                raise ProviderError(f"Failed to fetch URL: {resp.status_code}", resp.status_code)

            content_type = resp.headers.get("content-type", "text/html")
            if "html" not in content_type and not content_type.startswith("text/"):
                raise ProviderError(f"Unsupported content type: {content_type}")

            title, text = extract_text(resp.text)
            return FetchedPage(url=current, title=title or urlsplit(current).hostname or current, text=text)

        raise ProviderError(f"Too many redirects (>{self._max_redirects})")

    def collect(self, user_id: str, session_id: str, url: str) -> Resource:
        """Fetch ``url`` and persist it as a ``url`` resource of the session."""
        # Validate intent before touching storage or the network
        self._guard.validate(url)
        with get_session(self._db_url) as db:
            wf = self._states.open(db, session_id, user_id)
            self._states.require(wf, "collect-resource")

            page = self.fetch(url)
            # Session row goes in ahead of the resource that references it
            db.flush()
            resource = Resource(
                session_id=wf.id,
                source_type="url",
                source_url=page.url,
                title=sanitize_user(page.title, TITLE_MAX_CHARS),
                content=sanitize_external(page.text, self._max_chars),
            )
            db.add(resource)
            self._states.complete(db, wf, "collect-resource")
            db.refresh(resource)

        logger.info("Collected %s (%d chars) into session %s", page.url, len(resource.content), wf.id)
        return resource

    def add_file(self, user_id: str, session_id: str, file_name: str, text: str) -> Resource:
        """Persist uploaded text as a ``file`` resource of the session."""
        if not file_name or not text or not text.strip():
            raise ValidationError("file_name and content are required")
        with get_session(self._db_url) as db:
            wf = self._states.open(db, session_id, user_id)
            self._states.require(wf, "collect-resource")
            db.flush()
            name = sanitize_user(file_name, TITLE_MAX_CHARS)
            resource = Resource(
                session_id=wf.id,
                source_type="file",
                file_name=name,
                title=name,
                content=sanitize_external(text, self._max_chars),
            )
            db.add(resource)
            self._states.complete(db, wf, "collect-resource")
            db.refresh(resource)
        return resource

    def close(self) -> None:
        self._client.close()
