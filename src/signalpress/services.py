"""Build pipeline components from Settings."""

from __future__ import annotations

import logging
from functools import cached_property

from signalpress.config import Settings
from signalpress.content.draft import DraftWriter
from signalpress.content.outline import OutlineGenerator
from signalpress.content.publish import DraftPublisher
from signalpress.llm.client import ClaudeClient
from signalpress.llm.gateway import CompletionClient, ProviderGateway
from signalpress.llm.search import SonarClient
from signalpress.research.collector import ResourceCollector
from signalpress.research.deep import DeepResearcher
from signalpress.research.insights import InsightExtractor
from signalpress.research.news import NewsSearcher
from signalpress.scoring.scorer import ContentScorer
from signalpress.security.rate_limit import RateLimiter
from signalpress.workflow.states import SessionStateMachine

logger = logging.getLogger(__name__)


class Services:
    """Lazily constructed components sharing one Settings and state machine.

    Provider clients are created on first use, so a missing API key
    surfaces as ConfigurationError on the call that needs it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        claude_client: CompletionClient | None = None,
        search_client: CompletionClient | None = None,
        collector: ResourceCollector | None = None,
    ) -> None:
        self.settings = settings
        self.states = SessionStateMachine()
        self._claude_client = claude_client
        self._search_client = search_client
        self._collector = collector

    @cached_property
    def generation(self) -> ProviderGateway:
        return ProviderGateway(self._claude_client or ClaudeClient(self.settings))

    @cached_property
    def search(self) -> ProviderGateway:
        """Search-grounded gateway; requires PERPLEXITY_API_KEY."""
        return ProviderGateway(self._search_client or SonarClient(self.settings))

    @property
    def research_gateway(self) -> ProviderGateway:
        if self._search_client is not None or self.settings.perplexity_api_key:
            return self.search
        return self.generation

    @cached_property
    def rate_limiter(self) -> RateLimiter:
        return RateLimiter(self.settings.db_url)

    @cached_property
    def collector(self) -> ResourceCollector:
        return self._collector or ResourceCollector(self.settings, state_machine=self.states)

    @cached_property
    def insights(self) -> InsightExtractor:
        return InsightExtractor(self.generation, self.settings, self.states)

    @cached_property
    def researcher(self) -> DeepResearcher:
        gateway = self.research_gateway
        logger.info("Deep research provider: %s", gateway.provider)
        return DeepResearcher(gateway, self.settings, self.states)

    @cached_property
    def outlines(self) -> OutlineGenerator:
        return OutlineGenerator(self.generation, self.settings, self.states)

    @cached_property
    def drafts(self) -> DraftWriter:
        return DraftWriter(self.generation, self.settings, self.states)

    @cached_property
    def scorer(self) -> ContentScorer:
        return ContentScorer(self.generation, self.settings, self.states)

    @cached_property
    def news(self) -> NewsSearcher:
        return NewsSearcher(self.search, self.settings)

    @cached_property
    def publisher(self) -> DraftPublisher:
        return DraftPublisher(self.settings.db_url, self.states)

    def close(self) -> None:
        if "collector" in self.__dict__:
            self.collector.close()
        if "search" in self.__dict__:
            self.search.close()
