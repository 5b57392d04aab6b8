"""Expand selected insights into structured, sourced evidence."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

from dateutil import parser as date_parser
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlmodel import select

from signalpress.content.base import EVIDENCE_LABELS, PipelineStage, format_insight
from signalpress.errors import ValidationError
from signalpress.llm.client import Completion
from signalpress.llm.prompts import system_prompt
from signalpress.security.sanitize import sanitize_user
from signalpress.storage.database import get_session
from signalpress.storage.models import Insight, Research, dumps

logger = logging.getLogger(__name__)

SOURCE_CATEGORIES = ("news", "blog", "report", "paper", "official", "sns")
DEFAULT_CATEGORY = "news"


def slugify(text: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", text.lower(), flags=re.UNICODE)
    return re.sub(r"[\s_-]+", "-", slug).strip("-")[:80]


def normalize_date(value: object) -> str | None:
    """Return an ISO ``YYYY-MM-DD`` date, or None when it cannot be parsed."""
    if value is None or not str(value).strip():
        return None
    try:
        return date_parser.parse(str(value)).date().isoformat()
    except (ValueError, OverflowError):
        return None


class Evidence(BaseModel):
    """One ``{claim, source}`` record.

    Older prompt shapes used per-list keys (``point``, ``stat``, ``quote``,
    ``company``/``insight``, ``trend``/``relevance``); they are accepted here.
    """

    model_config = ConfigDict(extra="ignore")

    claim: str = Field(
        default="",
        validation_alias=AliasChoices("claim", "point", "stat", "quote", "trend", "insight"),
    )
    source: str = Field(
        default="",
        validation_alias=AliasChoices("source", "speaker", "company", "relevance"),
    )
    url: str | None = None


class SourceRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    url: str = ""
    category: str = DEFAULT_CATEGORY
    published_date: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        return text if text in SOURCE_CATEGORIES else DEFAULT_CATEGORY

    @field_validator("published_date", mode="before")
    @classmethod
    def _iso_date(cls, value: object) -> str | None:
        return normalize_date(value)


def _as_records(value: object) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [{"claim": item} if isinstance(item, str) else item for item in value]


class ResearchPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topic: str = ""
    topic_slug: str = ""
    market_data: list[Evidence] = Field(default_factory=list)
    competitor_analysis: list[Evidence] = Field(default_factory=list)
    statistics: list[Evidence] = Field(default_factory=list)
    expert_opinions: list[Evidence] = Field(default_factory=list)
    related_trends: list[Evidence] = Field(default_factory=list)
    sources: list[SourceRef] = Field(default_factory=list)

    @field_validator(*EVIDENCE_LABELS, "sources", mode="before")
    @classmethod
    def _listify(cls, value: object) -> list:
        return _as_records(value)


def sources_from_citations(citations: list[str]) -> list[SourceRef]:
    """Fallback source list built from raw citation URLs."""
    return [
        SourceRef(title=urlsplit(url).hostname or url, url=url, category=DEFAULT_CATEGORY)
        for url in dict.fromkeys(citations)
        if url
    ]


def build_research(session_id: str, insight: Insight, payload: ResearchPayload, completion: Completion) -> Research:
    sources = [s for s in payload.sources if s.url or s.title]
    if not sources:
        sources = sources_from_citations(completion.citations)

    topic = sanitize_user(payload.topic, 200) or insight.title
    evidence = {
        name: dumps([e.model_dump(exclude_none=True) for e in getattr(payload, name) if e.claim])
        for name in EVIDENCE_LABELS
    }
    return Research(
        session_id=session_id,
        insight_id=insight.id,
        topic=topic,
        topic_slug=slugify(payload.topic_slug or topic),
        market_data_json=evidence["market_data"],
        competitor_analysis_json=evidence["competitor_analysis"],
        statistics_json=evidence["statistics"],
        expert_opinions_json=evidence["expert_opinions"],
        related_trends_json=evidence["related_trends"],
        sources_json=dumps([s.model_dump() for s in sources]),
    )


class DeepResearcher(PipelineStage):
    """Run one research call per selected insight.

    Insights are researched one after another and every Research row is
    committed together at the end, so a provider failure part way through
    leaves no partial research behind.
    """

    operation = "deep-research"

    def get_system_prompt(self) -> str:
        return system_prompt(self.operation, categories=SOURCE_CATEGORIES)

    @staticmethod
    def build_user_message(insight: Insight) -> str:
        return (
            "Run in-depth research on the following insight.\n\n"
            f"{format_insight(insight)}\n\n"
            "Gather the market data, competitor analysis, statistics, expert opinions "
            "and related trends needed to write a blog article about it."
        )

    def research(self, user_id: str, session_id: str, insight_ids: list[str]) -> list[Research]:
        ids = [i for i in dict.fromkeys(insight_ids or []) if i]
        if not ids:
            raise ValidationError("session_id and insight_ids are required")

        with get_session(self._db_url) as db:
            wf = self._states.load(db, session_id, user_id)
            self._states.require(wf, self.operation)

            all_insights = db.exec(select(Insight).where(Insight.session_id == wf.id)).all()
            by_id = {i.id: i for i in all_insights}
            chosen = [by_id[i] for i in ids if i in by_id]
            if not chosen:
                raise ValidationError("No insights found")

            # Selection replaces any earlier selection
            for insight in all_insights:
                if insight.id in ids:
                    insight.status = "selected"
                elif insight.status == "selected":
                    insight.status = "pending"
                db.add(insight)
            self._states.begin(db, wf, self.operation)

            system = self.get_system_prompt()
            rows = []
            for insight in chosen:
                payload, completion = self._gateway.generate_json(
                    system,
                    self.build_user_message(insight),
                    ResearchPayload,
                    max_tokens=self._settings.max_tokens,
                )
                rows.append(build_research(wf.id, insight, payload, completion))
                logger.info("Researched insight %s via %s", insight.id, self._gateway.provider)

            db.add_all(rows)
            self._states.complete(db, wf, self.operation)
            for row in rows:
                db.refresh(row)
        return rows
