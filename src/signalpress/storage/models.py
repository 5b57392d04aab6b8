"""SQLModel database models.

List and dict columns are stored as TEXT (``*_json``) and decoded on the
Python side, which keeps SQLite and PostgreSQL interchangeable.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar

from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for every stored datetime column."""
    return datetime.now(timezone.utc)


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class JsonColumnsMixin:
    """Decode ``<name>_json`` columns into ``<name>`` for API payloads."""

    json_fields: ClassVar[tuple[str, ...]] = ()

    def decoded(self, name: str, default: Any = None) -> Any:
        raw = getattr(self, f"{name}_json")
        if raw is None or raw == "":
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return default

    def to_dict(self) -> dict:
        data = self.model_dump()  # type: ignore[attr-defined]
        for name in self.json_fields:
            data.pop(f"{name}_json", None)
            data[name] = self.decoded(name)
        return data


class WorkflowSession(SQLModel, table=True):
    """One user's run through the pipeline."""

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    stage: str = "input"  # see workflow.states.Stage
    version: int = 0  # bumped on every stage write
    keywords: str = ""
    target_audience: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return self.model_dump()


class Resource(JsonColumnsMixin, SQLModel, table=True):
    """Collected source material. Immutable once created."""

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="workflowsession.id", index=True)
    source_type: str = "url"  # url | file
    source_url: str = ""
    file_name: str = ""
    title: str = ""
    content: str = ""
    collected_at: datetime = Field(default_factory=utcnow)


class Insight(JsonColumnsMixin, SQLModel, table=True):
    """Candidate article angle extracted from a session's resources."""

    json_fields: ClassVar[tuple[str, ...]] = ("tags", "source_refs")

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="workflowsession.id", index=True)
    title: str
    signal: str = ""
    potential_angle: str = ""
    confidence: str = "medium"  # high | medium | low
    relevance: str = "medium"  # high | medium | low
    tags_json: str = "[]"
    status: str = "pending"  # pending | selected | rejected
    source_refs_json: str = "[]"
    created_at: datetime = Field(default_factory=utcnow)


class Research(JsonColumnsMixin, SQLModel, table=True):
    """Evidence gathered for one selected insight. Immutable once written."""

    json_fields: ClassVar[tuple[str, ...]] = (
        "market_data",
        "competitor_analysis",
        "statistics",
        "expert_opinions",
        "related_trends",
        "sources",
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="workflowsession.id", index=True)
    insight_id: str | None = Field(default=None, foreign_key="insight.id")
    topic: str = ""
    topic_slug: str = ""
    market_data_json: str = "[]"
    competitor_analysis_json: str = "[]"
    statistics_json: str = "[]"
    expert_opinions_json: str = "[]"
    related_trends_json: str = "[]"
    sources_json: str = "[]"
    created_at: datetime = Field(default_factory=utcnow)


class Outline(JsonColumnsMixin, SQLModel, table=True):
    """Ordered section plan derived from research."""

    json_fields: ClassVar[tuple[str, ...]] = ("sections",)

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="workflowsession.id", index=True)
    research_id: str | None = Field(default=None, foreign_key="research.id")
    title: str = ""
    target_audience: str = ""
    thesis: str = ""
    tone: str = "professional"
    structure_pattern: str = ""
    sections_json: str = "[]"
    status: str = "draft"  # draft | approved
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Draft(JsonColumnsMixin, SQLModel, table=True):
    """Generated article body plus derived metadata and quality score."""

    json_fields: ClassVar[tuple[str, ...]] = ("seo_metrics", "primary_keywords")

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="workflowsession.id", index=True)
    outline_id: str | None = Field(default=None, foreign_key="outline.id")
    title: str = ""
    subtitle: str | None = None
    content: str = ""
    word_count: int = 0
    char_count: int = 0
    thumbnail_url: str | None = None
    status: str = "draft"  # draft | final | published
    seo_metrics_json: str | None = None
    meta_description: str | None = None
    primary_keywords_json: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RateLimitCounter(SQLModel, table=True):
    """Calls per (user, operation, hour). Reset happens by bucket rollover."""

    user_id: str = Field(primary_key=True)
    function_name: str = Field(primary_key=True)
    hour_bucket: str = Field(primary_key=True)  # YYYY-MM-DDTHH in UTC
    call_count: int = 0
