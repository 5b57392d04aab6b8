"""Turn a session's collected resources into candidate article angles."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator
from sqlmodel import select

from signalpress.content.base import PipelineStage
from signalpress.errors import ParseError, ValidationError
from signalpress.llm.prompts import system_prompt
from signalpress.security.sanitize import sanitize_string_array, sanitize_user
from signalpress.storage.database import get_session
from signalpress.storage.models import Insight, Resource, dumps

logger = logging.getLogger(__name__)

LEVELS = ("high", "medium", "low")
MIN_INSIGHTS = 3
MAX_INSIGHTS = 7


def _level(value: object) -> str:
    text = str(value or "").strip().lower()
    return text if text in LEVELS else "medium"


class InsightPayload(BaseModel):
    title: str
    signal: str = ""
    potential_angle: str = ""
    confidence: str = "medium"
    relevance: str = "medium"
    tags: list[str] = Field(default_factory=list)

    @field_validator("confidence", "relevance", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        return _level(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: object) -> list[str]:
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        if isinstance(value, list):
            return [str(t) for t in value]
        return []


class InsightsPayload(BaseModel):
    insights: list[InsightPayload]


class InsightExtractor(PipelineStage):
    """Extract 3-7 insights from every resource of a session."""

    operation = "extract-insights"

    def get_system_prompt(self) -> str:
        return system_prompt(self.operation, min_insights=MIN_INSIGHTS, max_insights=MAX_INSIGHTS)

    @staticmethod
    def build_user_message(resources: list[Resource], keywords: str, target_audience: str) -> str:
        context = ""
        if keywords:
            context += f"\n\n## Topics of interest: {keywords}"
            context += "\nGive higher relevance to insights related to these topics."
        if target_audience:
            context += f"\n\n## Target readers: {target_audience}"
            context += "\nGive higher relevance to insights valuable to these readers."

        blocks = "\n\n".join(
            f"--- Resource {i}: {r.title or 'Untitled'} ---\n{r.content or '(no content)'}"
            for i, r in enumerate(resources, 1)
        )
        return (
            "Analyze the following content and extract blog insights."
            f"{context}\n\n## Collected content\n\n{blocks}"
        )

    def extract(
        self,
        user_id: str,
        session_id: str,
        keywords: str | None = None,
        target_audience: str | None = None,
    ) -> list[Insight]:
        """Extract and persist insights; the session ends in ``selection``."""
        safe_keywords = sanitize_user(keywords, 200)
        safe_audience = sanitize_user(target_audience, 200)

        with get_session(self._db_url) as db:
            wf = self._states.load(db, session_id, user_id)
            self._states.require(wf, self.operation)

            resources = db.exec(
                select(Resource).where(Resource.session_id == wf.id).order_by(Resource.collected_at)
            ).all()
            if not resources:
                raise ValidationError("No resources found for this session")

            self._states.begin(db, wf, self.operation)
            payload, _ = self._gateway.generate_json(
                self.get_system_prompt(),
                self.build_user_message(list(resources), safe_keywords, safe_audience),
                InsightsPayload,
                max_tokens=self._settings.max_tokens,
            )
            items = payload.insights[:MAX_INSIGHTS]
            if not items:
                raise ParseError("Provider returned no insights")

            source_refs = dumps(
                [{"source_type": r.source_type, "source_id": r.id, "title": r.title} for r in resources]
            )
            insights = [
                Insight(
                    session_id=wf.id,
                    title=sanitize_user(item.title, 200) or "Untitled insight",
                    signal=sanitize_user(item.signal, 2000),
                    potential_angle=sanitize_user(item.potential_angle, 2000),
                    confidence=item.confidence,
                    relevance=item.relevance,
                    tags_json=dumps(sanitize_string_array(item.tags)),
                    status="pending",
                    source_refs_json=source_refs,
                )
                for item in items
            ]
            if safe_keywords:
                wf.keywords = safe_keywords
            if safe_audience:
                wf.target_audience = safe_audience
            db.add_all(insights)
            self._states.complete(db, wf, self.operation)
            for insight in insights:
                db.refresh(insight)

        if len(insights) < MIN_INSIGHTS:
            logger.warning("Only %d insights extracted for session %s", len(insights), session_id)
        return insights
