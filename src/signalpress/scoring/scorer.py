"""Score a stored draft and persist the metrics snapshot."""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from signalpress.content.base import PipelineStage
from signalpress.content.draft import strip_markdown
from signalpress.errors import ProviderError, ValidationError
from signalpress.llm.prompts import system_prompt
from signalpress.scoring.metrics import SeoMetrics, Suggestion, build_suggestions, compute_metrics, overall_score
from signalpress.security.sanitize import sanitize_string_array, sanitize_user
from signalpress.storage.database import get_session
from signalpress.storage.models import Draft, Outline, dumps, utcnow

logger = logging.getLogger(__name__)

META_MAX_CHARS = 160
META_FALLBACK_CHARS = 155
META_BODY_CHARS = 500


class GeneratedMeta(BaseModel):
    description: str
    keywords: list[str] = Field(default_factory=list)


class ScoreReport(BaseModel):
    overall_score: int
    metrics: SeoMetrics
    suggestions: list[Suggestion]
    generated_meta: GeneratedMeta | None = None


def analyze(title: str, content: str, keywords: list[str]) -> ScoreReport:
    """Score text without touching storage or providers."""
    metrics = compute_metrics(title, content, keywords)
    return ScoreReport(
        overall_score=overall_score(metrics),
        metrics=metrics,
        suggestions=build_suggestions(metrics, has_keywords=bool(keywords)),
    )


def outline_keywords(outline: Outline | None) -> list[str]:
    """Section keywords of an outline, deduplicated in first-seen order."""
    if outline is None:
        return []
    seen: dict[str, None] = {}
    for section in outline.decoded("sections", []):
        for keyword in section.get("keywords") or []:
            if keyword:
                seen.setdefault(keyword, None)
    return list(seen)


def fallback_meta(content: str) -> str:
    first = content.split("\n\n", 1)[0]
    return re.sub(r"\s+", " ", strip_markdown(first)).strip()[:META_FALLBACK_CHARS]


class ContentScorer(PipelineStage):
    operation = "analyze-seo"

    def get_system_prompt(self) -> str:
        return system_prompt(self.operation, max_chars=META_MAX_CHARS)

    def generate_meta(self, title: str, content: str, keywords: list[str]) -> str:
        """Ask the provider for a meta description, falling back to the first paragraph."""
        message = (
            f"Title: {title}\nKeywords: {', '.join(keywords)}\n\n"
            f"Body (first {META_BODY_CHARS} characters):\n{content[:META_BODY_CHARS]}"
        )
        try:
            text = self._gateway.generate(
                self.get_system_prompt(), message, max_tokens=self._settings.meta_max_tokens
            )
        except ProviderError as e:
            logger.warning("Meta description generation failed, using first paragraph: %s", e)
            return fallback_meta(content)
        return sanitize_user(text.strip(), META_MAX_CHARS) or fallback_meta(content)

    def score(self, user_id: str, draft_id: str, keywords: list[str] | None = None) -> ScoreReport:
        if not draft_id:
            raise ValidationError("draft_id is required")
        terms = sanitize_string_array(keywords, max_item_len=100)

        with get_session(self._db_url) as db:
            draft = db.get(Draft, draft_id)
            if draft is None or not draft.content:
                raise ValidationError("Draft not found or has no content")
            wf = self._states.load(db, draft.session_id, user_id)
            self._states.require(wf, self.operation)

            if not terms:
                outline = db.get(Outline, draft.outline_id) if draft.outline_id else None
                terms = outline_keywords(outline) or draft.decoded("primary_keywords", []) or []

            report = analyze(draft.title or "", draft.content, terms)
            meta = draft.meta_description or self.generate_meta(draft.title or "", draft.content, terms)
            report.generated_meta = GeneratedMeta(description=meta, keywords=terms)

            draft.seo_metrics_json = dumps({"overall_score": report.overall_score, **report.metrics.model_dump()})
            draft.meta_description = meta
            if terms:
                draft.primary_keywords_json = dumps(terms)
            draft.updated_at = utcnow()
            db.add(draft)
            self._states.complete(db, wf, self.operation)

        logger.info("Draft %s scored %d", draft_id, report.overall_score)
        return report
