"""Turn research evidence into an ordered article outline."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

from signalpress.content.base import PipelineStage, format_insight, format_research
from signalpress.errors import ParseError, ValidationError
from signalpress.llm.prompts import system_prompt
from signalpress.security.sanitize import sanitize_string_array, sanitize_user
from signalpress.storage.database import get_session
from signalpress.storage.models import Insight, Outline, Research, WorkflowSession, dumps

logger = logging.getLogger(__name__)

STRUCTURE_PATTERNS = {
    "trend_analysis": "Trend analysis: current state, drivers, outlook, implications",
    "company_analysis": "Company analysis: background, strategy, results, lessons",
    "how_to": "How-to: problem, method, steps, expected results",
    "comparison": "Comparison: option A vs option B, criteria, recommendation",
    "problem_solving": "Problem solving: problem, causes, solution, outcome",
}
DEFAULT_PATTERN = "trend_analysis"
TONES = ("professional", "friendly", "humorous")
SECTION_TYPES = ("intro", "body", "conclusion")
MIN_SECTIONS = 3
MAX_SECTIONS = 5


class Section(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = "body"
    title: str = ""
    content: str = ""
    keywords: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        return text if text in SECTION_TYPES else "body"

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, value: object) -> list[str]:
        if isinstance(value, str):
            return [k.strip() for k in value.split(",") if k.strip()]
        return [str(k) for k in value] if isinstance(value, list) else []


class OutlinePayload(BaseModel):
    """Outline as produced by the provider or edited by a client."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    target_audience: str = ""
    thesis: str = ""
    tone: str = "professional"
    structure_pattern: str = DEFAULT_PATTERN
    sections: list[Section] = Field(default_factory=list)

    @field_validator("tone", mode="before")
    @classmethod
    def _known_tone(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        return text if text in TONES else "professional"

    @field_validator("structure_pattern", mode="before")
    @classmethod
    def _known_pattern(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        return text if text in STRUCTURE_PATTERNS else DEFAULT_PATTERN


def clean_sections(sections: list[Section]) -> list[dict]:
    """Sanitize section text; order and types are kept as given."""
    cleaned = []
    for n, section in enumerate(sections, 1):
        title = sanitize_user(section.title, 200)
        if not title:
            continue
        cleaned.append(
            {
                "id": sanitize_user(section.id, 50) or f"section-{n}",
                "type": section.type,
                "title": title,
                "content": sanitize_user(section.content, 2000),
                "keywords": sanitize_string_array(section.keywords),
            }
        )
    return cleaned


def shape_generated_sections(sections: list[Section]) -> list[dict]:
    """Enforce 3-5 sections with an intro first and a conclusion last."""
    cleaned = clean_sections(sections)
    if len(cleaned) < MIN_SECTIONS:
        raise ParseError(f"Outline has {len(cleaned)} sections, need at least {MIN_SECTIONS}")
    if len(cleaned) > MAX_SECTIONS:
        cleaned = cleaned[: MAX_SECTIONS - 1] + cleaned[-1:]

    last = len(cleaned) - 1
    for i, section in enumerate(cleaned):
        section["id"] = f"section-{i + 1}"
        section["type"] = "intro" if i == 0 else "conclusion" if i == last else "body"
    return cleaned


class OutlineGenerator(PipelineStage):
    operation = "generate-outline"

    def get_system_prompt(self) -> str:
        return system_prompt(
            self.operation,
            patterns=STRUCTURE_PATTERNS,
            min_sections=MIN_SECTIONS,
            max_sections=MAX_SECTIONS,
        )

    @staticmethod
    def build_user_message(research: Research, insight: Insight | None, wf: WorkflowSession) -> str:
        parts = ["Write a blog article outline based on the following research.", format_research(research)]
        if insight is not None:
            parts.append(format_insight(insight))
        if wf.target_audience:
            parts.append(f"## Target readers\n{wf.target_audience}")
        if wf.keywords:
            parts.append(f"## Keywords of interest\n{wf.keywords}")
        return "\n\n".join(parts)

    def generate(self, user_id: str, session_id: str, research_id: str) -> Outline:
        """Generate and store an outline for one Research row."""
        if not research_id:
            raise ValidationError("session_id and research_id are required")

        with get_session(self._db_url) as db:
            wf = self._states.load(db, session_id, user_id)
            self._states.require(wf, self.operation)

            research = db.get(Research, research_id)
            if research is None or research.session_id != wf.id:
                raise ValidationError(f"Research {research_id} not found")
            insight = db.get(Insight, research.insight_id) if research.insight_id else None

            self._states.begin(db, wf, self.operation)
            payload, _ = self._gateway.generate_json(
                self.get_system_prompt(),
                self.build_user_message(research, insight, wf),
                OutlinePayload,
                max_tokens=self._settings.max_tokens,
            )
            sections = shape_generated_sections(payload.sections)

            outline = Outline(
                session_id=wf.id,
                research_id=research.id,
                title=sanitize_user(payload.title, 200) or research.topic,
                target_audience=sanitize_user(payload.target_audience, 200) or wf.target_audience,
                thesis=sanitize_user(payload.thesis, 1000),
                tone=payload.tone,
                structure_pattern=payload.structure_pattern,
                sections_json=dumps(sections),
                status="draft",
            )
            db.add(outline)
            self._states.complete(db, wf, self.operation)
            db.refresh(outline)

        logger.info("Outline %s: %s, %d sections", outline.id, outline.structure_pattern, len(sections))
        return outline
