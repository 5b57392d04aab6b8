"""Write the article body from an approved outline and its research."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from signalpress.content.base import PipelineStage, format_research
from signalpress.content.outline import OutlinePayload, clean_sections
from signalpress.errors import ValidationError
from signalpress.llm.prompts import system_prompt
from signalpress.security.sanitize import sanitize_string_array, sanitize_user
from signalpress.storage.database import get_session
from signalpress.storage.models import Draft, Outline, Research, dumps, utcnow

logger = logging.getLogger(__name__)

_MARKDOWN_BLOCK = re.compile(r"```markdown[ \t]*\n?(.*?)\n?```", re.DOTALL)
_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_META_BLOCK = re.compile(
    r"---\s*\nmeta_description:\s*(.+)\nprimary_keywords:\s*\[([^\]]+)\]\s*\n---"
)
MARKDOWN_SYNTAX = re.compile(r"[#*`>\[\]()]")

GROUNDING_FIELDS = ("market_data", "statistics", "expert_opinions")


@dataclass
class ParsedArticle:
    title: str
    subtitle: str | None
    content: str
    word_count: int
    char_count: int
    meta_description: str | None
    primary_keywords: list[str] | None


def unwrap_markdown(text: str) -> str:
    match = _MARKDOWN_BLOCK.search(text)
    return match.group(1) if match else text


def split_metadata(text: str) -> tuple[str, str | None, list[str] | None]:
    """Remove the trailing metadata block, returning ``(body, meta, keywords)``.

    A missing or malformed block leaves both values as None.
    """
    match = _META_BLOCK.search(text)
    if not match:
        return text.strip(), None, None
    body = (text[: match.start()] + text[match.end() :]).strip()
    keywords = [k.strip().strip("\"'") for k in match.group(2).split(",")]
    return body, match.group(1).strip() or None, sanitize_string_array(keywords) or None


def extract_title(text: str, fallback: str) -> str:
    match = _H1.search(text)
    return match.group(1).strip() if match else fallback


def extract_subtitle(text: str) -> str | None:
    """First line that is neither a heading nor a horizontal rule."""
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#") and not set(line) <= {"-", "*", "_"}:
            return line
    return None


def strip_markdown(text: str) -> str:
    return MARKDOWN_SYNTAX.sub("", text)


def count_words(text: str) -> int:
    return len(strip_markdown(text).split())


def count_chars(text: str) -> int:
    return len(re.sub(r"\s", "", strip_markdown(text)))


def parse_article(raw: str, fallback_title: str) -> ParsedArticle:
    body, meta, keywords = split_metadata(unwrap_markdown(raw))
    return ParsedArticle(
        title=extract_title(body, fallback_title),
        subtitle=extract_subtitle(body),
        content=body,
        word_count=count_words(body),
        char_count=count_chars(body),
        meta_description=meta,
        primary_keywords=keywords,
    )


class DraftWriter(PipelineStage):
    operation = "write-draft"

    def get_system_prompt(self) -> str:
        return system_prompt(
            self.operation,
            min_words=self._settings.draft_min_words,
            max_words=self._settings.draft_max_words,
        )

    @staticmethod
    def build_user_message(outline: Outline, research: Research | None) -> str:
        sections = "\n\n".join(
            f"### {i}. {s['title']} ({s['type']})\n{s['content']}\nKeywords: {', '.join(s['keywords'])}"
            for i, s in enumerate(outline.decoded("sections", []), 1)
        )
        message = (
            "Write a blog article from the following outline and research data.\n\n"
            "## Article\n"
            f"- Title: {outline.title}\n"
            f"- Target readers: {outline.target_audience}\n"
            f"- Thesis: {outline.thesis}\n"
            f"- Tone: {outline.tone}\n\n"
            f"## Outline\n\n{sections}"
        )
        if research is not None:
            message += "\n\n# Research data you may use\n\n" + format_research(research, GROUNDING_FIELDS)
        return message

    def write(self, user_id: str, session_id: str, outline_id: str, outline: dict | OutlinePayload) -> Draft:
        """Save the edited outline as approved, then generate and store the draft."""
        if not outline_id or not outline:
            raise ValidationError("session_id, outline_id, and outline are required")
        try:
            edited = outline if isinstance(outline, OutlinePayload) else OutlinePayload.model_validate(outline)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid outline: {e.error_count()} errors") from e
        sections = clean_sections(edited.sections)
        if not sections:
            raise ValidationError("Outline must have at least one section")

        with get_session(self._db_url) as db:
            wf = self._states.load(db, session_id, user_id)
            self._states.require(wf, self.operation)

            row = db.get(Outline, outline_id)
            if row is None or row.session_id != wf.id:
                raise ValidationError(f"Outline {outline_id} not found")
            research = db.get(Research, row.research_id) if row.research_id else None

            row.title = sanitize_user(edited.title, 200) or row.title
            row.target_audience = sanitize_user(edited.target_audience, 200)
            row.thesis = sanitize_user(edited.thesis, 1000)
            row.tone = edited.tone
            row.structure_pattern = edited.structure_pattern
            row.sections_json = dumps(sections)
            row.status = "approved"
            row.updated_at = utcnow()
            db.add(row)
            self._states.begin(db, wf, self.operation)

            raw = self._gateway.generate(
                self.get_system_prompt(),
                self.build_user_message(row, research),
                max_tokens=self._settings.draft_max_tokens,
            )
            article = parse_article(raw, row.title)
            draft = Draft(
                session_id=wf.id,
                outline_id=row.id,
                title=sanitize_user(article.title, 200),
                subtitle=sanitize_user(article.subtitle, 500) or None,
                content=article.content,
                word_count=article.word_count,
                char_count=article.char_count,
                status="draft",
                meta_description=article.meta_description,
                primary_keywords_json=dumps(article.primary_keywords) if article.primary_keywords else None,
            )
            db.add(draft)
            self._states.complete(db, wf, self.operation)
            db.refresh(draft)

        if draft.meta_description is None:
            logger.warning("Draft %s has no metadata block; scoring will generate it", draft.id)
        logger.info("Draft %s: %d words", draft.id, draft.word_count)
        return draft
