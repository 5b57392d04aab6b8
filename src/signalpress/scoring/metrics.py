"""Pure sub-score functions for article quality.

Every function takes plain text and returns a pydantic model carrying a
0-100 ``score`` plus the measurements it was derived from. Scores are
continuous: small changes in the input never make a score jump.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field

from signalpress.content.draft import strip_markdown

Priority = Literal["high", "medium", "low"]

WEIGHTS = {
    "keyword_density": 0.25,
    "readability": 0.20,
    "content_length": 0.20,
    "heading_structure": 0.20,
    "title_optimization": 0.15,
}
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
MAX_SUGGESTIONS = 5

_SENTENCE_END = re.compile(r"[.!?。]+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_H2 = re.compile(r"^##\s+(.+)$", re.MULTILINE)
_H3 = re.compile(r"^###\s+(.+)$", re.MULTILINE)


class KeywordStat(BaseModel):
    keyword: str
    count: int
    density: float


class KeywordDensity(BaseModel):
    score: int
    value: float
    status: Literal["good", "low", "high"]
    details: list[KeywordStat] = Field(default_factory=list)


class Readability(BaseModel):
    score: int
    avg_sentence_length: float
    avg_paragraph_length: float
    status: Literal["excellent", "good", "needs_improvement"]


class ContentLength(BaseModel):
    score: int
    word_count: int
    char_count: int
    status: Literal["optimal", "short", "long"]


class HeadingStructure(BaseModel):
    score: int
    h2_count: int
    h3_count: int
    headings_with_keywords: int
    is_hierarchical: bool


class TitleOptimization(BaseModel):
    score: int
    length: int
    has_keyword: bool
    suggestions: list[str] = Field(default_factory=list)


class SeoMetrics(BaseModel):
    keyword_density: KeywordDensity
    readability: Readability
    content_length: ContentLength
    heading_structure: HeadingStructure
    title_optimization: TitleOptimization


class Suggestion(BaseModel):
    priority: Priority
    category: str
    message: str


def _clamp(score: float) -> int:
    return round(max(0.0, min(100.0, score)))


def density_score(density: float) -> float:
    """Score an average keyword density given in percent.

    Peaks at 2%, stays at 85 or above across 1-3%, and is 30 or below
    under 0.5% and over 4%.
    """
    if density < 0.5:
        return density / 0.5 * 30
    if density < 1:
        return 30 + (density - 0.5) / 0.5 * 55
    if density <= 3:
        return 100 - abs(2 - density) * 15
    if density <= 4:
        return 85 - (density - 3) * 55
    return max(0.0, 30 - (density - 4) * 10)


def keyword_density(content: str, keywords: list[str]) -> KeywordDensity:
    clean = strip_markdown(content).lower()
    total = len(clean.split())
    if not keywords or total == 0:
        return KeywordDensity(score=50, value=0.0, status="low")

    details = []
    for keyword in keywords:
        count = len(re.findall(re.escape(keyword.lower()), clean))
        details.append(KeywordStat(keyword=keyword, count=count, density=round(count / total * 100, 2)))
    avg = sum(stat.count / total * 100 for stat in details) / len(keywords)

    status = "low" if avg < 1 else "high" if avg > 3 else "good"
    return KeywordDensity(score=_clamp(density_score(avg)), value=round(avg, 2), status=status, details=details)


def readability(content: str) -> Readability:
    clean = strip_markdown(content)
    sentences = [s for s in _SENTENCE_END.split(clean) if s.strip()]
    paragraphs = [p for p in _PARAGRAPH_BREAK.split(clean) if p.strip()]
    if not sentences or not paragraphs:
        return Readability(score=50, avg_sentence_length=0, avg_paragraph_length=0, status="needs_improvement")

    sentence_len = len(clean.split()) / len(sentences)
    paragraph_len = len(sentences) / len(paragraphs)

    penalty = 0.0
    if sentence_len < 15:
        penalty += min(30.0, (15 - sentence_len) * 2)
    elif sentence_len > 30:
        penalty += min(40.0, (sentence_len - 30) * 2)
    if paragraph_len > 7:
        penalty += min(30.0, (paragraph_len - 7) * 5)
    elif paragraph_len < 2:
        penalty += (2 - paragraph_len) * 10

    score = _clamp(100 - penalty)
    status = "excellent" if score >= 80 else "good" if score >= 60 else "needs_improvement"
    return Readability(
        score=score,
        avg_sentence_length=round(sentence_len, 1),
        avg_paragraph_length=round(paragraph_len, 1),
        status=status,
    )


def length_score(word_count: int) -> float:
    if word_count < 800:
        return 50 * word_count / 800
    if word_count < 1500:
        return 50 + (word_count - 800) / 700 * 50
    if word_count <= 2500:
        return 100
    if word_count <= 3500:
        return 100 - (word_count - 2500) / 1000 * 50
    return max(0.0, 50 - (word_count - 3500) * 0.02)


def content_length(content: str) -> ContentLength:
    clean = strip_markdown(content)
    word_count = len(clean.split())
    status = "short" if word_count < 1200 else "long" if word_count > 3000 else "optimal"
    return ContentLength(
        score=_clamp(length_score(word_count)),
        word_count=word_count,
        char_count=len(re.sub(r"\s", "", clean)),
        status=status,
    )


def heading_structure(content: str, keywords: list[str]) -> HeadingStructure:
    h2 = _H2.findall(content)
    h3 = _H3.findall(content)
    lowered = [k.lower() for k in keywords]
    with_keywords = sum(1 for h in h2 + h3 if any(k in h.lower() for k in lowered))

    score = 40
    if len(h2) >= 4:
        score += 25
    elif len(h2) == 3:
        score += 20
    elif len(h2) == 2:
        score += 15
    elif len(h2) == 1:
        score += 5
    if h3:
        score += 10
    if with_keywords > 0:
        score += 15
    if with_keywords >= 2:
        score += 10

    return HeadingStructure(
        score=min(100, score),
        h2_count=len(h2),
        h3_count=len(h3),
        headings_with_keywords=with_keywords,
        is_hierarchical=len(h2) >= 2,
    )


def title_optimization(title: str, keywords: list[str]) -> TitleOptimization:
    length = len(title)
    has_keyword = any(k.lower() in title.lower() for k in keywords)
    score = 100
    suggestions = []

    if length > 70:
        score -= 25
        suggestions.append("Shorten the title to 60 characters so it is not cut off in search results.")
    elif length > 60:
        score -= 10
        suggestions.append("The title is slightly long; 60 characters or fewer is recommended.")
    elif length < 20:
        score -= 20
        suggestions.append("The title is too short; include more of the core topic.")
    elif length < 30:
        score -= 10
        suggestions.append("Add more specific information to the title.")

    if keywords and not has_keyword:
        score -= 25
        suggestions.append("Include a primary keyword in the title to improve search visibility.")

    return TitleOptimization(score=max(0, score), length=length, has_keyword=has_keyword, suggestions=suggestions)


def compute_metrics(title: str, content: str, keywords: list[str]) -> SeoMetrics:
    return SeoMetrics(
        keyword_density=keyword_density(content, keywords),
        readability=readability(content),
        content_length=content_length(content),
        heading_structure=heading_structure(content, keywords),
        title_optimization=title_optimization(title, keywords),
    )


def overall_score(metrics: SeoMetrics) -> int:
    total = sum(getattr(metrics, name).score * weight for name, weight in WEIGHTS.items())
    return round(total)


def build_suggestions(metrics: SeoMetrics, has_keywords: bool = True) -> list[Suggestion]:
    """Per-metric improvement hints, highest priority first, at most five."""
    out: list[Suggestion] = []

    kd = metrics.keyword_density
    if kd.status == "low":
        out.append(Suggestion(priority="high", category="keywords", message=(
            "Keywords are underused. Place the core keywords naturally throughout the body."
        )))
    elif kd.status == "high":
        out.append(Suggestion(priority="medium", category="keywords", message=(
            "Keywords repeat too often. Replace some with synonyms or related terms."
        )))

    rd = metrics.readability
    if rd.status == "needs_improvement":
        if rd.avg_sentence_length > 30:
            out.append(Suggestion(priority="high", category="readability", message=(
                "Sentences are too long. Split long sentences to improve readability."
            )))
        if rd.avg_paragraph_length > 6:
            out.append(Suggestion(priority="medium", category="readability", message=(
                "Paragraphs are too long. Aim for 3-5 sentences per paragraph."
            )))

    cl = metrics.content_length
    if cl.status == "short":
        out.append(Suggestion(priority="high", category="length", message=(
            f"The article has {cl.word_count} words. Expand it toward 1500-2500 words."
        )))
    elif cl.status == "long":
        out.append(Suggestion(priority="low", category="length", message=(
            "The article is long. Tightening it around the key points keeps readers engaged."
        )))

    hs = metrics.heading_structure
    if hs.h2_count < 2:
        out.append(Suggestion(priority="high", category="structure", message=(
            "Use at least two H2 headings to make the structure clear."
        )))
    if has_keywords and hs.headings_with_keywords == 0:
        out.append(Suggestion(priority="medium", category="structure", message=(
            "Include core keywords in some headings."
        )))

    out.extend(
        Suggestion(priority="medium", category="title", message=message)
        for message in metrics.title_optimization.suggestions
    )

    out.sort(key=lambda s: PRIORITY_ORDER[s.priority])
    return out[:MAX_SUGGESTIONS]
