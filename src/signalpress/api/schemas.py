"""Request bodies of the HTTP endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class CollectResourceRequest(BaseModel):
    session_id: str | None = None
    url: str


class CollectFileRequest(BaseModel):
    session_id: str | None = None
    file_name: str
    content: str


class ExtractInsightsRequest(BaseModel):
    session_id: str
    keywords: str | None = None
    target_audience: str | None = None


class DeepResearchRequest(BaseModel):
    session_id: str
    insight_ids: list[str]


class GenerateOutlineRequest(BaseModel):
    session_id: str
    research_id: str


class WriteDraftRequest(BaseModel):
    session_id: str
    outline_id: str
    outline: dict[str, Any]


class AnalyzeSeoRequest(BaseModel):
    draft_id: str
    keywords: list[str] = Field(default_factory=list)


class SearchNewsRequest(BaseModel):
    keywords: list[str]
    recency: Literal["hour", "day", "week", "month", "year"] = "month"
    max_results: int = Field(default=10, ge=1, le=20)


class DraftStatusRequest(BaseModel):
    draft_id: str
    status: Literal["draft", "final", "published"]
