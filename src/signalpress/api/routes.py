"""One POST endpoint per pipeline stage."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from signalpress.api.auth import current_user
from signalpress.api.schemas import (
    AnalyzeSeoRequest,
    CollectFileRequest,
    CollectResourceRequest,
    DeepResearchRequest,
    DraftStatusRequest,
    ExtractInsightsRequest,
    GenerateOutlineRequest,
    SearchNewsRequest,
    WriteDraftRequest,
)
from signalpress.services import Services
from signalpress.storage.models import Resource

router = APIRouter(tags=["pipeline"])


def get_services(request: Request) -> Services:
    return request.app.state.services


def _resource_payload(resource: Resource) -> dict:
    return {
        "resource_id": resource.id,
        "session_id": resource.session_id,
        "title": resource.title,
        "content_length": len(resource.content),
    }


@router.post("/collect-resource")
def collect_resource(
    body: CollectResourceRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "collect-resource")
    resource = services.collector.collect(user_id, body.session_id, body.url)
    return _resource_payload(resource)


@router.post("/collect-file")
def collect_file(
    body: CollectFileRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "collect-resource")
    resource = services.collector.add_file(user_id, body.session_id, body.file_name, body.content)
    return _resource_payload(resource)


@router.post("/extract-insights")
def extract_insights(
    body: ExtractInsightsRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "extract-insights")
    insights = services.insights.extract(user_id, body.session_id, body.keywords, body.target_audience)
    return {"insights": [i.to_dict() for i in insights]}


@router.post("/deep-research")
def deep_research(
    body: DeepResearchRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "deep-research")
    rows = services.researcher.research(user_id, body.session_id, body.insight_ids)
    return {"research": [r.to_dict() for r in rows]}


@router.post("/generate-outline")
def generate_outline(
    body: GenerateOutlineRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "generate-outline")
    outline = services.outlines.generate(user_id, body.session_id, body.research_id)
    return {"outline": outline.to_dict()}


@router.post("/write-draft")
def write_draft(
    body: WriteDraftRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "write-draft")
    draft = services.drafts.write(user_id, body.session_id, body.outline_id, body.outline)
    return {"draft": draft.to_dict()}


@router.post("/analyze-seo")
def analyze_seo(
    body: AnalyzeSeoRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "analyze-seo")
    return services.scorer.score(user_id, body.draft_id, body.keywords).model_dump()


@router.post("/search-news")
def search_news(
    body: SearchNewsRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.rate_limiter.enforce(user_id, "search-news")
    return services.news.search(body.keywords, body.recency, body.max_results)


@router.post("/draft-status")
def draft_status(
    body: DraftStatusRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    draft = services.publisher.advance(user_id, body.draft_id, body.status)
    return {"draft": draft.to_dict()}
