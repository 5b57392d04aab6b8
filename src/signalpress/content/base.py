"""Base class and shared prompt context for pipeline stages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from signalpress.config import Settings
from signalpress.llm.gateway import ProviderGateway
from signalpress.storage.models import Insight, Research
from signalpress.workflow.states import SessionStateMachine

EVIDENCE_LABELS = {
    "market_data": "Market data",
    "competitor_analysis": "Competitor analysis",
    "statistics": "Statistics",
    "expert_opinions": "Expert opinions",
    "related_trends": "Related trends",
}


class PipelineStage(ABC):
    """A stage that loads its inputs, calls a provider and stores its output."""

    operation: ClassVar[str]

    def __init__(
        self,
        gateway: ProviderGateway,
        settings: Settings,
        state_machine: SessionStateMachine | None = None,
    ) -> None:
        self._gateway = gateway
        self._settings = settings
        self._db_url = settings.db_url
        self._states = state_machine or SessionStateMachine()

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Build the system prompt for this stage."""
        ...


def format_evidence(items: list[dict] | None) -> str:
    if not items:
        return "- none"
    lines = []
    for item in items:
        claim = item.get("claim", "")
        source = item.get("source", "")
        lines.append(f"- {claim} ({source})" if source else f"- {claim}")
    return "\n".join(lines)


def format_insight(insight: Insight | None) -> str:
    if insight is None:
        return ""
    tags = ", ".join(insight.decoded("tags", []))
    return (
        "## Insight\n"
        f"- Title: {insight.title}\n"
        f"- Key signal: {insight.signal}\n"
        f"- Angle: {insight.potential_angle}\n"
        f"- Tags: {tags}"
    )


def format_research(research: Research | None, fields: tuple[str, ...] = tuple(EVIDENCE_LABELS)) -> str:
    """Render stored evidence lists as markdown sections for a prompt."""
    if research is None:
        return ""
    parts = [f"## Topic\n{research.topic}"]
    for name in fields:
        parts.append(f"## {EVIDENCE_LABELS[name]}\n{format_evidence(research.decoded(name, []))}")
    return "\n\n".join(parts)
