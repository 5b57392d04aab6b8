"""System prompts of the pipeline operations.

Each operation has one Jinja2 template under ``templates/``. Rendering uses
StrictUndefined, so a variable missing from the context fails the call
instead of leaving a hole in the prompt.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from signalpress.errors import ConfigurationError

_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

SYSTEM_TEMPLATES = {
    "extract-insights": "insights.j2",
    "deep-research": "research.j2",
    "generate-outline": "outline.j2",
    "write-draft": "draft.j2",
    "analyze-seo": "meta_description.j2",
    "search-news": "news_search.j2",
}

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)


def render(template_name: str, **context: object) -> str:
    try:
        template = _env.get_template(template_name)
    except TemplateNotFound as e:
        raise ConfigurationError(f"Prompt template not found: {template_name}") from e
    return template.render(**context).strip()


def system_prompt(operation: str, **context: object) -> str:
    """Render the system prompt of ``operation``."""
    try:
        template_name = SYSTEM_TEMPLATES[operation]
    except KeyError:
        raise ValueError(f"No system prompt for operation: {operation}") from None
    return render(template_name, **context)
