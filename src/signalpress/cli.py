"""CLI entry point for the signalpress content pipeline."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from signalpress.config import VERSION

console = Console()

LOCAL_USER = "local"


@click.group()
@click.version_option(version=VERSION)
@click.option("--log-level", default=None, help="Override SIGNALPRESS_LOG_LEVEL")
def main(log_level: str | None) -> None:
    """signalpress: from source links to a scored article."""
    from signalpress.config import get_settings
    from signalpress.logging_config import setup_logging

    setup_logging(log_level or get_settings().log_level)


# ---------------------------------------------------------------------------
# serve: HTTP API
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", "-p", default=8000, help="Port")
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from signalpress.api.server import create_app
    from signalpress.config import get_settings
    from signalpress.errors import ConfigurationError

    try:
        app = create_app(get_settings())
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1) from e
    uvicorn.run(app, host=host, port=port, log_config=None)


# ---------------------------------------------------------------------------
# init-db: create tables
# ---------------------------------------------------------------------------


@main.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    from signalpress.config import get_settings
    from signalpress.storage.database import get_engine

    settings = get_settings()
    get_engine(settings.db_url)
    console.print(f"[green]Database ready:[/green] {settings.db_url}")


# ---------------------------------------------------------------------------
# run: the whole pipeline for a set of links
# ---------------------------------------------------------------------------


@main.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--keywords", "-k", default=None, help="Topics of interest")
@click.option("--audience", "-a", default=None, help="Target readers")
@click.option("--pick", "-n", default=1, help="Number of insights to research")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write the draft markdown to this file")
def run(
    urls: tuple[str, ...],
    keywords: str | None,
    audience: str | None,
    pick: int,
    output: str | None,
) -> None:
    """Collect URLS, then extract, research, outline, draft and score."""
    from signalpress.config import get_settings
    from signalpress.errors import SignalPressError
    from signalpress.services import Services
    from signalpress.storage.models import new_id

    settings = get_settings()
    _check_api_key(settings)
    services = Services(settings)
    session_id = new_id()

    try:
        for url in urls:
            with console.status(f"[dim]Collecting {url}...[/dim]"):
                resource = services.collector.collect(LOCAL_USER, session_id, url)
            console.print(f"  [green]+[/green] {resource.title} ({len(resource.content)} chars)")

        with console.status("[bold green]Extracting insights..."):
            insights = services.insights.extract(LOCAL_USER, session_id, keywords, audience)

        table = Table(title="Insights")
        table.add_column("#", width=3, justify="right")
        table.add_column("Title", width=50)
        table.add_column("Confidence", width=10)
        table.add_column("Relevance", width=10)
        for i, insight in enumerate(insights, 1):
            table.add_row(str(i), insight.title[:50], insight.confidence, insight.relevance)
        console.print(table)

        chosen = [i.id for i in insights[: max(1, pick)]]
        with console.status(f"[bold green]Researching {len(chosen)} insight(s)..."):
            research = services.researcher.research(LOCAL_USER, session_id, chosen)

        with console.status("[bold green]Generating outline..."):
            outline = services.outlines.generate(LOCAL_USER, session_id, research[0].id)
        console.print(f"\n[bold]{outline.title}[/bold] ({outline.structure_pattern})")
        for section in outline.decoded("sections", []):
            console.print(f"  - [{section['type']}] {section['title']}")

        with console.status("[bold green]Writing draft..."):
            draft = services.drafts.write(LOCAL_USER, session_id, outline.id, outline.to_dict())

        with console.status("[bold green]Scoring..."):
            report = services.scorer.score(LOCAL_USER, draft.id)
    except SignalPressError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1) from e
    finally:
        services.close()

    console.print()
    console.print(
        Panel(
            f"[bold]{draft.title}",
            subtitle=f"{draft.word_count} words | score {report.overall_score}/100",
        )
    )
    _print_suggestions(report.suggestions)

    if output:
        Path(output).write_text(draft.content + "\n")
        console.print(f"\nDraft saved to: {output}")
    console.print(f"[dim]Session: {session_id}[/dim]")


# ---------------------------------------------------------------------------
# score: offline scoring of a markdown file
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--keyword", "-k", multiple=True, help="Target keyword (repeatable)")
@click.option("--title", "-t", default=None, help="Title (defaults to the first H1)")
def score(file_path: str, keyword: tuple[str, ...], title: str | None) -> None:
    """Score a markdown article without calling any provider."""
    from signalpress.content.draft import extract_title, split_metadata
    from signalpress.scoring.scorer import analyze

    body, _, parsed_keywords = split_metadata(Path(file_path).read_text())
    keywords = list(keyword) or parsed_keywords or []
    report = analyze(title or extract_title(body, Path(file_path).stem), body, keywords)

    table = Table(title=f"Score: {report.overall_score}/100")
    table.add_column("Metric", width=20)
    table.add_column("Score", width=6, justify="right")
    table.add_column("Detail", width=40)
    m = report.metrics
    table.add_row("Keyword density", str(m.keyword_density.score), f"{m.keyword_density.value}% ({m.keyword_density.status})")
    table.add_row(
        "Readability",
        str(m.readability.score),
        f"{m.readability.avg_sentence_length} words/sentence, "
        f"{m.readability.avg_paragraph_length} sentences/paragraph",
    )
    table.add_row("Content length", str(m.content_length.score), f"{m.content_length.word_count} words")
    table.add_row(
        "Headings",
        str(m.heading_structure.score),
        f"{m.heading_structure.h2_count} H2, {m.heading_structure.h3_count} H3",
    )
    table.add_row("Title", str(m.title_optimization.score), f"{m.title_optimization.length} chars")
    console.print(table)
    _print_suggestions(report.suggestions)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_suggestions(suggestions: list) -> None:
    if not suggestions:
        console.print("[green]No suggestions.[/green]")
        return
    colors = {"high": "red", "medium": "yellow", "low": "dim"}
    console.print("\n[bold]Suggestions:[/bold]")
    for s in suggestions:
        console.print(f"  [{colors[s.priority]}]{s.priority:<6}[/] {s.category}: {s.message}")


def _check_api_key(settings: object) -> None:
    """Exit with a helpful message if the API key is not set."""
    if not getattr(settings, "anthropic_api_key", ""):
        console.print(
            "[bold red]Error:[/bold red] ANTHROPIC_API_KEY not set.\n"
            "Add it to .env in the project root."
        )
        raise SystemExit(1)


if __name__ == "__main__":
    main()
