"""
TalentScout CLI - command line interface.
"""

import os
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv

from .models import ALL_PLATFORMS

# Load environment variables
load_dotenv()


def _mask(value: str) -> str:
    return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "set"


def _print_summary(result: Any) -> None:
    meta = result.metadata
    quality = meta.quality_report
    click.echo(f"\nFound {len(result.candidates)} candidates")
    click.echo(f"  Sources used: {', '.join(meta.sources_used) or 'none'}")
    click.echo(f"  Completion: {meta.completion_rate:.0%}{' (partial)' if meta.is_partial else ''}")
    click.echo(
        f"  Quality: {quality.strategy_used}, retries={quality.retries_needed}, "
        f"guarantee {'met' if quality.guarantee_met else 'NOT met'}"
    )
    for c in result.candidates[:5]:
        click.echo(f"  [{c.tier}] {c.overall_score:5.1f}  {c.name or c.platform_username} ({c.source_platform})")
    if meta.errors:
        click.echo(f"Warnings: {len(meta.errors)}")
        for err in meta.errors[:3]:
            click.echo(f"  - {err}")


def _run(kwargs: dict[str, Any], output: str) -> None:
    """Run a search via search_sync and report; exits 1 on bad input."""
    from .errors import MalformedInput
    from .pipeline import search_sync

    try:
        result = search_sync(output_dir=Path(output), **kwargs)
    except MalformedInput as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Run 'talentscout check' to see which API keys are missing.", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Search error: {e}", err=True)
        sys.exit(1)

    _print_summary(result)
    click.echo(f"  Output: {Path(output) / result.session.session_id}")


@click.group()
@click.version_option(version="0.1.0", prog_name="talentscout")
def main() -> None:
    """TalentScout - multi-source candidate search"""
    pass


@main.command()
@click.argument("query")
@click.option(
    "--source",
    "-s",
    "sources",
    multiple=True,
    type=click.Choice(ALL_PLATFORMS),
    help="Platform to query (repeatable; default: all)",
)
@click.option("--location", "-l", default=None, help="Location filter")
@click.option(
    "--budget",
    "-b",
    type=float,
    default=60.0,
    help="Time budget in seconds, clamped to 30-120 (default: 60)",
)
@click.option(
    "--min-results",
    "-n",
    type=int,
    default=10,
    help="Minimum number of high-quality candidates to aim for (default: 10)",
)
@click.option(
    "--min-tier",
    type=click.Choice(["bronze", "silver", "gold"]),
    default="bronze",
    help="Validation strictness (default: bronze)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="runs",
    help="Output directory for session artifacts (default: runs/)",
)
@click.option("--mock", is_flag=True, help="Use built-in sample sources (no network)")
@click.option("--llm/--no-llm", default=False, help="Validate candidates with OpenAI")
@click.option("--enrich/--no-enrich", default=False, help="Enrich with Apollo and Perplexity")
@click.option("--verbose", "-v", is_flag=True, help="Show per-candidate skips and timeouts")
def search(
    query: str,
    sources: tuple[str, ...],
    location: str | None,
    budget: float,
    min_results: int,
    min_tier: str,
    output: str,
    mock: bool,
    llm: bool,
    enrich: bool,
    verbose: bool,
) -> None:
    """Search all requested sources for QUERY."""
    kwargs = {
        "query": query,
        "sources": list(sources) or list(ALL_PLATFORMS),
        "location": location,
        "time_budget_seconds": budget,
        "minimum_results": min_results,
        "minimum_tier": min_tier,
        "mock": mock,
        "use_llm": llm,
        "enrich": enrich,
        "verbose": verbose,
    }
    _run(kwargs, output)


@main.command()
def check() -> None:
    """Check which API keys are configured."""
    click.echo("Checking configuration...\n")

    keys = [
        ("GITHUB_TOKEN", "GitHub (optional, raises rate limit to 5000 req/hr)"),
        ("STACKEXCHANGE_KEY", "Stack Overflow (optional, raises quota)"),
        ("DEVTO_API_KEY", "Dev.to (optional)"),
        ("APIFY_API_KEY", "LinkedIn"),
        ("SERPER_API_KEY", "Google + Kaggle web search"),
        ("OPENAI_API_KEY", "LLM validation (--llm)"),
        ("APOLLO_API_KEY", "Apollo enrichment (--enrich)"),
        ("PERPLEXITY_API_KEY", "Perplexity enrichment (--enrich)"),
    ]
    missing = []
    for name, purpose in keys:
        value = os.getenv(name)
        if value:
            click.echo(f"  {name:<20} {_mask(value)}  {purpose}")
        else:
            click.echo(f"  {name:<20} NOT SET   {purpose}")
            missing.append(name)

    unavailable = []
    if "APIFY_API_KEY" in missing:
        unavailable.append("linkedin")
    if "SERPER_API_KEY" in missing:
        unavailable += ["google", "kaggle"]

    if unavailable:
        click.echo(f"\nUnavailable sources: {', '.join(unavailable)}")
    else:
        click.echo("\nAll sources available.")


# =============================================================================
# SAVED SEARCHES
# =============================================================================


@main.group()
def saved() -> None:
    """Manage saved searches."""
    pass


@saved.command("list")
def saved_list() -> None:
    """List all saved searches."""
    from .saved import list_searches

    searches = list_searches()
    if not searches:
        click.echo("No saved searches. Create one with: talentscout saved save")
        return

    click.echo(f"\nSaved Searches ({len(searches)})\n")
    click.echo(f"{'Slug':<25} {'Sources':<20} {'Query'}")
    click.echo("-" * 70)
    for s in searches:
        query_preview = s.query[:40] + "..." if len(s.query) > 40 else s.query
        sources = ",".join(s.sources) if len(s.sources) < len(ALL_PLATFORMS) else "all"
        click.echo(f"{s.slug:<25} {sources:<20} {query_preview}")


@saved.command("show")
@click.argument("slug")
def saved_show(slug: str) -> None:
    """Show a saved search."""
    import yaml

    from .saved import load_search

    try:
        s = load_search(slug)
    except FileNotFoundError:
        click.echo(f"Saved search not found: {slug}", err=True)
        sys.exit(1)

    click.echo(yaml.dump(s.model_dump(mode="json", exclude_none=True), sort_keys=False))


@saved.command("save")
@click.argument("slug")
@click.argument("query")
@click.option("--name", default="", help="Human-readable name")
@click.option("--source", "-s", "sources", multiple=True, type=click.Choice(ALL_PLATFORMS))
@click.option("--location", "-l", default=None)
@click.option("--budget", "-b", type=float, default=60.0)
@click.option("--min-results", "-n", type=int, default=10)
def saved_save(
    slug: str,
    query: str,
    name: str,
    sources: tuple[str, ...],
    location: str | None,
    budget: float,
    min_results: int,
) -> None:
    """Save QUERY under SLUG."""
    from pydantic import ValidationError

    from .saved import SavedSearch, save_search

    try:
        search_def = SavedSearch(
            slug=slug,
            name=name or slug.replace("-", " ").replace("_", " ").title(),
            query=query,
            location=location,
            sources=list(sources) or list(ALL_PLATFORMS),
            time_budget_seconds=budget,
            minimum_results=min_results,
        )
    except ValidationError as e:
        click.echo(f"Invalid saved search: {e}", err=True)
        sys.exit(1)

    path = save_search(search_def)
    click.echo(f"Saved: {path}")


@saved.command("run")
@click.argument("slug")
@click.option("--output", "-o", type=click.Path(), default="runs", help="Output directory")
@click.option("--mock", is_flag=True, help="Use built-in sample sources (no network)")
def saved_run(slug: str, output: str, mock: bool) -> None:
    """Run a saved search."""
    from .saved import load_search, saved_search_to_kwargs

    try:
        s = load_search(slug)
    except FileNotFoundError:
        click.echo(f"Saved search not found: {slug}", err=True)
        click.echo("Use 'talentscout saved list' to see available searches.", err=True)
        sys.exit(1)

    click.echo(f"[TalentScout] Running saved search: {s.name or s.slug}")
    kwargs = saved_search_to_kwargs(s)
    kwargs["mock"] = mock
    _run(kwargs, output)


@saved.command("delete")
@click.argument("slug")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def saved_delete(slug: str, yes: bool) -> None:
    """Delete a saved search."""
    from .saved import delete_search, load_search

    try:
        s = load_search(slug)
    except FileNotFoundError:
        click.echo(f"Saved search not found: {slug}", err=True)
        sys.exit(1)

    if not yes:
        click.confirm(f"Delete saved search '{s.name or s.slug}'?", abort=True)

    if delete_search(slug):
        click.echo(f"Deleted: {slug}")
    else:
        click.echo(f"Failed to delete: {slug}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
