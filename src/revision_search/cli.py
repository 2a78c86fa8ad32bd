"""Command line interface for Revision Search."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.text import Text

from . import __version__
from .admission import exclude_filter
from .config import ConfigManager, SearchConfig
from .errors import RevisionSearchError
from .models import MatchKind, SearchOptions, SearchResponse, SearchResult
from .search import RevisionSearcher
from .utils.exception_logger import ExceptionLogger
from .utils.git_runner import is_git_repository

console = Console(highlight=False)

MATCH_STYLE = "bold red"


@click.group()
@click.option("--config", "-c", type=click.Path(exists=False), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="revision-search")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Search a git repository as it existed at a given revision.

    \b
    EXAMPLES:
      revision-search search . HEAD~3 "parse_config"
      revision-search search . feature --base main -i "todo"
      revision-search search . v1.2.0 -E "def \\w+_handler" -C 2

    \b
    CONFIGURATION:
      Config file: .revision-search/config.json (created by 'init')

    Searching checks out the revision in the repository's working tree.
    Do not run two searches against the same repository at once.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    ExceptionLogger.initialize(Path.cwd())

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    if config:
        ctx.obj["config_manager"] = ConfigManager(Path(config))
    else:
        ctx.obj["config_manager"] = ConfigManager.create_with_backtrack()


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx, force: bool):
    """Write a default configuration file."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    if config_manager.config_path.exists() and not force:
        console.print(
            f"❌ Config already exists: {config_manager.config_path} (use --force)",
            style="red",
        )
        sys.exit(1)

    config_manager.save(SearchConfig())
    console.print(f"✅ Created {config_manager.config_path}", style="green")


@cli.command()
@click.argument("repository", type=click.Path(exists=True, file_okay=False))
@click.argument("revision")
@click.argument("query")
@click.option(
    "--base",
    "base_revision",
    default="",
    help="Only search files changed between this revision and REVISION",
)
@click.option("--ignore-case", "-i", is_flag=True, help="Case-insensitive search")
@click.option("--regex", "-E", is_flag=True, help="Treat QUERY as a regular expression")
@click.option(
    "--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum results"
)
@click.option(
    "--context",
    "-C",
    "context_lines",
    type=click.IntRange(min=0),
    default=None,
    help="Lines of context around content matches",
)
@click.option("--no-path", is_flag=True, help="Do not match file paths")
@click.option("--no-content", is_flag=True, help="Do not match file contents")
@click.option(
    "--exclude",
    "-x",
    multiple=True,
    help="gitwildmatch pattern of paths to skip (repeatable)",
)
@click.option("--json", "json_output", is_flag=True, help="Print results as JSON")
@click.pass_context
def search(
    ctx,
    repository: str,
    revision: str,
    query: str,
    base_revision: str,
    ignore_case: bool,
    regex: bool,
    limit: Optional[int],
    context_lines: Optional[int],
    no_path: bool,
    no_content: bool,
    exclude: Tuple[str, ...],
    json_output: bool,
):
    """Search REPOSITORY at REVISION for QUERY in paths and file contents."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    try:
        config = config_manager.get_config()
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    repo_path = Path(repository)
    if not is_git_repository(repo_path):
        console.print(f"❌ Not a git repository: {repo_path}", style="red")
        sys.exit(1)

    patterns = list(config.exclude_patterns) + list(exclude)
    options = SearchOptions.from_config(
        config,
        base_revision=base_revision,
        case_sensitive=False if ignore_case else None,
        regex=True if regex else None,
        limit=limit,
        context_lines=context_lines,
        search_path=not no_path,
        search_content=not no_content,
        file_filter=exclude_filter(patterns) if patterns else None,
    )

    try:
        response = RevisionSearcher(config=config).search(
            repo_path, revision, query, options
        )
    except RevisionSearchError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "results": [r.to_dict() for r in response.results],
                    "total_match_count": response.total_match_count,
                    "truncated": response.truncated,
                },
                indent=2,
            )
        )
        return

    display_results(response)


def highlight_snippet(result: SearchResult) -> Text:
    """Render a result's snippet with its match spans highlighted."""
    text = Text(result.snippet)
    for span in result.match_spans:
        text.stylize(MATCH_STYLE, span.start, span.end)
    return text


def display_results(response: SearchResponse) -> None:
    """Print results grep-style: ``path:line: text``, context as ``path-line-``."""
    if not response.results:
        console.print("No matches found", style="yellow")
        return

    for result in response.results:
        if result.kind is MatchKind.PATH:
            console.print(Text("📄 ").append_text(highlight_snippet(result)))
            continue

        for line in result.context_before:
            console.print(
                Text(f"{result.path}-{line.line_number}- {line.text}", style="dim")
            )
        prefix = Text(f"{result.path}:{result.line_number}: ", style="cyan")
        console.print(prefix.append_text(highlight_snippet(result)))
        for line in result.context_after:
            console.print(
                Text(f"{result.path}-{line.line_number}- {line.text}", style="dim")
            )

    summary = f"\n{response.total_match_count} matches"
    if response.truncated:
        summary += f" (limit reached, {len(response.results)} shown)"
    console.print(summary)


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
