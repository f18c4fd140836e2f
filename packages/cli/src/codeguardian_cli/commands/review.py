"""review command — run the whole review pipeline for the current pull request."""

from __future__ import annotations

import click
from rich.console import Console

from codeguardian_cli.errors import handle_errors
from codeguardian_core.reviewer import PostingStats, ReviewSummary, run_review

console = Console()


def print_posting_stats(stats: PostingStats, max_comments: int) -> None:
    console.print("\n[green]Inline comment posting completed:[/green]")
    console.print(f"   - Posted: {stats.posted}")
    console.print(f"   - Skipped (invalid): {stats.skipped}")
    console.print(f"   - Failed: {stats.failed}")
    if stats.truncated:
        console.print(f"   [yellow]Limited to {max_comments} comments ({stats.truncated} not posted)[/yellow]")


def _print_summary(summary: ReviewSummary) -> None:
    console.print("\n[bold green]AI code review completed successfully[/bold green]")
    console.print(f"Model used: {summary.model_used}")
    console.print(f"Issues found: {len(summary.issues)}")
    console.print(f"Diff size: {summary.raw_diff_len} chars")


@click.command("review")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print review comments without posting to GitHub.",
)
@click.pass_context
@handle_errors("AI code review")
def review_cmd(ctx, shadow: bool):
    """Review the diff between BASE_SHA and HEAD_SHA and comment on the PR.

    \b
    Required environment variables:
      AI_API_KEY           Gemini API key (default provider)
      OPENAI_API_KEY       Required with --provider openai
      GITHUB_TOKEN         GitHub token (or an existing `gh auth login` session)
      GITHUB_EVENT_PATH    pull_request event payload (set by GitHub Actions)
    """
    config = ctx.obj["config"]

    summary = run_review(config, shadow=shadow)
    if summary is None:
        console.print("Nothing to review.")
        return

    if summary.stats is not None:
        print_posting_stats(summary.stats, config.max_inline_comments)
    _print_summary(summary)
