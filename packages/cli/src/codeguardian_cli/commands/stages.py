"""Single-stage commands for CI jobs that run the pipeline one step at a time.

Each stage reads the artifact the previous one wrote in --artifacts-dir.
"""

from __future__ import annotations

import click
from rich.console import Console

from codeguardian_cli.commands.review import print_posting_stats
from codeguardian_cli.errors import handle_errors
from codeguardian_core.gh.pull_request import load_pull_request_ref, open_commenter
from codeguardian_core.reviewer import (
    REQUEST_FILE,
    RESULT_FILE,
    build_request,
    call_provider,
    get_provider,
    post_inline_comments,
)
from codeguardian_core.utils.files import read_json

console = Console()


@click.command("build-request")
@click.pass_context
@handle_errors("Building request")
def build_request_cmd(ctx):
    """Build request.json from the instruction, rules and diff.trimmed."""
    config = ctx.obj["config"]
    provider = get_provider(config)
    try:
        build_request(config, provider)
    finally:
        provider.close()


@click.command("call")
@click.option(
    "--raw-diff-len",
    type=int,
    default=0,
    envvar="RAW_DIFF_LEN",
    help="Untrimmed diff size, shown in the summary markdown.",
)
@click.pass_context
@handle_errors("AI API call")
def call_cmd(ctx, raw_diff_len: int):
    """Send request.json to the provider and write ai_result.json and comment.md."""
    config = ctx.obj["config"]
    config.require_api_key()
    payload = read_json(config.artifact(REQUEST_FILE))

    provider = get_provider(config)
    try:
        parsed, model_used = call_provider(config, provider, payload, raw_diff_len)
    finally:
        provider.close()

    console.print(f"\n[bold green]AI API call completed[/bold green] (model: {model_used})")
    if not parsed.ok:
        console.print(f"[yellow]Response was not valid JSON ({parsed.error}); wrote an empty result.[/yellow]")


@click.command("post")
@click.pass_context
@handle_errors("Posting inline comments")
def post_cmd(ctx):
    """Post the issues in ai_result.json as inline comments on the pull request."""
    config = ctx.obj["config"]
    token = config.require_github_token()
    ref = load_pull_request_ref(config.github_event_path, config.github_repository)

    result = read_json(config.artifact(RESULT_FILE), required=False)
    issues = result.get("issues") if isinstance(result, dict) else None
    if not isinstance(issues, list) or not issues:
        console.print("No issues found to comment.")
        return

    console.print(f"Posting {len(issues)} issue(s) as inline comments to {ref}")
    stats = post_inline_comments(
        open_commenter(ref, token), issues, config.max_inline_comments, config.docs_url, config.rule_titles
    )
    print_posting_stats(stats, config.max_inline_comments)
