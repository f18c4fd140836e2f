"""Core review pipeline: diff → request → provider call → parse → inline comments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

from rich.console import Console
from rich.markup import escape

from codeguardian_core.config import ReviewConfig, load_review_inputs
from codeguardian_core.formatting import format_issue_comment, format_markdown_summary
from codeguardian_core.gh.pull_request import InlineCommenter, load_pull_request_ref, open_commenter
from codeguardian_core.providers.base import BaseProvider
from codeguardian_core.providers.gemini import GeminiProvider
from codeguardian_core.providers.openai import OpenAIProvider
from codeguardian_core.response import ParseResult, extract_response_text, parse_review_result
from codeguardian_core.utils.diff import DiffStats, compute_diff
from codeguardian_core.utils.files import read_text_if_exists, write_json, write_text

console = Console()
logger = logging.getLogger(__name__)

DIFF_FILE = "diff.trimmed"
REQUEST_FILE = "request.json"
RESPONSE_FILE = "response.json"
RAW_TEXT_FILE = "ai_raw_text.txt"
RESULT_FILE = "ai_result.json"
SUMMARY_FILE = "comment.md"


@dataclass
class PostingStats:
    posted: int = 0
    skipped: int = 0  # invalid path/line
    failed: int = 0  # rejected by GitHub, e.g. line not part of the diff
    total: int = 0  # issues received, before validation and the cap
    truncated: int = 0  # valid issues dropped by the cap


@dataclass
class ReviewSummary:
    """What a completed run produced; returned by run_review for the CLI to report."""

    model_used: str
    raw_diff_len: int
    result: dict
    stats: PostingStats | None = None  # None in shadow mode
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def issues(self) -> list:
        return self.result.get("issues", [])


def get_provider(config: ReviewConfig) -> BaseProvider:
    if config.provider == "gemini":
        return GeminiProvider(config)
    if config.provider == "openai":
        return OpenAIProvider(config)
    raise ValueError(f"Unknown provider: {config.provider!r}. Choose 'gemini' or 'openai'.")


def is_valid_issue(issue) -> bool:
    """An issue can be posted only with a non-empty path and a positive integer line."""
    if not isinstance(issue, dict):
        return False
    path, line = issue.get("path"), issue.get("line")
    return isinstance(path, str) and bool(path) and isinstance(line, int) and not isinstance(line, bool) and line > 0


# ---------------------------------------------------------------------- #
# Stages                                                                  #
# ---------------------------------------------------------------------- #


def prepare_diff(config: ReviewConfig) -> DiffStats:
    stats = compute_diff(config.base_sha, config.head_sha, config.diff_unified_lines, config.diff_max_chars)
    write_text(config.artifact(DIFF_FILE), stats.text)
    console.print(f"Diff size: {stats.raw_len} chars (trimmed to {stats.trimmed_len})")
    return stats


def build_request(config: ReviewConfig, provider: BaseProvider) -> dict:
    """Build the provider request from the instruction, rules and trimmed diff files."""
    instruction, rules = load_review_inputs(config)
    diff_path = config.artifact(DIFF_FILE)
    if not diff_path.exists():
        raise FileNotFoundError(f"Required file not found: {diff_path}")
    diff = read_text_if_exists(diff_path)
    if not diff:
        console.print("[yellow]No diff content found, creating empty request.[/yellow]")

    payload = provider.build_request(instruction, rules, diff)
    write_json(config.artifact(REQUEST_FILE), payload, pretty=False)
    console.print(f"[green]{REQUEST_FILE} built successfully[/green]")
    return payload


def call_provider(
    config: ReviewConfig, provider: BaseProvider, payload: dict, raw_diff_len: int
) -> tuple[ParseResult, str]:
    """Call the provider, then extract and parse its answer. Writes every intermediate artifact."""
    response = provider.call(payload)
    console.print(f"[green]Successfully used model: {response.model_used}[/green]")
    write_json(config.artifact(RESPONSE_FILE), response.data)

    text = extract_response_text(response.data)
    if not text:
        logger.warning("No text extracted from response, using empty object.")
        text = "{}"
    write_text(config.artifact(RAW_TEXT_FILE), text)

    parsed = parse_review_result(text)
    write_json(config.artifact(RESULT_FILE), parsed.value)
    write_text(
        config.artifact(SUMMARY_FILE),
        format_markdown_summary(
            parsed.value, response.model_used, raw_diff_len, config.docs_url, config.rule_titles
        ),
    )

    console.print(f"Found {len(parsed.issues)} issue(s).")
    for i, issue in enumerate(parsed.issues, 1):
        if isinstance(issue, dict):
            message = str(issue.get("message") or "")
            preview = message[:60] + ("..." if len(message) > 60 else "")
            console.print(escape(f"  {i}. [{issue.get('id')}] {issue.get('path')}:{issue.get('line')} - {preview}"))
    return parsed, response.model_used


def post_inline_comments(
    commenter: InlineCommenter,
    issues: list,
    max_comments: int = 30,
    docs_url: str | None = None,
    rule_titles: Optional[Mapping[str, str]] = None,
) -> PostingStats:
    """Post each valid issue as an inline comment, at most max_comments, in order.

    A failure on one comment does not stop the rest: partial success is normal
    when the model points at lines that are not part of the diff. Anything
    raised while formatting or posting a single comment counts as failed.
    """
    stats = PostingStats(total=len(issues))
    valid = []
    for issue in issues:
        if is_valid_issue(issue):
            valid.append(issue)
        else:
            logger.warning("Skipping invalid issue: %r", issue)
            stats.skipped += 1

    to_post = valid[:max_comments]
    stats.truncated = len(valid) - len(to_post)
    if stats.truncated:
        console.print(f"[yellow]Limiting to first {max_comments} inline comments.[/yellow]")

    for issue in to_post:
        try:
            commenter.post(issue["path"], issue["line"], format_issue_comment(issue, docs_url, rule_titles))
        except Exception as e:
            # Isolated per comment: one bad issue never aborts the batch.
            logger.warning("Failed to post comment for %s at %s:%d: %s", issue.get("id"), issue["path"], issue["line"], e)
            stats.failed += 1
            continue
        stats.posted += 1
        console.print(f"  Posted comment for {issue.get('id')} at {issue['path']}:{issue['line']}")

    return stats


def print_shadow_comments(
    issues: list, docs_url: str | None = None, rule_titles: Optional[Mapping[str, str]] = None
) -> None:
    """Print the comments that would be posted, without touching GitHub."""
    valid = [i for i in issues if is_valid_issue(i)]
    if not valid:
        console.print("[yellow]Shadow mode: no comments generated.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review — {len(valid)} comment(s) (not posted)[/bold]\n")
    for issue in valid:
        console.print(f"[bold cyan]{issue['path']}[/bold cyan]  line [bold]{issue['line']}[/bold]")
        console.print(escape(f"  {format_issue_comment(issue, docs_url, rule_titles)}"))
        console.print()


def run_review(
    config: ReviewConfig,
    shadow: bool = False,
    commenter: InlineCommenter | None = None,
) -> ReviewSummary | None:
    """Run the whole pipeline and return a ReviewSummary.

    Returns None when the diff is empty: there is nothing to review.
    Every configuration problem surfaces before the first network call.
    """
    diff = prepare_diff(config)
    if diff.empty:
        console.print("[yellow]No changes to review (empty diff).[/yellow]")
        return None

    load_review_inputs(config)
    config.require_api_key()

    ref = token = None
    if not shadow and commenter is None:
        token = config.require_github_token()
        ref = load_pull_request_ref(config.github_event_path, config.github_repository)

    provider = get_provider(config)
    try:
        payload = build_request(config, provider)
        parsed, model_used = call_provider(config, provider, payload, diff.raw_len)
    finally:
        provider.close()

    summary = ReviewSummary(model_used=model_used, raw_diff_len=diff.raw_len, result=parsed.value)
    if shadow:
        print_shadow_comments(parsed.issues, config.docs_url, config.rule_titles)
        return summary

    if not parsed.issues:
        console.print("No issues to post.")
        summary.stats = PostingStats()
        return summary

    if commenter is None:
        console.print(f"Posting inline comments to {ref}")
        commenter = open_commenter(ref, token)
    summary.stats = post_inline_comments(
        commenter, parsed.issues, config.max_inline_comments, config.docs_url, config.rule_titles
    )
    return summary
