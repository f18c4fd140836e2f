"""Markdown rendering for inline comments and the run summary."""

from __future__ import annotations

import json
from typing import Mapping, Optional

_SIGNATURE = "CodeGuardian AI"

# "—" percent-encoded, as rendered in the heading anchors of the rules page.
_ANCHOR_SEPARATOR = "-%E2%80%94-"


def rule_doc_url(rule_id: str, docs_url: str | None, rule_titles: Optional[Mapping[str, str]] = None) -> str | None:
    """Deep link to a rule's section of the docs page; the page itself for unknown rules."""
    if not docs_url:
        return None
    title = (rule_titles or {}).get(rule_id)
    if not title:
        return docs_url
    return f"{docs_url}#{rule_id}{_ANCHOR_SEPARATOR}{str(title).strip().replace(' ', '-')}"


def rule_link(rule_id: str, docs_url: str | None = None, rule_titles: Optional[Mapping[str, str]] = None) -> str:
    url = rule_doc_url(rule_id, docs_url, rule_titles)
    if url:
        return f"[{rule_id}]({url})"
    return f"`{rule_id}`"


def _footer(docs_url: str | None, label: str) -> str:
    if docs_url:
        return f"<sub>**{_SIGNATURE}** • [{label} →]({docs_url})</sub>"
    return f"<sub>**{_SIGNATURE}**</sub>"


def _text(value) -> str:
    # Models occasionally return objects where strings are expected.
    if value is None:
        return ""
    return value if isinstance(value, str) else json.dumps(value, default=str)


def format_issue_comment(
    issue: dict, docs_url: str | None = None, rule_titles: Optional[Mapping[str, str]] = None
) -> str:
    """Render one issue as the body of an inline review comment."""
    rule_id = _text(issue.get("id")) or "issue"
    lines = [f"**{rule_link(rule_id, docs_url, rule_titles)}**", "", _text(issue.get("message"))]
    suggestion = _text(issue.get("suggestion"))
    if suggestion:
        lines += ["", f"**Suggestion:** {suggestion}"]
    lines += ["", "---", _footer(docs_url, "View all rules")]
    return "\n".join(lines)


def format_markdown_summary(
    result: dict,
    model: str,
    raw_diff_len: int,
    docs_url: str | None = None,
    rule_titles: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the whole review result as the markdown written to comment.md.

    Entries of ``issues`` that are not objects are left out of the issue list;
    they still show up in the raw JSON block.
    """
    issues = result.get("issues") if isinstance(result, dict) else None
    issues = [i for i in issues or [] if isinstance(i, dict)]
    lines = [
        f"## {_SIGNATURE} Review",
        "",
        f"<sub>Powered by {model} • Analyzed {raw_diff_len} characters</sub>",
        "",
    ]

    if issues:
        lines += [f"### Found {len(issues)} issue{'s' if len(issues) > 1 else ''}", ""]
        for i, issue in enumerate(issues, 1):
            rule_id = _text(issue.get("id")) or "issue"
            lines += [
                f"#### {i}. {rule_link(rule_id, docs_url, rule_titles)}",
                "",
                f"`{issue.get('path')}:{issue.get('line')}`",
                "",
            ]
            message = _text(issue.get("message"))
            if message:
                lines += [message, ""]
            suggestion = _text(issue.get("suggestion"))
            if suggestion:
                lines += [f"**Suggestion:** {suggestion}", ""]
    else:
        lines += ["### ✓ No issues found", "", "All code quality checks passed.", ""]

    lines += [
        "---",
        "",
        "<details>",
        "<summary>View detailed analysis</summary>",
        "",
        "```json",
        json.dumps(result, indent=2, default=str),
        "```",
        "",
        "</details>",
        "",
        _footer(docs_url, "View documentation"),
    ]
    return "\n".join(lines)
