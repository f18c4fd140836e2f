from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from github import Auth, Github

from codeguardian_core.config import ConfigError


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int
    head_sha: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.full_name}#{self.number} @ {self.head_sha[:7]}"


def load_pull_request_ref(event_path: str | None, repository: str = "") -> PullRequestRef:
    """Resolve the PR under review from a GitHub Actions pull_request event payload.

    owner/repo come from the PR's base repository when the payload has it,
    otherwise from GITHUB_REPOSITORY ("owner/name").
    """
    if not event_path:
        raise ConfigError("GITHUB_EVENT_PATH is not set")
    path = Path(event_path)
    if not path.exists():
        raise FileNotFoundError(f"GitHub event file not found: {event_path}")
    try:
        event = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse JSON from {event_path}: {e}") from e

    pull_request = event.get("pull_request") or {}
    base_repo = (pull_request.get("base") or {}).get("repo") or {}
    owner = (base_repo.get("owner") or {}).get("login")
    repo = base_repo.get("name")
    if not owner or not repo:
        owner, _, repo = repository.partition("/")

    number = pull_request.get("number")
    head_sha = (pull_request.get("head") or {}).get("sha")
    if not (owner and repo and number and head_sha):
        raise ConfigError(
            "Cannot resolve GitHub context (owner/repo/pull_number/headSha). "
            "Ensure this runs in a pull_request event context."
        )
    return PullRequestRef(owner=owner, repo=repo, number=int(number), head_sha=head_sha)


def get_repo(full_name: str, token: str):
    return Github(auth=Auth.Token(token)).get_repo(full_name)


class InlineCommenter:
    """Posts single-line review comments on one PR, all anchored to the head commit."""

    def __init__(self, pr, commit):
        self.pr = pr
        self.commit = commit

    def post(self, path: str, line: int, body: str, side: str = "RIGHT") -> None:
        # POST /repos/{owner}/{repo}/pulls/{n}/comments {body, commit_id, path, line, side}
        self.pr.create_review_comment(body=body, commit=self.commit, path=path, line=line, side=side)


def open_commenter(ref: PullRequestRef, token: str, repo_obj=None) -> InlineCommenter:
    repo = repo_obj if repo_obj is not None else get_repo(ref.full_name, token)
    return InlineCommenter(repo.get_pull(ref.number), repo.get_commit(ref.head_sha))
