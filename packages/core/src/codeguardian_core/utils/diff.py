from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class DiffStats:
    text: str
    raw_len: int

    @property
    def trimmed_len(self) -> int:
        return len(self.text)

    @property
    def empty(self) -> bool:
        return not self.text


def compute_diff(base_sha: str | None, head_sha: str | None, unified_lines: int = 0, max_chars: int = 150_000) -> DiffStats:
    """Return the three-dot diff between base and head, trimmed to max_chars.

    A missing SHA or a failing git call yields an empty diff: there is then
    nothing to review, which is not an error.
    """
    if not base_sha or not head_sha:
        logger.warning("No base/head SHA provided, skipping diff computation.")
        return DiffStats(text="", raw_len=0)

    try:
        result = subprocess.run(
            ["git", "diff", f"--unified={unified_lines}", f"{base_sha}...{head_sha}"],
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=True,
        )
        raw = result.stdout
    except (FileNotFoundError, subprocess.CalledProcessError) as e:
        logger.warning("git diff failed, using empty diff: %s", getattr(e, "stderr", None) or e)
        raw = ""

    return DiffStats(text=raw[:max_chars], raw_len=len(raw))
