from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

GEMINI_FALLBACK_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash-exp",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
)

# Env var -> (config field, parser). Applied after the YAML file.
_ENV_OVERRIDES = {
    "CODEGUARDIAN_PROVIDER": ("provider", str),
    "MODEL": ("model", str),
    "FALLBACK_MODELS": ("fallback_models", lambda v: tuple(m.strip() for m in v.split(",") if m.strip())),
    "GEMINI_API_URL": ("gemini_api_url", str),
    "OPENAI_BASE_URL": ("openai_base_url", str),
    "GITHUB_REPOSITORY": ("github_repository", str),
    "GITHUB_EVENT_PATH": ("github_event_path", str),
    "DIFF_MAX_CHARS": ("diff_max_chars", int),
    "MAX_INLINE": ("max_inline_comments", int),
    "DIFF_UNIFIED_LINES": ("diff_unified_lines", int),
    "RETRY_MAX_ATTEMPTS": ("retry_max_attempts", int),
    "RETRY_INITIAL_DELAY_MS": ("retry_initial_delay", lambda v: int(v) / 1000),
    "RETRY_MAX_DELAY_MS": ("retry_max_delay", lambda v: int(v) / 1000),
    "RETRY_BACKOFF_MULTIPLIER": ("retry_backoff_multiplier", float),
    "API_TIMEOUT_MS": ("timeout", lambda v: int(v) / 1000),
}


class ConfigError(ValueError):
    """Missing or malformed configuration. Always fatal, raised before any network call."""


@dataclass(frozen=True)
class ReviewConfig:
    """Everything a review run needs, built once by load_config() and passed explicitly."""

    provider: str = "gemini"  # "gemini" | "openai"
    model: Optional[str] = None  # None = provider default / head of the fallback list
    fallback_models: tuple[str, ...] = GEMINI_FALLBACK_MODELS
    models_attempts: int = 2  # per-model attempt budget while walking the fallback list
    gemini_api_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    openai_base_url: Optional[str] = None

    retry_max_attempts: int = 5
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0
    retryable_statuses: tuple[int, ...] = (429, 500, 503)
    timeout: float = 60.0

    diff_max_chars: int = 150_000
    diff_unified_lines: int = 0
    max_inline_comments: int = 30
    base_sha: Optional[str] = None
    head_sha: Optional[str] = None

    instruction_path: str = ".ai/ai-reviewer-instruction.md"
    rules_path: str = ".ai/review-rules.md"
    artifacts_dir: str = "."
    docs_url: Optional[str] = None
    # Rule id -> heading title on the docs page, for per-rule deep links.
    rule_titles: dict = field(default_factory=dict)

    github_repository: str = ""
    github_event_path: Optional[str] = None
    github_token: Optional[str] = field(default=None, repr=False)
    gemini_api_key: Optional[str] = field(default=None, repr=False)
    openai_api_key: Optional[str] = field(default=None, repr=False)
    debug: bool = False

    @property
    def api_key(self) -> Optional[str]:
        return self.openai_api_key if self.provider == "openai" else self.gemini_api_key

    @property
    def api_key_env(self) -> str:
        return "OPENAI_API_KEY" if self.provider == "openai" else "AI_API_KEY"

    def artifact(self, name: str) -> Path:
        return Path(self.artifacts_dir) / name

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError(f"Missing required environment variables:\n  - {self.api_key_env}")
        return self.api_key

    def require_github_token(self) -> str:
        if not self.github_token:
            raise ConfigError(
                "Missing required environment variables:\n  - GITHUB_TOKEN\n"
                "Set GITHUB_TOKEN or run `gh auth login` first."
            )
        return self.github_token


def resolve_github_token() -> str | None:
    """Return GITHUB_TOKEN, else the token of an existing `gh auth login` session, else None."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode == 0 and result.stdout.strip():
        logger.debug("Using GitHub token from the gh CLI session.")
        return result.stdout.strip()
    return None


def _env_overrides() -> dict:
    overrides: dict = {}
    for env_name, (key, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue
        try:
            overrides[key] = parse(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a valid value.", env_name, raw)

    base_sha = os.environ.get("BASE_SHA") or os.environ.get("GITHUB_BASE_REF")
    head_sha = os.environ.get("HEAD_SHA") or os.environ.get("GITHUB_SHA")
    if base_sha:
        overrides["base_sha"] = base_sha
    if head_sha:
        overrides["head_sha"] = head_sha
    if os.environ.get("DEBUG"):
        overrides["debug"] = True
    return overrides


def _coerce(key: str, value):
    # YAML lists arrive as lists; the dataclass is frozen and keeps tuples.
    if key in ("fallback_models", "retryable_statuses") and isinstance(value, list):
        return tuple(value)
    if key == "rule_titles" and value is None:
        return {}
    return value


def load_config(config_path: str = ".codeguardian.yml", cli_overrides: Optional[dict] = None) -> ReviewConfig:
    """
    Build the run configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .codeguardian.yml in the current directory
      3. Environment variables
      4. CLI argument overrides (None values are ignored)
    """
    known = {f.name for f in fields(ReviewConfig)}
    values: dict = {}

    path = Path(config_path)
    if path.exists():
        with open(path, encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        for key, value in file_config.items():
            if key not in known:
                logger.warning("Unknown key %r in %s, ignoring.", key, config_path)
                continue
            values[key] = _coerce(key, value)

    values.update(_env_overrides())

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                values[key] = _coerce(key, value)

    # Credentials only ever come from the environment.
    values["github_token"] = resolve_github_token()
    values["gemini_api_key"] = os.environ.get("AI_API_KEY")
    values["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    config = replace(ReviewConfig(), **values)
    if config.provider not in ("gemini", "openai"):
        raise ConfigError(f"Unknown provider: {config.provider!r}. Choose 'gemini' or 'openai'.")
    for name in ("retry_max_attempts", "models_attempts"):
        if getattr(config, name) < 1:
            raise ConfigError(f"{name} must be at least 1, got {getattr(config, name)}.")
    if not isinstance(config.rule_titles, dict):
        raise ConfigError("rule_titles must be a mapping of rule id to title.")
    return config


def load_review_inputs(config: ReviewConfig) -> tuple[str, str]:
    """Return (instruction, rules) text. Both files are required."""
    missing = [p for p in (config.instruction_path, config.rules_path) if not Path(p).exists()]
    if missing:
        raise FileNotFoundError("Required files are missing:\n  - " + "\n  - ".join(missing))
    return (
        Path(config.instruction_path).read_text(encoding="utf-8"),
        Path(config.rules_path).read_text(encoding="utf-8"),
    )
