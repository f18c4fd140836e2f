"""Resilient provider client shared by every AI backend.

All providers share the same call algorithm:
    call() → candidate_models()            ← one model, or a fallback list
           → call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement:
  - build_request: turn (instruction, rules, diff) into the provider's JSON body
  - candidate_models: which models to try, in order
  - _call_api: make one raw attempt and return the decoded JSON response

A single attempt signals the retry loop through two exceptions:
RetryableError (network error, timeout, HTTP 429/500/503) is retried with
exponential backoff; ProviderError is terminal and fails the model at once.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, TypeVar

import requests

if TYPE_CHECKING:
    from codeguardian_core.config import ReviewConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ISSUE_FIELDS = ("id", "path", "line", "message", "suggestion")

ISSUES_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": list(ISSUE_FIELDS),
                "properties": {
                    "id": {"type": "string"},
                    "path": {"type": "string"},
                    "line": {"type": "integer"},
                    "message": {"type": "string"},
                    "suggestion": {"type": "string"},
                },
            },
        },
    },
    "required": ["issues"],
}


class ProviderError(Exception):
    """Terminal failure of a provider call. Not retried."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableError(ProviderError):
    """Transient failure of a single attempt: the retry loop tries again."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    retryable_statuses: tuple[int, ...] = (429, 500, 503)

    @classmethod
    def from_config(cls, config: ReviewConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            multiplier=config.retry_backoff_multiplier,
            retryable_statuses=tuple(config.retryable_statuses),
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)


@dataclass
class ProviderResponse:
    data: dict
    model_used: str
    # (model, reason) for every model that failed before model_used succeeded.
    failures: list[tuple[str, str]] = field(default_factory=list)


def call_with_retry(
    attempt: Callable[[], T],
    policy: RetryPolicy,
    max_attempts: int | None = None,
    label: str = "request",
) -> T:
    """Run attempt() until it succeeds, raises a terminal error, or the budget runs out."""
    attempts = max(1, max_attempts or policy.max_attempts)
    last_error: RetryableError | None = None
    for n in range(1, attempts + 1):
        try:
            return attempt()
        except RetryableError as e:
            last_error = e
            if n < attempts:
                delay = policy.delay(n)
                logger.warning("%s: attempt %d/%d failed: %s. Retrying in %.1fs...", label, n, attempts, e, delay)
                time.sleep(delay)
    raise ProviderError(
        f"Failed after {attempts} attempts. Last error: {last_error}",
        status_code=last_error.status_code if last_error else None,
    ) from last_error


def post_json(
    session: requests.Session,
    url: str,
    payload: dict,
    timeout: float,
    retryable_statuses: tuple[int, ...],
    headers: dict | None = None,
) -> dict:
    """Make one POST attempt and classify the outcome for call_with_retry."""
    try:
        response = session.post(url, json=payload, headers=headers, timeout=timeout)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise RetryableError(f"{e.__class__.__name__}: {e}") from e
    except requests.RequestException as e:
        raise ProviderError(str(e)) from e

    if not response.ok:
        message = f"HTTP {response.status_code}: {response.text[:500]}"
        if response.status_code in retryable_statuses:
            raise RetryableError(message, status_code=response.status_code)
        raise ProviderError(message, status_code=response.status_code)

    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"Response is not valid JSON: {response.text[:200]}") from e


def build_prompt(instruction: str, rules: str, diff: str) -> str:
    return f"{instruction}\n\nRules:\n{rules}\n\nDIFF:\n{diff}"


class BaseProvider(ABC):
    NAME: str = ""

    def __init__(self, config: ReviewConfig):
        self.config = config
        self.policy = RetryPolicy.from_config(config)

    # ------------------------------------------------------------------ #
    # Abstract: implemented by each provider                            #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def build_request(self, instruction: str, rules: str, diff: str) -> dict:
        """Return the provider-shaped request body. Must be deterministic."""

    @abstractmethod
    def candidate_models(self, payload: dict) -> list[str]:
        """Models to try, in priority order."""

    @abstractmethod
    def _call_api(self, model: str, payload: dict) -> dict:
        """Make a single attempt against one model and return the decoded response.

        Raise RetryableError for transient failures and ProviderError for
        everything else; call() handles retries, fallback and logging.
        """

    def attempts_per_model(self, models: list[str]) -> int:
        return self.policy.max_attempts

    # ------------------------------------------------------------------ #
    # Shared implementation                                               #
    # ------------------------------------------------------------------ #

    def call(self, payload: dict) -> ProviderResponse:
        self.config.require_api_key()
        models = self.candidate_models(payload)
        attempts = self.attempts_per_model(models)
        failures: list[tuple[str, str]] = []

        for model in models:
            logger.info("Trying model: %s", model)
            try:
                data = call_with_retry(
                    lambda: self._call_api(model, payload),
                    self.policy,
                    max_attempts=attempts,
                    label=model,
                )
            except ProviderError as e:
                logger.warning("Model %s failed: %s", model, e)
                failures.append((model, str(e)))
                continue
            logger.info("Successfully used model: %s", model)
            return ProviderResponse(data=data, model_used=model, failures=failures)

        summary = "; ".join(f"{model}: {reason}" for model, reason in failures)
        raise ProviderError(f"All {self.NAME} models failed. Errors: {summary}")

    def close(self) -> None:
        pass
