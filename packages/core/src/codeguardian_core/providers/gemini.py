from __future__ import annotations

import requests

from codeguardian_core.providers.base import ISSUES_SCHEMA, BaseProvider, build_prompt, post_json


class GeminiProvider(BaseProvider):
    NAME = "Gemini"

    def __init__(self, config):
        super().__init__(config)
        self.session = requests.Session()

    def build_request(self, instruction: str, rules: str, diff: str) -> dict:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": build_prompt(instruction, rules, diff)}],
                }
            ],
            "generationConfig": {
                "response_mime_type": "application/json",
                "response_schema": ISSUES_SCHEMA,
            },
        }

    def candidate_models(self, payload: dict) -> list[str]:
        # The configured model goes first, then the rest of the fallback list.
        ordered = [self.config.model] if self.config.model else []
        ordered.extend(self.config.fallback_models)
        return list(dict.fromkeys(ordered))

    def attempts_per_model(self, models: list[str]) -> int:
        # A small per-model budget so the whole list can be walked quickly.
        if len(models) > 1:
            return self.config.models_attempts
        return self.policy.max_attempts

    def _call_api(self, model: str, payload: dict) -> dict:
        # The key travels in a header, not the query string, so it never ends
        # up in exception messages that quote the URL.
        return post_json(
            self.session,
            f"{self.config.gemini_api_url.rstrip('/')}/{model}:generateContent",
            payload,
            timeout=self.config.timeout,
            retryable_statuses=self.policy.retryable_statuses,
            headers={"x-goog-api-key": self.config.require_api_key()},
        )

    def close(self) -> None:
        self.session.close()
