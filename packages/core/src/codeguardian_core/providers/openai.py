from __future__ import annotations

import copy
from functools import cached_property

from codeguardian_core.providers.base import (
    ISSUES_SCHEMA,
    BaseProvider,
    ProviderError,
    RetryableError,
)


def _strict_schema(schema: dict) -> dict:
    """OpenAI strict mode wants every object closed and every property required."""
    schema = copy.deepcopy(schema)
    if schema.get("type") == "object":
        schema["additionalProperties"] = False
        schema["required"] = list(schema.get("properties", {}))
        for key, sub in schema.get("properties", {}).items():
            schema["properties"][key] = _strict_schema(sub)
    if schema.get("type") == "array" and "items" in schema:
        schema["items"] = _strict_schema(schema["items"])
    return schema


STRICT_ISSUES_SCHEMA = _strict_schema(ISSUES_SCHEMA)


class OpenAIProvider(BaseProvider):
    NAME = "OpenAI"
    MODEL = "gpt-4o"
    # Low temperature keeps the structured output stable between runs.
    TEMPERATURE = 0.2

    @cached_property
    def client(self):
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError(
                "The 'openai' package is required for this provider. "
                "Install it with: pip install 'codeguardian[openai]'"
            )
        # SDK retries are off: call_with_retry owns the retry policy so both
        # providers retry the same status codes.
        return OpenAI(
            api_key=self.config.require_api_key(),
            base_url=self.config.openai_base_url,
            timeout=self.config.timeout,
            max_retries=0,
        )

    def build_request(self, instruction: str, rules: str, diff: str) -> dict:
        return {
            "model": self.config.model or self.MODEL,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": f"Rules:\n{rules}\n\nDIFF:\n{diff}"},
            ],
            "temperature": self.TEMPERATURE,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "code_review_issues",
                    "strict": True,
                    "schema": STRICT_ISSUES_SCHEMA,
                },
            },
        }

    def candidate_models(self, payload: dict) -> list[str]:
        return [payload.get("model") or self.MODEL]

    def _call_api(self, model: str, payload: dict) -> dict:
        # Imported here because openai is optional; __init__ already checked it.
        import openai

        try:
            completion = self.client.chat.completions.create(**{**payload, "model": model})
        except openai.APIStatusError as e:
            message = f"HTTP {e.status_code}: {e.message}"
            if e.status_code in self.policy.retryable_statuses:
                raise RetryableError(message, status_code=e.status_code) from e
            raise ProviderError(message, status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            # APITimeoutError is a subclass: timeouts count as a failed attempt.
            raise RetryableError(f"{e.__class__.__name__}: {e}") from e
        return completion.model_dump()

    def close(self) -> None:
        # Only close a client that was actually created.
        if "client" in self.__dict__:
            self.client.close()
