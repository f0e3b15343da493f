"""Thin wrapper around the Anthropic Messages API used as a classification provider."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import anthropic

from llm_client import (
    PermanentProviderError,
    ProviderError,
    ProviderUnavailableError,
    TransientProviderError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-3-5-haiku-latest"


def translate_anthropic_error(exc: anthropic.AnthropicError) -> ProviderError:
    if isinstance(exc, (anthropic.RateLimitError, anthropic.APITimeoutError, anthropic.APIConnectionError)):
        return TransientProviderError(str(exc))
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code in (402, 429, 529):
            return TransientProviderError(f"{exc.status_code}: {exc}")
        if exc.status_code in (400, 401, 403, 404, 422):
            return PermanentProviderError(f"{exc.status_code}: {exc}")
        return ProviderError(f"{exc.status_code}: {exc}")
    return ProviderError(str(exc))


@dataclass
class AnthropicProvider:
    """Claude as an interchangeable classification provider.

    The system prompt goes through the API's dedicated system= parameter.
    """

    api_key: str | None
    model: str = DEFAULT_CLAUDE_MODEL
    max_tokens: int = 1024
    timeout: float = 60
    name: str = "anthropic"
    _client: anthropic.Anthropic | None = field(default=None, init=False, repr=False)

    def _get_client(self) -> anthropic.Anthropic:
        if not self.api_key:
            raise ProviderUnavailableError("ANTHROPIC_API_KEY environment variable is required")
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

        LOGGER.debug("Calling Claude model=%s max_tokens=%s", self.model, self.max_tokens)
        try:
            response = client.messages.create(**kwargs)
        except anthropic.AnthropicError as exc:
            raise translate_anthropic_error(exc) from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise TransientProviderError("Claude returned an empty response")
        return text
