"""OpenAI-compatible chat clients and prompt/response helpers for incident extraction."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from json import JSONDecodeError
from typing import Any, Protocol

import openai
from openai import OpenAI

from models import Article, IncidentType

LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60
CLASSIFIER_TEMPERATURE = float(os.getenv("CLASSIFIER_TEMPERATURE", "0.1"))
MAX_ARTICLE_CHARS = 6000

_SYSTEM_PROMPT_TEMPLATE = """You are a security incident classifier for Nigerian news.
Extract structured data about ONE new, specific violent incident from the article.

Accept ONLY articles that report a new incident of these types: {accepted_types}.
Set "is_new_incident" to false when the article is a reaction, condemnation,
rescue or release of captives, arrest, court case, retrospective analysis,
or a follow-up on an incident that was already reported.
Set "is_security_incident" to false for anything else (ordinary crime,
accidents, politics, foreign news).

Respond ONLY with a valid JSON object following the schema below. No prose, no markdown.

Required JSON schema:
{{
  "is_security_incident": <bool>,
  "is_new_incident": <bool>,
  "is_follow_up": <bool>,
  "title": "<concise incident title, max 70 chars>",
  "description": "<brief factual summary, max 200 chars>",
  "date": "<ISO date the incident happened, not the publish date>",
  "state": "<Nigerian state name or Unknown>",
  "lga": "<local government area or town, or Unknown>",
  "fatalities": <int>,
  "injuries": <int>,
  "kidnapped": <int>,
  "incident_type": "<one of: {all_types}>",
  "severity": "<one of: Low, Medium, High, Critical>"
}}"""


class ProviderError(RuntimeError):
    """The provider could not produce a usable answer; the fallback takes over."""


class TransientProviderError(ProviderError):
    """Rate limit, quota, timeout or empty response; worth retrying."""


class ProviderUnavailableError(ProviderError):
    """The provider is not configured (for example no API key)."""


class PermanentProviderError(ProviderError):
    """Bad credentials or a malformed request; retrying or falling back hides a bug."""


class ResponseParseError(ProviderError):
    """The provider answered but not with a JSON object."""


class CompletionProvider(Protocol):
    name: str

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


def build_system_prompt(accepted_types: frozenset[IncidentType] | None = None) -> str:
    accepted = accepted_types or frozenset(IncidentType)
    ordered = [t.value for t in IncidentType if t in accepted]
    return _SYSTEM_PROMPT_TEMPLATE.format(
        accepted_types=", ".join(ordered),
        all_types=", ".join(t.value for t in IncidentType),
    )


def build_user_prompt(article: Article) -> str:
    content = article.content[:MAX_ARTICLE_CHARS]
    return (
        f"Title: {article.title}\n"
        f"Published: {article.published_at.isoformat()}\n"
        f"URL: {article.url}\n\n"
        f"Content: {content or 'Not available.'}\n"
    )


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper if the model added one."""
    value = content.strip()
    if value.startswith("```json"):
        value = value[len("```json"):]
    elif value.startswith("```"):
        value = value[3:]
    if value.endswith("```"):
        value = value[:-3]
    return value.strip()


def parse_incident_json(content: str | None) -> dict[str, Any]:
    """Parse possibly noisy model output into a strict JSON object."""
    if not content or not content.strip():
        raise TransientProviderError("Provider returned an empty response")

    cleaned = strip_code_fences(content)
    try:
        parsed = json.loads(cleaned)
    except JSONDecodeError:
        parsed = _extract_first_json_object(cleaned)

    if not isinstance(parsed, dict):
        raise ResponseParseError("Expected JSON object from provider response")
    return parsed


def _extract_first_json_object(content: str) -> dict[str, Any]:
    """Extract the first decodable JSON object from an arbitrary string."""
    decoder = json.JSONDecoder()
    for index, char in enumerate(content):
        if char != "{":
            continue
        try:
            candidate, _ = decoder.raw_decode(content[index:])
        except JSONDecodeError:
            continue
        if isinstance(candidate, dict):
            return candidate
    raise ResponseParseError("Could not extract valid JSON object from provider output")


def _looks_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in ("429", "402", "rate limit", "rate-limit", "quota"))


def translate_openai_error(exc: openai.OpenAIError) -> ProviderError:
    """Map SDK exceptions onto the pipeline's provider error taxonomy."""
    if isinstance(exc, (openai.RateLimitError, openai.APITimeoutError, openai.APIConnectionError)):
        return TransientProviderError(str(exc))
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code in (402, 429) or _looks_rate_limited(str(exc)):
            return TransientProviderError(f"{exc.status_code}: {exc}")
        if exc.status_code in (400, 401, 403, 404, 422):
            return PermanentProviderError(f"{exc.status_code}: {exc}")
        return ProviderError(f"{exc.status_code}: {exc}")
    return ProviderError(str(exc))


@dataclass
class OpenAICompatibleProvider:
    """Chat-completions provider reachable through the OpenAI SDK.

    OpenRouter and Chutes expose the same API as OpenAI, so one class with a
    different base_url and key serves all three.
    """

    name: str
    api_key: str | None
    model: str
    base_url: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    temperature: float = CLASSIFIER_TEMPERATURE
    max_tokens: int = 2000
    timeout: float = REQUEST_TIMEOUT_SECONDS
    _client: OpenAI | None = field(default=None, init=False, repr=False)

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise ProviderUnavailableError(f"No API key configured for provider {self.name}")
        if self._client is None:
            # max_retries=0: retries are owned by retry.retry_with_backoff
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                default_headers=self.default_headers or None,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        LOGGER.debug("Calling %s model=%s", self.name, self.model)
        try:
            response = client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise TransientProviderError(f"Unexpected {self.name} response shape") from exc
        if not content:
            raise TransientProviderError(f"{self.name} returned an empty response")
        return content
