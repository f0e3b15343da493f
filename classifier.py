"""Article -> CandidateIncident classification with retry and rule-based fallback.

The provider is a strategy chosen by configuration (see build_provider); the
classifier owns everything around it: the acceptance policy, the retry loop,
response normalization and the deterministic fallback.
"""

from __future__ import annotations

import logging
import random
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from anthropic_client import DEFAULT_CLAUDE_MODEL, AnthropicProvider
from fallback import (
    MAX_SUMMARY_LENGTH,
    MAX_TITLE_LENGTH,
    approximate_coordinates,
    canonical_state,
    is_aftermath_report,
    is_reaction_report,
    rule_based_classify,
    truncate,
)
from keywords import DEFAULT_KEYWORDS, UNKNOWN_STATE, KeywordConfig
from llm_client import (
    CompletionProvider,
    OpenAICompatibleProvider,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
    build_system_prompt,
    build_user_prompt,
    parse_incident_json,
)
from models import Article, CandidateIncident, IncidentType, Severity
from retry import retry_with_backoff

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0

# Strictest acceptance policy: terrorism and banditry style attacks only.
STRICT_INCIDENT_TYPES: frozenset[IncidentType] = frozenset({
    IncidentType.TERRORISM,
    IncidentType.BANDITRY,
    IncidentType.UNKNOWN_GUNMEN,
})

PROVIDER_PRESETS: dict[str, dict[str, Any]] = {
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "key_env": "OPENROUTER_API_KEY",
        "model": "meta-llama/llama-3.3-70b-instruct:free",
        "headers": {
            "HTTP-Referer": "https://github.com/security-incident-pipeline",
            "X-Title": "Security Incident Pipeline",
        },
    },
    "chutes": {
        "base_url": "https://llm.chutes.ai/v1",
        "key_env": "CHUTES_API_KEY",
        "model": "MiniMaxAI/MiniMax-M2.1-TEE",
        "headers": {},
    },
    "openai": {
        "base_url": None,
        "key_env": "OPENAI_API_KEY",
        "model": "gpt-4o-mini",
        "headers": {},
    },
}


class ClassificationError(RuntimeError):
    """The article could not be classified and must be counted as an error."""


@dataclass(frozen=True, slots=True)
class ClassificationOutcome:
    candidate: CandidateIncident | None
    used_fallback: bool = False
    reason: str = ""


def is_retryable_error(exc: Exception) -> bool:
    return isinstance(exc, TransientProviderError)


def build_provider(
    name: str,
    api_keys: dict[str, str | None],
    model: str | None = None,
) -> CompletionProvider:
    """Return the provider strategy registered under name."""
    key = name.strip().lower()
    if key == "anthropic":
        return AnthropicProvider(api_key=api_keys.get("ANTHROPIC_API_KEY"), model=model or DEFAULT_CLAUDE_MODEL)

    preset = PROVIDER_PRESETS.get(key)
    if preset is None:
        known = ", ".join(sorted([*PROVIDER_PRESETS, "anthropic"]))
        raise ValueError(f"Unknown AI provider {name!r}; expected one of: {known}")
    return OpenAICompatibleProvider(
        name=key,
        api_key=api_keys.get(preset["key_env"]),
        model=model or preset["model"],
        base_url=preset["base_url"],
        default_headers=dict(preset["headers"]),
    )


def _as_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if isinstance(value, str):
        match = re.search(r"\d[\d,]*", value)
        return int(match.group(0).replace(",", "")) if match else 0
    return 0


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _coerce_enum(value: Any, enum_cls: type, default: Any) -> Any:
    text = _as_text(value).lower()
    for member in enum_cls:
        if member.value.lower() == text:
            return member
    return default


def _parse_occurred_at(value: Any, published_at: datetime) -> datetime:
    """Best-effort event date; never later than a day past publication."""
    published = published_at if published_at.tzinfo else published_at.replace(tzinfo=UTC)
    raw = _as_text(value)
    if not raw:
        return published
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return published
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    if parsed > published + timedelta(days=1):
        return published
    return parsed


class IncidentClassifier:
    """Classify one article at a time.

    classify() returns a CandidateIncident or None. Transient provider errors
    are retried with exponential backoff; when retries run out, the response
    is unparseable, or no provider is configured, the rule-based extractor is
    used instead. Permanent provider errors raise ClassificationError.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        keywords: KeywordConfig = DEFAULT_KEYWORDS,
        accepted_types: frozenset[IncidentType] = STRICT_INCIDENT_TYPES,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.provider = provider
        self.keywords = keywords
        self.accepted_types = accepted_types
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._system_prompt = build_system_prompt(accepted_types)

    def classify(self, article: Article) -> CandidateIncident | None:
        return self.classify_with_outcome(article).candidate

    def classify_with_outcome(self, article: Article) -> ClassificationOutcome:
        if is_aftermath_report(article.title, self.keywords) or is_reaction_report(article.title, self.keywords):
            LOGGER.info("Rejected aftermath/reaction headline: %s", article.title)
            return ClassificationOutcome(None, reason="not_new_incident")

        user_prompt = build_user_prompt(article)
        try:
            payload = retry_with_backoff(
                lambda: parse_incident_json(self.provider.complete(self._system_prompt, user_prompt)),
                is_retryable=is_retryable_error,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                sleep=self._sleep,
                label=f"{self.provider.name} classification",
            )
        except PermanentProviderError as exc:
            raise ClassificationError(f"{self.provider.name} rejected the request: {exc}") from exc
        except ProviderError as exc:
            LOGGER.warning(
                "%s classification failed, using rule-based fallback for %s: %s",
                self.provider.name,
                article.url,
                exc,
            )
            candidate = rule_based_classify(article, self.keywords, self._rng)
            return self._accept(candidate, used_fallback=True)

        return self._accept(self.candidate_from_payload(payload, article), used_fallback=False)

    def _accept(self, candidate: CandidateIncident | None, used_fallback: bool) -> ClassificationOutcome:
        if candidate is None:
            return ClassificationOutcome(None, used_fallback=used_fallback, reason="not_incident")
        if candidate.incident_type not in self.accepted_types:
            LOGGER.info("Rejected incident type %s: %s", candidate.incident_type.value, candidate.title)
            return ClassificationOutcome(None, used_fallback=used_fallback, reason="type_not_accepted")
        return ClassificationOutcome(candidate, used_fallback=used_fallback, reason="accepted")

    def candidate_from_payload(self, payload: dict[str, Any], article: Article) -> CandidateIncident | None:
        """Normalize a provider JSON object, applying the acceptance policy.

        Missing fields take safe defaults: 0 for counts, Unknown for places,
        Unknown Gunmen / Medium for the enums.
        """
        if not _as_bool(payload.get("is_security_incident"), default=False):
            LOGGER.info("Provider: not a security incident: %s", article.title)
            return None
        if not _as_bool(payload.get("is_new_incident"), default=True):
            LOGGER.info("Provider: not a new incident: %s", article.title)
            return None
        if _as_bool(payload.get("is_follow_up"), default=False):
            LOGGER.info("Provider: follow-up report: %s", article.title)
            return None

        fatalities = _as_count(payload.get("fatalities"))
        injuries = _as_count(payload.get("injuries"))
        abducted = _as_count(payload.get("kidnapped", payload.get("abducted")))
        if fatalities + injuries + abducted == 0:
            LOGGER.info("Provider: no casualties reported: %s", article.title)
            return None

        state = canonical_state(_as_text(payload.get("state")))
        latitude, longitude = approximate_coordinates(state, self._rng)
        return CandidateIncident(
            title=truncate(_as_text(payload.get("title")) or article.title, MAX_TITLE_LENGTH),
            summary=truncate(_as_text(payload.get("description")) or article.content, MAX_SUMMARY_LENGTH),
            occurred_at=_parse_occurred_at(payload.get("date"), article.published_at),
            state=state,
            local_area=_as_text(payload.get("lga")) or UNKNOWN_STATE,
            latitude=latitude,
            longitude=longitude,
            fatalities=fatalities,
            injuries=injuries,
            abducted=abducted,
            incident_type=_coerce_enum(payload.get("incident_type"), IncidentType, IncidentType.UNKNOWN_GUNMEN),
            severity=_coerce_enum(payload.get("severity"), Severity, Severity.MEDIUM),
            source_url=article.url or None,
            verified=False,
            sources=(article.source_name,) if article.source_name else (),
        )
