"""Environment-driven configuration and component wiring."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import date

from classifier import STRICT_INCIDENT_TYPES, IncidentClassifier, build_provider
from keywords import KeywordConfig, load_keywords
from models import IncidentType
from news_feed import (
    ArticleSource,
    DailyArchiveFeedSource,
    GoogleNewsSearchSource,
    HtmlIndexSource,
    RssFeedSource,
)
from store import CsvIncidentStore, IncidentStore, SupabaseStore

LOGGER = logging.getLogger(__name__)

# kind|name|url[,url...] entries separated by ";"
DEFAULT_FEEDS = (
    "daily|Vanguard|https://www.vanguardngr.com;"
    "html|Punch|https://punchng.com,https://punchng.com/latest"
)

_API_KEY_VARS = ("OPENROUTER_API_KEY", "CHUTES_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")


class ConfigError(RuntimeError):
    """Mandatory configuration is missing or malformed."""


@dataclass(frozen=True, slots=True)
class FeedSpec:
    kind: str
    name: str
    urls: tuple[str, ...]


def parse_feeds(raw: str) -> list[FeedSpec]:
    feeds: list[FeedSpec] = []
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [p.strip() for p in chunk.split("|")]
        if len(parts) != 3 or not all(parts):
            raise ConfigError(f"Malformed feed entry {chunk!r}; expected kind|name|url")
        kind, name, urls = parts
        if kind not in {"rss", "daily", "html"}:
            raise ConfigError(f"Unknown feed kind {kind!r} in {chunk!r}")
        feeds.append(FeedSpec(kind=kind, name=name, urls=tuple(u.strip() for u in urls.split(",") if u.strip())))
    return feeds


def parse_incident_types(raw: str | None) -> frozenset[IncidentType]:
    if not raw:
        return STRICT_INCIDENT_TYPES
    by_value = {t.value.lower(): t for t in IncidentType}
    selected: set[IncidentType] = set()
    for item in raw.split(","):
        key = item.strip().lower()
        if not key:
            continue
        if key not in by_value:
            raise ConfigError(f"Unknown incident type {item.strip()!r} in ACCEPTED_INCIDENT_TYPES")
        selected.add(by_value[key])
    return frozenset(selected) or STRICT_INCIDENT_TYPES


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class Settings:
    feeds: list[FeedSpec]
    daily_feed_days: int = 3
    store_backend: str = "supabase"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_table: str = "incidents"
    csv_output_path: str = "incidents.csv"
    ai_provider: str = "openrouter"
    classifier_model: str | None = None
    api_keys: dict[str, str | None] = field(default_factory=dict)
    classifier_max_attempts: int = 3
    classifier_base_delay: float = 2.0
    classify_delay_seconds: float = 1.5
    lookback_days: int = 7
    dedup_window_days: int = 3
    accepted_types: frozenset[IncidentType] = STRICT_INCIDENT_TYPES
    keywords_path: str | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Read settings from the process environment (call load_dotenv() first)."""
        return cls(
            feeds=parse_feeds(os.getenv("FEED_URLS", DEFAULT_FEEDS)),
            daily_feed_days=_int_env("VANGUARD_FEED_DAYS", 3),
            store_backend=os.getenv("STORE_BACKEND", "supabase").strip().lower(),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            supabase_table=os.getenv("SUPABASE_TABLE", "incidents"),
            csv_output_path=os.getenv("CSV_OUTPUT_PATH", "incidents.csv"),
            ai_provider=os.getenv("AI_PROVIDER", "openrouter").strip().lower(),
            classifier_model=os.getenv("CLASSIFIER_MODEL") or None,
            api_keys={name: os.getenv(name) for name in _API_KEY_VARS},
            classifier_max_attempts=_int_env("CLASSIFIER_MAX_ATTEMPTS", 3),
            classifier_base_delay=_float_env("CLASSIFIER_BASE_DELAY", 2.0),
            classify_delay_seconds=_float_env("CLASSIFY_DELAY_SECONDS", 1.5),
            lookback_days=_int_env("DEDUP_LOOKBACK_DAYS", 7),
            dedup_window_days=_int_env("DEDUP_DATE_WINDOW_DAYS", 3),
            accepted_types=parse_incident_types(os.getenv("ACCEPTED_INCIDENT_TYPES")),
            keywords_path=os.getenv("KEYWORDS_PATH") or None,
        )

    def validate(self, *, require_feeds: bool = True) -> None:
        """Raise ConfigError for anything a run cannot start without."""
        if require_feeds and not self.feeds:
            raise ConfigError("FEED_URLS does not define any feed")
        if self.store_backend == "supabase":
            if not self.supabase_url or not self.supabase_service_key:
                raise ConfigError("Missing SUPABASE_URL or SUPABASE_SERVICE_KEY")
        elif self.store_backend != "csv":
            raise ConfigError(f"Unknown STORE_BACKEND {self.store_backend!r}; expected supabase or csv")
        if self.classifier_max_attempts < 1:
            raise ConfigError("CLASSIFIER_MAX_ATTEMPTS must be at least 1")

    def load_keywords(self) -> KeywordConfig:
        try:
            return load_keywords(self.keywords_path)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Could not load KEYWORDS_PATH={self.keywords_path}: {exc}") from exc


def build_sources(settings: Settings) -> list[ArticleSource]:
    sources: list[ArticleSource] = []
    for feed in settings.feeds:
        if feed.kind == "daily":
            sources.append(DailyArchiveFeedSource(name=feed.name, base_url=feed.urls[0], days=settings.daily_feed_days))
        elif feed.kind == "html":
            sources.append(HtmlIndexSource(name=feed.name, index_urls=feed.urls))
        else:
            sources.extend(RssFeedSource(name=feed.name, url=url) for url in feed.urls)
    LOGGER.info("Configured %s sources: %s", len(sources), ", ".join(s.name for s in sources))
    return sources


def build_backfill_sources(after: date) -> list[ArticleSource]:
    return [GoogleNewsSearchSource(after=after)]


def build_store(settings: Settings) -> IncidentStore:
    if settings.store_backend == "csv":
        return CsvIncidentStore(settings.csv_output_path)
    return SupabaseStore(
        url=settings.supabase_url or "",
        service_key=settings.supabase_service_key or "",
        table=settings.supabase_table,
    )


def build_classifier(settings: Settings, keywords: KeywordConfig) -> IncidentClassifier:
    try:
        provider = build_provider(settings.ai_provider, settings.api_keys, model=settings.classifier_model)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return IncidentClassifier(
        provider,
        keywords=keywords,
        accepted_types=settings.accepted_types,
        max_attempts=settings.classifier_max_attempts,
        base_delay=settings.classifier_base_delay,
    )
