import json
from datetime import date
from unittest.mock import patch

import pytest

from classifier import STRICT_INCIDENT_TYPES, IncidentClassifier
from config import (
    DEFAULT_FEEDS,
    ConfigError,
    FeedSpec,
    Settings,
    build_backfill_sources,
    build_classifier,
    build_sources,
    build_store,
    parse_feeds,
    parse_incident_types,
)
from keywords import DEFAULT_KEYWORDS
from models import IncidentType
from news_feed import DailyArchiveFeedSource, GoogleNewsSearchSource, HtmlIndexSource, RssFeedSource
from store import CsvIncidentStore, SupabaseStore

_SUPABASE_ENV = {"SUPABASE_URL": "https://proj.supabase.co", "SUPABASE_SERVICE_KEY": "service-key"}


def test_parse_feeds_default() -> None:
    feeds = parse_feeds(DEFAULT_FEEDS)
    assert feeds == [
        FeedSpec(kind="daily", name="Vanguard", urls=("https://www.vanguardngr.com",)),
        FeedSpec(kind="html", name="Punch", urls=("https://punchng.com", "https://punchng.com/latest")),
    ]


def test_parse_feeds_ignores_blank_entries() -> None:
    feeds = parse_feeds(" rss|Daily Trust|https://dailytrust.com/feed ; ; ")
    assert feeds == [FeedSpec(kind="rss", name="Daily Trust", urls=("https://dailytrust.com/feed",))]


@pytest.mark.parametrize("raw", [
    "rss|Missing url",
    "podcast|Show|https://example.com/feed",
    "rss||https://example.com/feed",
])
def test_parse_feeds_rejects_malformed(raw: str) -> None:
    with pytest.raises(ConfigError):
        parse_feeds(raw)


def test_parse_incident_types() -> None:
    assert parse_incident_types(None) == STRICT_INCIDENT_TYPES
    assert parse_incident_types("terrorism, Cult Clash") == frozenset({IncidentType.TERRORISM, IncidentType.CULT_CLASH})
    with pytest.raises(ConfigError):
        parse_incident_types("Terrorism,Piracy")


def test_from_env_defaults() -> None:
    with patch.dict("os.environ", _SUPABASE_ENV, clear=True):
        settings = Settings.from_env()

    assert settings.store_backend == "supabase"
    assert settings.ai_provider == "openrouter"
    assert settings.classify_delay_seconds == 1.5
    assert settings.lookback_days == 7
    assert settings.accepted_types == STRICT_INCIDENT_TYPES
    assert settings.api_keys["OPENROUTER_API_KEY"] is None
    settings.validate()


def test_from_env_rejects_bad_number() -> None:
    with patch.dict("os.environ", {"CLASSIFIER_MAX_ATTEMPTS": "three"}, clear=True):
        with pytest.raises(ConfigError, match="CLASSIFIER_MAX_ATTEMPTS"):
            Settings.from_env()


def test_validate_requires_store_credentials() -> None:
    with patch.dict("os.environ", {}, clear=True):
        settings = Settings.from_env()
    with pytest.raises(ConfigError, match="SUPABASE_URL"):
        settings.validate()


def test_validate_requires_feeds_for_scrape() -> None:
    with patch.dict("os.environ", {"FEED_URLS": " ; ", "STORE_BACKEND": "csv"}, clear=True):
        settings = Settings.from_env()
    with pytest.raises(ConfigError, match="FEED_URLS"):
        settings.validate()
    settings.validate(require_feeds=False)


def test_validate_rejects_unknown_backend() -> None:
    with patch.dict("os.environ", {"STORE_BACKEND": "mongo"}, clear=True):
        settings = Settings.from_env()
    with pytest.raises(ConfigError, match="STORE_BACKEND"):
        settings.validate()


def test_build_sources_by_kind() -> None:
    raw = "daily|Vanguard|https://v.ng;html|Punch|https://p.ng;rss|Feeds|https://a.ng/feed,https://b.ng/feed"
    with patch.dict("os.environ", {"FEED_URLS": raw, "VANGUARD_FEED_DAYS": "2"}, clear=True):
        sources = build_sources(Settings.from_env())

    assert [type(s) for s in sources] == [DailyArchiveFeedSource, HtmlIndexSource, RssFeedSource, RssFeedSource]
    assert sources[0].days == 2
    assert [s.url for s in sources[2:]] == ["https://a.ng/feed", "https://b.ng/feed"]


def test_build_backfill_sources() -> None:
    sources = build_backfill_sources(date(2024, 12, 1))
    assert len(sources) == 1
    assert isinstance(sources[0], GoogleNewsSearchSource)
    assert sources[0].after == date(2024, 12, 1)


def test_build_store_backends(tmp_path) -> None:
    csv_env = {"STORE_BACKEND": "csv", "CSV_OUTPUT_PATH": str(tmp_path / "out.csv")}
    with patch.dict("os.environ", csv_env, clear=True):
        assert isinstance(build_store(Settings.from_env()), CsvIncidentStore)
    with patch.dict("os.environ", _SUPABASE_ENV, clear=True):
        assert isinstance(build_store(Settings.from_env()), SupabaseStore)


def test_build_classifier_unknown_provider() -> None:
    with patch.dict("os.environ", {"AI_PROVIDER": "gemini"}, clear=True):
        settings = Settings.from_env()
    with pytest.raises(ConfigError, match="gemini"):
        build_classifier(settings, DEFAULT_KEYWORDS)


def test_build_classifier_wires_settings() -> None:
    env = {"AI_PROVIDER": "chutes", "CHUTES_API_KEY": "ck", "CLASSIFIER_MAX_ATTEMPTS": "5"}
    with patch.dict("os.environ", env, clear=True):
        classifier = build_classifier(Settings.from_env(), DEFAULT_KEYWORDS)
    assert isinstance(classifier, IncidentClassifier)
    assert classifier.provider.name == "chutes"
    assert classifier.max_attempts == 5


def test_keywords_file_overrides_defaults(tmp_path) -> None:
    path = tmp_path / "keywords.json"
    path.write_text(json.dumps({"exclusion": ["Derby"], "unknown_set": ["x"]}), encoding="utf-8")
    with patch.dict("os.environ", {"KEYWORDS_PATH": str(path)}, clear=True):
        keywords = Settings.from_env().load_keywords()
    assert keywords.exclusion == frozenset({"derby"})
    assert keywords.violence == DEFAULT_KEYWORDS.violence


def test_keywords_file_with_bad_values_is_config_error(tmp_path) -> None:
    path = tmp_path / "keywords.json"
    path.write_text(json.dumps({"violence": "kill"}), encoding="utf-8")
    with patch.dict("os.environ", {"KEYWORDS_PATH": str(path)}, clear=True):
        with pytest.raises(ConfigError):
            Settings.from_env().load_keywords()
