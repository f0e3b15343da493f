from datetime import UTC, datetime

import pytest

from filters import is_incident_article, is_incident_candidate
from keywords import DEFAULT_KEYWORDS
from models import Article


def _article(title: str, content: str = "") -> Article:
    return Article(
        title=title,
        content=content,
        url="https://example.ng/news/1",
        published_at=datetime(2025, 1, 10, tzinfo=UTC),
        source_name="Test",
    )


@pytest.mark.parametrize("text", [
    "Gunmen kill 12 villagers in Zamfara",
    "Boko Haram insurgents attack military base in Borno",
    "Bandits abduct 30 worshippers in Kaduna church",
    "Suspected herders killed 8 farmers in Benue community",
    "Troops repel ISWAP ambush, several soldiers wounded",
    "Bandits abduct 20 villagers in Zamfara, demand N50m naira ransom",
    "Gunmen kill 5 in Katsina community that shares border with Niger Republic",
])
def test_incident_texts_return_true(text: str) -> None:
    assert is_incident_candidate(text) is True


@pytest.mark.parametrize("text", [
    "Manchester United match result: Rashford killed the rally late on",
    "Super Eagles attack looks sharp ahead of AFCON",
    "Two killed in Lagos road accident",
    "Tanker explosion: 5 dead in Kaduna",
    "INEC postpones election in Kaduna after gunmen attack",
    "Gunmen attack convoy in Gaza",
    "Naira depreciates as gunmen attack on Kaduna highway rattles investors",
    "Stock exchange slips after bandits kill 10 in Zamfara",
])
def test_exclusion_terms_always_win(text: str) -> None:
    assert is_incident_candidate(text) is False


def test_violence_without_context_returns_false() -> None:
    """A casualty word alone reads like ordinary news."""
    assert is_incident_candidate("Man killed his neighbour over land dispute") is False


def test_context_without_violence_returns_false() -> None:
    assert is_incident_candidate("Governor visits Borno to commission new schools") is False


def test_raid_requires_word_boundary() -> None:
    assert is_incident_candidate("Residents of Plateau afraid of the rainy season") is False
    assert is_incident_candidate("Plateau village raid leaves residents displaced") is True


def test_matching_is_case_insensitive() -> None:
    assert is_incident_candidate("GUNMEN KILL FIVE IN KATSINA") is True


def test_article_uses_title_and_content() -> None:
    article = _article("Tragedy in the north", "Bandits killed 7 people in a Katsina village on Sunday.")
    assert is_incident_article(article) is True


def test_article_exclusion_in_content_rejects() -> None:
    article = _article("Gunmen kill 3 in Kaduna", "The premier league fixture was postponed.")
    assert is_incident_article(article) is False


def test_custom_keyword_config_is_respected() -> None:
    from dataclasses import replace

    keywords = replace(DEFAULT_KEYWORDS, exclusion=frozenset({"zamfara"}))
    assert is_incident_candidate("Gunmen kill 12 villagers in Zamfara", keywords) is False
