"""Article-level and incident-level duplicate suppression.

Two stages share the same title-term machinery:

- deduplicate_articles() collapses many outlets' reports of one event into a
  single representative before any classifier call is spent on them.
- is_duplicate() decides whether an extracted incident is already known,
  either from the store or from earlier in the same run. A cheap fingerprint
  match short-circuits; otherwise weak signals are scored additively.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from urllib.parse import urlparse

from models import Article, CandidateIncident, DuplicateCheck, PersistedIncidentSummary

LOGGER = logging.getLogger(__name__)

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "in", "on", "at", "to", "for", "of", "and", "or", "as",
    "by", "with", "from", "after", "over", "into", "its", "their", "are", "was",
    "were", "has", "have", "had",
})

ARTICLE_SIMILARITY_THRESHOLD = 0.4
MIN_SIGNIFICANT_NUMBER = 5

# Aggregator hosts whose links redirect to the real publisher.
REDIRECT_HOSTS: frozenset[str] = frozenset({
    "news.google.com",
    "feedproxy.google.com",
    "t.co",
    "bit.ly",
    "flipboard.com",
})
# Content-length bonus (in characters) for a direct publisher URL.
DIRECT_URL_BONUS = 200

DATE_WINDOW_DAYS = 3
CASUALTY_TOLERANCE = 2
DUPLICATE_SCORE_THRESHOLD = 3

KnownIncident = CandidateIncident | PersistedIncidentSummary

_PUNCTUATION = re.compile(r"[^a-z0-9\s]")
_NUMBER = re.compile(r"\d[\d,]*")


def extract_key_terms(title: str) -> set[str]:
    """Lower-case, strip punctuation, drop stop words and tokens of 2 chars or less."""
    cleaned = _PUNCTUATION.sub("", title.lower())
    return {word for word in cleaned.split() if len(word) > 2 and word not in STOP_WORDS}


def title_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the two titles' key-term sets (0.0–1.0)."""
    terms_a = extract_key_terms(first)
    terms_b = extract_key_terms(second)
    if not terms_a or not terms_b:
        return 0.0
    return len(terms_a & terms_b) / len(terms_a | terms_b)


def significant_numbers(title: str) -> set[int]:
    """Numbers >= MIN_SIGNIFICANT_NUMBER in a title, ignoring calendar years."""
    numbers: set[int] = set()
    for token in _NUMBER.findall(title):
        value = int(token.replace(",", ""))
        if value < MIN_SIGNIFICANT_NUMBER or 1900 <= value <= 2100:
            continue
        numbers.add(value)
    return numbers


def shares_significant_number(first: str, second: str) -> bool:
    return bool(significant_numbers(first) & significant_numbers(second))


def is_redirect_url(url: str) -> bool:
    host = (urlparse(url or "").netloc or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host in REDIRECT_HOSTS


def unique_by_url(articles: Iterable[Article]) -> list[Article]:
    """Drop exact URL repeats, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Article] = []
    for article in articles:
        if article.url in seen:
            continue
        seen.add(article.url)
        unique.append(article)
    return unique


def _representative_weight(article: Article) -> int:
    bonus = 0 if is_redirect_url(article.url) else DIRECT_URL_BONUS
    return len(article.content) + bonus


def group_articles(
    articles: Iterable[Article],
    threshold: float = ARTICLE_SIMILARITY_THRESHOLD,
) -> list[list[Article]]:
    """Greedy single-pass clustering against each group's first member."""
    groups: list[list[Article]] = []
    for article in articles:
        for group in groups:
            leader = group[0]
            if (
                title_similarity(article.title, leader.title) >= threshold
                or shares_significant_number(article.title, leader.title)
            ):
                group.append(article)
                break
        else:
            groups.append([article])
    return groups


def deduplicate_articles(
    articles: Sequence[Article],
    threshold: float = ARTICLE_SIMILARITY_THRESHOLD,
) -> list[Article]:
    """Return one representative article per group of same-event reports.

    The representative is the member with the longest content, where a direct
    publisher URL counts DIRECT_URL_BONUS characters more than an aggregator
    redirect. Ties keep the earliest member.
    """
    groups = group_articles(articles, threshold=threshold)
    representatives = [max(group, key=_representative_weight) for group in groups]
    LOGGER.info(
        "Article dedup: input=%s groups=%s dropped=%s",
        len(articles),
        len(groups),
        len(articles) - len(representatives),
    )
    return representatives


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _normalize_state(state: str | None) -> str:
    return (state or "").strip().lower()


def _is_unknown(value: str | None) -> bool:
    return _normalize_state(value) in {"", "unknown"}


def generate_fingerprint(incident: KnownIncident) -> str:
    """Coarse key: date only, normalized state, fatalities, abducted."""
    day = _as_utc(incident.occurred_at).date().isoformat()
    return f"{day}:{_normalize_state(incident.state)}:{incident.fatalities}:{incident.abducted}"


def _within_window(candidate: KnownIncident, known: KnownIncident, window_days: int) -> bool:
    delta = abs(_as_utc(candidate.occurred_at) - _as_utc(known.occurred_at))
    return delta.total_seconds() <= window_days * 86400


def _state_compatible(candidate: KnownIncident, known: KnownIncident) -> bool:
    if _is_unknown(candidate.state) or _is_unknown(known.state):
        return True
    return _normalize_state(candidate.state) == _normalize_state(known.state)


def similarity_score(candidate: KnownIncident, known: KnownIncident) -> int:
    """Additive score over weak same-event signals.

    Identical fatalities or abducted counts only add points when the totals
    differ; equal totals already carry that evidence.
    """
    score = 0

    similarity = title_similarity(candidate.title, known.title)
    if similarity >= 0.5:
        score += 3
    elif similarity >= 0.3:
        score += 1

    total_gap = abs(candidate.total_casualties - known.total_casualties)
    if total_gap == 0:
        score += 2
    else:
        if total_gap <= CASUALTY_TOLERANCE:
            score += 1
        if candidate.fatalities > 0 and candidate.fatalities == known.fatalities:
            score += 2
        if candidate.abducted > 0 and candidate.abducted == known.abducted:
            score += 2

    candidate_area = getattr(candidate, "local_area", None)
    known_area = getattr(known, "local_area", None)
    if not _is_unknown(candidate_area) and not _is_unknown(known_area):
        if _normalize_state(candidate_area) == _normalize_state(known_area):
            score += 2

    candidate_type = getattr(candidate, "incident_type", None)
    known_type = getattr(known, "incident_type", None)
    if candidate_type is not None and candidate_type == known_type:
        score += 1

    if shares_significant_number(candidate.title, known.title):
        score += 2

    return score


def is_duplicate(
    candidate: KnownIncident,
    known_incidents: Iterable[KnownIncident],
    window_days: int = DATE_WINDOW_DAYS,
) -> DuplicateCheck:
    """Check a candidate against every known incident, cheapest signal first."""
    known_list = list(known_incidents)
    fingerprint = generate_fingerprint(candidate)
    for known in known_list:
        if generate_fingerprint(known) == fingerprint:
            return DuplicateCheck(duplicate=True, reason="fingerprint", match=known)

    best: DuplicateCheck = DuplicateCheck(duplicate=False, reason="unique")
    for known in known_list:
        if not _within_window(candidate, known, window_days):
            continue
        if not _state_compatible(candidate, known):
            continue
        score = similarity_score(candidate, known)
        if score >= DUPLICATE_SCORE_THRESHOLD:
            return DuplicateCheck(duplicate=True, reason="same_event", score=score, match=known)
        if score > best.score:
            best = DuplicateCheck(duplicate=False, reason="unique", score=score, match=known)
    return best


class KnownIncidents:
    """Run-scoped set of incidents that new candidates are checked against.

    Seeded with the store's recent incidents; every accepted candidate must be
    added before the next check so a repeat later in the batch is caught.
    """

    def __init__(
        self,
        initial: Iterable[KnownIncident] = (),
        window_days: int = DATE_WINDOW_DAYS,
    ) -> None:
        self._items: list[KnownIncident] = list(initial)
        self._window_days = window_days
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def check(self, candidate: CandidateIncident) -> DuplicateCheck:
        with self._lock:
            return is_duplicate(candidate, self._items, window_days=self._window_days)

    def add(self, incident: KnownIncident) -> None:
        with self._lock:
            self._items.append(incident)

    def check_and_add(self, candidate: CandidateIncident) -> DuplicateCheck:
        """Atomically check the candidate and, when novel, add it.

        Used where nothing is written before the candidate counts as known
        (dry runs). Stored incidents go through check() then add() after a
        successful insert.
        """
        with self._lock:
            result = is_duplicate(candidate, self._items, window_days=self._window_days)
            if not result.duplicate:
                self._items.append(candidate)
            return result
