"""Run orchestration: fetch -> pre-filter -> article dedup -> classify -> dedup -> persist."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Callable, Sequence

from classifier import ClassificationError, IncidentClassifier
from dedup import DATE_WINDOW_DAYS, KnownIncidents, deduplicate_articles
from filters import is_incident_article
from keywords import DEFAULT_KEYWORDS, KeywordConfig
from models import Article, RunStats
from news_feed import ArticleSource, fetch_all
from store import IncidentStore, StoreError

LOGGER = logging.getLogger(__name__)

DEFAULT_CLASSIFY_DELAY_SECONDS = 1.5


class IncidentPipeline:
    """One sequential classify/persist worker per run.

    Every classification is followed by a fixed pause. Accepted incidents join
    the run's KnownIncidents before the next article is checked.
    """

    def __init__(
        self,
        sources: Sequence[ArticleSource],
        classifier: IncidentClassifier,
        store: IncidentStore,
        *,
        keywords: KeywordConfig = DEFAULT_KEYWORDS,
        lookback_days: int = 7,
        dedup_window_days: int = DATE_WINDOW_DAYS,
        classify_delay: float = DEFAULT_CLASSIFY_DELAY_SECONDS,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.sources = list(sources)
        self.classifier = classifier
        self.store = store
        self.keywords = keywords
        self.lookback_days = lookback_days
        self.dedup_window_days = dedup_window_days
        self.classify_delay = classify_delay
        self.dry_run = dry_run
        self._sleep = sleep
        self._now = now

    def run(self) -> RunStats:
        stats = RunStats()

        articles = fetch_all(self.sources)
        stats.fetched = len(articles)

        candidates = [a for a in articles if is_incident_article(a, self.keywords)]
        stats.filtered = len(candidates)
        LOGGER.info(
            "Pre-filter: total=%s, candidates=%s, dropped=%s",
            len(articles),
            len(candidates),
            len(articles) - len(candidates),
        )

        representatives = deduplicate_articles(candidates)
        stats.deduplicated_pre_ai = len(candidates) - len(representatives)
        LOGGER.info(
            "Article dedup: %s representatives (saved %s classifier calls)",
            len(representatives),
            stats.deduplicated_pre_ai,
        )

        known = self.load_known_incidents()
        self.classify_and_persist(representatives, known, stats)

        LOGGER.info("Run complete. %s", stats.summary_line())
        return stats

    def load_known_incidents(self) -> KnownIncidents:
        since = self._now() - timedelta(days=self.lookback_days)
        try:
            recent = self.store.fetch_recent(since)
        except StoreError as exc:
            LOGGER.warning("Could not load recent incidents, deduplicating against this run only: %s", exc)
            recent = []
        LOGGER.info("Loaded %s incidents from the last %s days", len(recent), self.lookback_days)
        return KnownIncidents(recent, window_days=self.dedup_window_days)

    def classify_and_persist(
        self,
        articles: Sequence[Article],
        known: KnownIncidents,
        stats: RunStats,
    ) -> None:
        total = len(articles)
        for position, article in enumerate(articles, start=1):
            LOGGER.info("[%s/%s] %s", position, total, article.title[:70])
            try:
                self.process_article(article, known, stats)
            except ClassificationError as exc:
                stats.errors += 1
                LOGGER.error("Classification failed for %s: %s", article.url, exc)
            except Exception as exc:  # keep the batch going
                stats.errors += 1
                LOGGER.exception("Failed processing %s: %s", article.url, exc)
            self._sleep(self.classify_delay)

    def process_article(self, article: Article, known: KnownIncidents, stats: RunStats) -> None:
        outcome = self.classifier.classify_with_outcome(article)
        if outcome.used_fallback:
            stats.fallback_used += 1

        incident = outcome.candidate
        if incident is None:
            stats.rejected_invalid += 1
            LOGGER.info("Skipped (%s): %s", outcome.reason or "not_incident", article.title[:70])
            return
        stats.classified += 1

        # A stored incident joins the known set only once the insert succeeds.
        check = known.check_and_add(incident) if self.dry_run else known.check(incident)
        if check.duplicate:
            stats.duplicates += 1
            LOGGER.info("Duplicate (%s, score=%s): %s", check.reason, check.score, incident.title)
            return

        if self.dry_run:
            LOGGER.info("[dry-run] Would save: %s", incident.title)
            return

        result = self.store.insert(incident)
        if not result.ok:
            stats.errors += 1
            LOGGER.error("Insert failed for %s: %s", incident.title, result.error)
            return

        known.add(incident)
        stats.persisted += 1
        LOGGER.info("Saved id=%s: %s", result.id, incident.title)
