"""Keyword pre-filter for security incidents (no LLM calls)."""

from __future__ import annotations

from keywords import DEFAULT_KEYWORDS, KeywordConfig
from models import Article


def is_incident_candidate(text: str, keywords: KeywordConfig = DEFAULT_KEYWORDS) -> bool:
    """Return True if the text plausibly reports a security incident.

    Decision logic (case-insensitive substring matching, no stemming):
    - False: any exclusion term present (sports, markets, accidents...).
    - True: at least one violence term AND at least one context term.
    - False: otherwise.

    Violence words alone are not enough: "man killed his neighbour" reads
    like an incident without any armed-group context.
    """
    lowered = text.lower()

    if any(term in lowered for term in keywords.exclusion):
        return False

    has_violence = any(term in lowered for term in keywords.violence)
    has_context = any(term in lowered for term in keywords.context)
    return has_violence and has_context


def is_incident_article(article: Article, keywords: KeywordConfig = DEFAULT_KEYWORDS) -> bool:
    return is_incident_candidate(f"{article.title} {article.content}", keywords)
