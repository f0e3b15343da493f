"""Deterministic rule-based incident extraction used when no provider answers."""

from __future__ import annotations

import logging
import random
import re

from keywords import (
    AMBIGUOUS_STATES,
    DEFAULT_CENTROID_STATE,
    DEFAULT_KEYWORDS,
    STATE_ALIASES,
    STATE_CENTROIDS,
    UNKNOWN_STATE,
    KeywordConfig,
)
from models import Article, CandidateIncident, IncidentType, Severity

LOGGER = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 70
MAX_SUMMARY_LENGTH = 200
JITTER_DEGREES = 0.4

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7,
    "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12, "thirteen": 13,
    "fourteen": 14, "fifteen": 15, "sixteen": 16, "seventeen": 17, "eighteen": 18,
    "nineteen": 19, "twenty": 20,
}
_COUNT = r"\b(\d[\d,]*|" + "|".join(_NUMBER_WORDS) + r")"
_OPTIONAL_NOUN = r"(?:\s+(?:\w+\s+)?(?:people|persons|villagers|residents|soldiers|worshippers|passengers|students|farmers))?"

FATALITY_PATTERN = re.compile(_COUNT + _OPTIONAL_NOUN + r"\s*(?:were\s+)?(?:killed|dead|died|deaths|slain|murdered)\b")
ABDUCTED_PATTERN = re.compile(_COUNT + _OPTIONAL_NOUN + r"\s*(?:were\s+)?(?:kidnapped|abducted|taken hostage)\b")
INJURED_PATTERN = re.compile(_COUNT + _OPTIONAL_NOUN + r"\s*(?:were\s+)?(?:injured|wounded)\b")

# (incident type, trigger terms), checked in order. Police and army only
# count as a clash when the wording says so; "police said" is attribution.
_TYPE_RULES: tuple[tuple[IncidentType, tuple[str, ...]], ...] = (
    (IncidentType.BANDITRY, ("bandit", "kidnap")),
    (IncidentType.CULT_CLASH, ("cult",)),
    (IncidentType.POLICE_CLASH, (
        "clash with police", "clashed with police", "clashes with police",
        "clash with soldiers", "clashed with soldiers", "clash with troops", "clashed with troops",
        "fire with police", "gun battle with police", "shootout with police",
        "police clash",
    )),
)


def _parse_count(token: str) -> int:
    if token in _NUMBER_WORDS:
        return _NUMBER_WORDS[token]
    return int(token.replace(",", ""))


def extract_count(pattern: re.Pattern[str], text: str) -> int:
    match = pattern.search(text)
    return _parse_count(match.group(1)) if match else 0


def compute_severity(fatalities: int, total: int) -> Severity:
    if fatalities >= 10 or total >= 30:
        return Severity.CRITICAL
    if fatalities >= 5 or total >= 15:
        return Severity.HIGH
    if fatalities >= 1 or total >= 5:
        return Severity.MEDIUM
    return Severity.LOW


def infer_incident_type(text: str, keywords: KeywordConfig = DEFAULT_KEYWORDS) -> IncidentType:
    lowered = text.lower()
    if any(term in lowered for term in keywords.terror_groups):
        return IncidentType.TERRORISM
    for incident_type, terms in _TYPE_RULES:
        if any(term in lowered for term in terms):
            return incident_type
    return IncidentType.UNKNOWN_GUNMEN


def _state_patterns() -> list[tuple[str, re.Pattern[str]]]:
    patterns: list[tuple[str, re.Pattern[str]]] = []
    for state in STATE_CENTROIDS:
        name = re.escape(state.lower())
        qualifiers = AMBIGUOUS_STATES.get(state)
        if qualifiers:
            suffix = r"\s+(?:" + "|".join(qualifiers) + r")\b"
            patterns.append((state, re.compile(r"\b" + name + suffix)))
        else:
            patterns.append((state, re.compile(r"\b" + name + r"\b")))
    for alias, state in STATE_ALIASES.items():
        patterns.append((state, re.compile(r"\b" + re.escape(alias) + r"\b")))
    return patterns


_STATE_PATTERNS = _state_patterns()


def resolve_state(text: str) -> str:
    """Return the state mentioned earliest in the text, or UNKNOWN_STATE."""
    lowered = text.lower()
    best_state = UNKNOWN_STATE
    best_position: int | None = None
    for state, pattern in _STATE_PATTERNS:
        match = pattern.search(lowered)
        if match and (best_position is None or match.start() < best_position):
            best_state, best_position = state, match.start()
    return best_state


def canonical_state(value: str | None) -> str:
    """Map a free-form state string onto a known state name or UNKNOWN_STATE."""
    if not value:
        return UNKNOWN_STATE
    cleaned = re.sub(r"\s+state$", "", value.strip(), flags=re.IGNORECASE).strip()
    for state in STATE_CENTROIDS:
        if state.lower() == cleaned.lower():
            return state
    return STATE_ALIASES.get(cleaned.lower(), UNKNOWN_STATE)


def approximate_coordinates(state: str, rng: random.Random | None = None) -> tuple[float, float]:
    """State centroid plus jitter so incidents in one state do not stack."""
    rng = rng or random.Random()
    lat, lng = STATE_CENTROIDS.get(state, STATE_CENTROIDS[DEFAULT_CENTROID_STATE])
    return (
        lat + rng.uniform(-JITTER_DEGREES, JITTER_DEGREES),
        lng + rng.uniform(-JITTER_DEGREES, JITTER_DEGREES),
    )


def is_aftermath_report(text: str, keywords: KeywordConfig = DEFAULT_KEYWORDS) -> bool:
    """True for release/rescue/arrest stories that carry no attack phrasing."""
    lowered = text.lower()
    has_aftermath = any(term in lowered for term in keywords.aftermath)
    has_attack = any(term in lowered for term in keywords.attack)
    return has_aftermath and not has_attack


def is_reaction_report(title: str, keywords: KeywordConfig = DEFAULT_KEYWORDS) -> bool:
    """True for condemnations, reactions and analysis pieces."""
    lowered = title.lower()
    return any(term in lowered for term in keywords.reaction)


def truncate(text: str, max_len: int) -> str:
    value = " ".join(text.split())
    if len(value) <= max_len:
        return value
    return value[: max_len - 1].rstrip() + "…"


def rule_based_classify(
    article: Article,
    keywords: KeywordConfig = DEFAULT_KEYWORDS,
    rng: random.Random | None = None,
) -> CandidateIncident | None:
    """Extract an incident with regexes and keyword tables, or return None."""
    text = f"{article.title} {article.content}"
    lowered = text.lower()

    if is_aftermath_report(article.title, keywords) or is_reaction_report(article.title, keywords):
        LOGGER.info("Fallback skip (aftermath/reaction headline): %s", article.title)
        return None
    if is_aftermath_report(lowered, keywords):
        LOGGER.info("Fallback skip (aftermath report): %s", article.title)
        return None
    if not any(term in lowered for term in keywords.fallback_violence):
        return None

    fatalities = extract_count(FATALITY_PATTERN, lowered)
    abducted = extract_count(ABDUCTED_PATTERN, lowered)
    injuries = extract_count(INJURED_PATTERN, lowered)
    total = fatalities + abducted + injuries
    if total == 0:
        LOGGER.info("Fallback skip (no casualty counts found): %s", article.title)
        return None

    state = resolve_state(text)
    latitude, longitude = approximate_coordinates(state, rng)

    return CandidateIncident(
        title=truncate(article.title, MAX_TITLE_LENGTH),
        summary=truncate(article.content, MAX_SUMMARY_LENGTH),
        occurred_at=article.published_at,
        state=state,
        local_area=UNKNOWN_STATE,
        latitude=latitude,
        longitude=longitude,
        fatalities=fatalities,
        injuries=injuries,
        abducted=abducted,
        incident_type=infer_incident_type(lowered, keywords),
        severity=compute_severity(fatalities, total),
        source_url=article.url or None,
        verified=False,
        sources=(article.source_name,) if article.source_name else (),
    )
