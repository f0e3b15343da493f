"""Keyword sets and geographic lookups shared by the pre-filter and fallback.

Everything here is immutable and built once at import time. Deployments that
need a different acceptance vocabulary point KEYWORDS_PATH at a JSON file whose
keys match the KeywordConfig field names; see load_keywords().
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from types import MappingProxyType

LOGGER = logging.getLogger(__name__)

# Casualty and attack verbs. Never sufficient alone: "man killed his
# neighbour" matches here too, so the pre-filter also demands context.
_VIOLENCE_TERMS: frozenset[str] = frozenset({
    "kill", "dead", "death toll", "slain",
    "murdered", "massacre", "attack", "ambush", "abduct", "kidnap",
    "gunned down", "shot dead", "bomb", "explosive", "injured", "wounded",
    " raid", "invaded", "beheaded", "set ablaze", "razed", "hostage",
})

# Named threat actors, armed-group vocabulary and conflict hotspots.
_CONTEXT_TERMS: frozenset[str] = frozenset({
    "boko haram", "iswap", "islamic state west africa", "ansaru", "lakurawa",
    "jihadist", "insurgent", "terrorist", "militant", "bandit", "gunmen",
    "armed men", "militia", "herders", "fulani", "ipob", "eastern security network",
    "cattle rustl", "troops", "soldiers", "vigilante", "civilian jtf",
    "borno", "yobe", "adamawa", "zamfara", "katsina", "kaduna", "sokoto",
    "niger state", "kebbi", "benue", "plateau", "taraba", "kwara", "southern kaduna",
    "sambisa", "lake chad",
})

# Checked first; any hit disqualifies the text outright.
_EXCLUSION_TERMS: frozenset[str] = frozenset({
    # sports
    "premier league", "manchester united", "super eagles", "afcon", "football",
    "match result", "champions league", "transfer window", "la liga",
    # entertainment
    "nollywood", "bbnaija", "big brother", "album", "box office", "movie",
    # markets
    "stock market", "stock exchange", "share price", "naira depreciat", "exchange rate",
    "inflation rate", "crude oil price",
    # elections
    "election", "inec", "ballot", "primaries",
    # obituaries
    "obituary", "passes away", "passed away", "funeral rites", "burial",
    # foreign-country-only news
    "gaza", "ukraine", "israel", "sudan", "somalia",
    # ordinary crime
    "armed robbery", "robbers", "fraud", "ritualist", "efcc",
    # accidents
    "accident", "crash", "collision", "fire outbreak", "flood", "boat mishap",
    "tanker explosion", "building collapse",
})

_FALLBACK_VIOLENCE_TERMS: frozenset[str] = frozenset({
    "kill", "attack", "kidnap", "abduct", "bandit", "terrorist", "gunmen",
    "dead", "shot", "bomb",
})

# Release/rescue/arrest phrasing: the article is about the aftermath, not a
# new incident, unless attack phrasing is present as well.
_AFTERMATH_TERMS: frozenset[str] = frozenset({
    "released", "freed", "rescue", "regain freedom", "regained freedom",
    "now free", "arrest", "nabbed", "apprehend",
})

_ATTACK_TERMS: frozenset[str] = frozenset({"kill", "attack"})

_REACTION_TERMS: frozenset[str] = frozenset({
    "condemn", "decry", "lament", "react to", "reacts to", "response to",
    "vow to", "vows to", "analysis:", "opinion:", "editorial:",
})

_TERROR_GROUP_TERMS: frozenset[str] = frozenset({
    "boko haram", "iswap", "terrorist", "ansaru", "lakurawa", "jihadist", "insurgent",
})

# Approximate state centroids (lat, lng).
STATE_CENTROIDS: MappingProxyType[str, tuple[float, float]] = MappingProxyType({
    "Abia": (5.4527, 7.5248),
    "Adamawa": (9.3265, 12.3984),
    "Akwa Ibom": (5.0377, 7.9128),
    "Anambra": (6.2209, 6.9370),
    "Bauchi": (10.3158, 9.8442),
    "Bayelsa": (4.7719, 6.0699),
    "Benue": (7.3369, 8.7404),
    "Borno": (11.8333, 13.1500),
    "Cross River": (5.9631, 8.3300),
    "Delta": (5.7040, 5.9339),
    "Ebonyi": (6.2649, 8.0137),
    "Edo": (6.6342, 5.9304),
    "Ekiti": (7.7190, 5.3110),
    "Enugu": (6.4584, 7.5464),
    "FCT": (9.0765, 7.3986),
    "Gombe": (10.2897, 11.1673),
    "Imo": (5.5720, 7.0588),
    "Jigawa": (12.2280, 9.5616),
    "Kaduna": (10.5105, 7.4165),
    "Kano": (12.0022, 8.5920),
    "Katsina": (13.0059, 7.6000),
    "Kebbi": (12.4539, 4.1975),
    "Kogi": (7.7337, 6.6906),
    "Kwara": (8.9669, 4.3874),
    "Lagos": (6.5244, 3.3792),
    "Nasarawa": (8.5380, 8.3220),
    "Niger": (9.9309, 5.5983),
    "Ogun": (7.1608, 3.3489),
    "Ondo": (7.2500, 5.1931),
    "Osun": (7.5629, 4.5200),
    "Oyo": (8.1574, 3.6147),
    "Plateau": (9.2182, 9.5175),
    "Rivers": (4.8156, 7.0498),
    "Sokoto": (13.0533, 5.2476),
    "Taraba": (7.9994, 10.7740),
    "Yobe": (12.2939, 11.4390),
    "Zamfara": (12.1704, 6.6600),
})

UNKNOWN_STATE = "Unknown"
DEFAULT_CENTROID_STATE = "FCT"

# Alternative spellings that resolve to a canonical state name.
STATE_ALIASES: MappingProxyType[str, str] = MappingProxyType({
    "abuja": "FCT",
    "federal capital territory": "FCT",
    "nassarawa": "Nasarawa",
})

# State names that are also a neighbouring country's name. They only count
# when followed by one of the qualifiers.
AMBIGUOUS_STATES: MappingProxyType[str, tuple[str, ...]] = MappingProxyType({
    "Niger": ("state", "community"),
})


@dataclass(frozen=True, slots=True)
class KeywordConfig:
    """Immutable vocabulary injected into the pre-filter and fallback."""

    violence: frozenset[str] = _VIOLENCE_TERMS
    context: frozenset[str] = _CONTEXT_TERMS
    exclusion: frozenset[str] = _EXCLUSION_TERMS
    fallback_violence: frozenset[str] = _FALLBACK_VIOLENCE_TERMS
    aftermath: frozenset[str] = _AFTERMATH_TERMS
    attack: frozenset[str] = _ATTACK_TERMS
    reaction: frozenset[str] = _REACTION_TERMS
    terror_groups: frozenset[str] = _TERROR_GROUP_TERMS


DEFAULT_KEYWORDS = KeywordConfig()


def load_keywords(path: str | Path | None) -> KeywordConfig:
    """Return DEFAULT_KEYWORDS overlaid with the sets found in a JSON file.

    Only keys naming a KeywordConfig field are applied; each must be a list of
    strings. Unknown keys are logged and ignored.
    """
    if not path:
        return DEFAULT_KEYWORDS

    with Path(path).open(encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"Keyword file {path} must contain a JSON object")

    known = {f.name for f in fields(KeywordConfig)}
    overrides: dict[str, frozenset[str]] = {}
    for key, values in payload.items():
        if key not in known:
            LOGGER.warning("Ignoring unknown keyword set %r in %s", key, path)
            continue
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValueError(f"Keyword set {key!r} in {path} must be a list of strings")
        overrides[key] = frozenset(v.lower() for v in values)

    LOGGER.info("Loaded keyword overrides from %s: %s", path, sorted(overrides))
    return replace(DEFAULT_KEYWORDS, **overrides)
