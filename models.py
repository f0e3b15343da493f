"""Shared typed models for the incident pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IncidentType(str, Enum):
    TERRORISM = "Terrorism"
    BANDITRY = "Banditry"
    CIVIL_UNREST = "Civil Unrest"
    UNKNOWN_GUNMEN = "Unknown Gunmen"
    POLICE_CLASH = "Police Clash"
    CULT_CLASH = "Cult Clash"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    # str ordering would be alphabetical; compare by rank instead.
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


@dataclass(frozen=True, slots=True)
class Article:
    """Normalized news article produced by a source adapter."""

    title: str
    content: str
    url: str
    published_at: datetime
    source_name: str


@dataclass(frozen=True, slots=True)
class CandidateIncident:
    """Structured incident extracted from one article, not yet accepted.

    A candidate with no casualties is not an incident; construction fails so
    such a record can never reach the deduplicator or the store.
    """

    title: str
    summary: str
    occurred_at: datetime
    state: str
    local_area: str
    latitude: float
    longitude: float
    fatalities: int
    injuries: int
    abducted: int
    incident_type: IncidentType
    severity: Severity
    source_url: str | None
    verified: bool = False
    sources: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if min(self.fatalities, self.injuries, self.abducted) < 0:
            raise ValueError("casualty counts must be non-negative")
        if self.total_casualties < 1:
            raise ValueError("an incident needs at least one casualty")

    @property
    def total_casualties(self) -> int:
        return self.fatalities + self.injuries + self.abducted


@dataclass(frozen=True, slots=True)
class PersistedIncidentSummary:
    """Read-only view of a stored incident used for duplicate checks."""

    id: str
    title: str
    occurred_at: datetime
    state: str
    fatalities: int
    injuries: int
    abducted: int
    local_area: str | None = None
    incident_type: IncidentType | None = None

    @property
    def total_casualties(self) -> int:
        return self.fatalities + self.injuries + self.abducted


@dataclass(frozen=True, slots=True)
class DuplicateCheck:
    """Outcome of comparing one candidate against the known incidents."""

    duplicate: bool
    reason: str
    score: int = 0
    match: CandidateIncident | PersistedIncidentSummary | None = None


@dataclass(slots=True)
class RunStats:
    """Per-run counters reported at the end of a pipeline run."""

    fetched: int = 0
    filtered: int = 0
    deduplicated_pre_ai: int = 0
    classified: int = 0
    rejected_invalid: int = 0
    duplicates: int = 0
    persisted: int = 0
    errors: int = 0
    fallback_used: int = 0

    def summary_line(self) -> str:
        return (
            f"fetched={self.fetched} filtered={self.filtered} "
            f"deduplicated_pre_ai={self.deduplicated_pre_ai} classified={self.classified} "
            f"rejected_invalid={self.rejected_invalid} duplicates={self.duplicates} "
            f"persisted={self.persisted} errors={self.errors} fallback_used={self.fallback_used}"
        )
