"""Incident stores: the narrow persistence interface plus Supabase and CSV backends."""

from __future__ import annotations

import csv
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import requests

from models import CandidateIncident, IncidentType, PersistedIncidentSummary
from retry import retry_with_backoff

LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30
MAX_READ_RETRIES = 3
READ_BASE_DELAY_SECONDS = 1.0

RECORD_COLUMNS = [
    "id",
    "title",
    "description",
    "date",
    "state",
    "lga",
    "lat",
    "lng",
    "fatalities",
    "injuries",
    "kidnapped",
    "incident_type",
    "severity",
    "source_url",
    "verified",
    "sources",
    "created_at",
]

_SUMMARY_SELECT = "id,title,date,state,lga,fatalities,injuries,kidnapped,incident_type"


class StoreError(RuntimeError):
    """The store could not be read."""


@dataclass(frozen=True, slots=True)
class InsertResult:
    ok: bool
    id: str | None = None
    error: str | None = None


class IncidentStore(Protocol):
    def fetch_recent(self, since: datetime) -> list[PersistedIncidentSummary]:
        ...

    def insert(self, incident: CandidateIncident) -> InsertResult:
        ...


def incident_to_record(incident: CandidateIncident) -> dict[str, Any]:
    """Store-facing shape of an accepted incident (no id; the store assigns it)."""
    return {
        "title": incident.title,
        "description": incident.summary,
        "date": incident.occurred_at.isoformat(),
        "state": incident.state,
        "lga": incident.local_area,
        "lat": round(incident.latitude, 6),
        "lng": round(incident.longitude, 6),
        "fatalities": incident.fatalities,
        "injuries": incident.injuries,
        "kidnapped": incident.abducted,
        "incident_type": incident.incident_type.value,
        "severity": incident.severity.value,
        "source_url": incident.source_url,
        "verified": incident.verified,
        "sources": list(incident.sources),
    }


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _parse_date(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _is_retryable_read(exc: Exception) -> bool:
    """429 and 5xx responses, timeouts and connection failures; other HTTP errors are final."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, requests.RequestException)


def summary_from_record(record: dict[str, Any]) -> PersistedIncidentSummary | None:
    """Build a dedup summary from a stored row; rows without a usable date are skipped."""
    occurred_at = _parse_date(record.get("date"))
    if occurred_at is None:
        return None
    incident_type = None
    for member in IncidentType:
        if member.value == record.get("incident_type"):
            incident_type = member
    return PersistedIncidentSummary(
        id=str(record.get("id") or ""),
        title=str(record.get("title") or ""),
        occurred_at=occurred_at,
        state=str(record.get("state") or "Unknown"),
        fatalities=_as_int(record.get("fatalities")),
        injuries=_as_int(record.get("injuries")),
        abducted=_as_int(record.get("kidnapped")),
        local_area=record.get("lga") or None,
        incident_type=incident_type,
    )


class SupabaseStore:
    """Incidents table behind Supabase's PostgREST endpoint.

    Reads back off on 429/5xx. Inserts are single-shot: a failed insert is
    reported to the caller and left for the next run.
    """

    def __init__(self, url: str, service_key: str, table: str = "incidents") -> None:
        if not url or not service_key:
            raise ValueError("Supabase URL and service key are required")
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }

    def fetch_recent(self, since: datetime) -> list[PersistedIncidentSummary]:
        params = {
            "select": _SUMMARY_SELECT,
            "date": f"gte.{since.isoformat()}",
            "order": "date.desc",
        }
        response = self._get_with_backoff(params)
        try:
            rows = response.json()
        except ValueError as exc:
            raise StoreError(f"Supabase returned a non-JSON body: {exc}") from exc
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected Supabase payload: {rows!r}")
        summaries = [s for s in (summary_from_record(r) for r in rows if isinstance(r, dict)) if s]
        LOGGER.info("Supabase: %s incidents since %s", len(summaries), since.date())
        return summaries

    def insert(self, incident: CandidateIncident) -> InsertResult:
        headers = {**self.headers, "Prefer": "return=representation"}
        try:
            response = requests.post(
                self.endpoint,
                headers=headers,
                json=incident_to_record(incident),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            return InsertResult(ok=False, error=f"connection: {exc}")

        if response.status_code == 409:
            return InsertResult(ok=False, error=f"conflict: {response.text[:200]}")
        if not response.ok:
            return InsertResult(ok=False, error=f"{response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            body = None
        new_id = body[0].get("id") if isinstance(body, list) and body and isinstance(body[0], dict) else None
        return InsertResult(ok=True, id=str(new_id) if new_id is not None else None)

    def _get_with_backoff(self, params: dict[str, str]) -> requests.Response:
        def attempt() -> requests.Response:
            response = requests.get(
                self.endpoint,
                headers=self.headers,
                params=params,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return response

        try:
            return retry_with_backoff(
                attempt,
                is_retryable=_is_retryable_read,
                max_attempts=MAX_READ_RETRIES,
                base_delay=READ_BASE_DELAY_SECONDS,
                sleep=time.sleep,
                label="Supabase read",
            )
        except requests.RequestException as exc:
            raise StoreError(f"Supabase read failed: {exc}") from exc


class CsvIncidentStore:
    """Append-only CSV file with the same record shape as the incidents table."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _rows(self) -> list[dict[str, str]]:
        if not self.path.exists():
            return []
        with self.path.open(newline="", encoding="utf-8") as fh:
            return list(csv.DictReader(fh))

    def fetch_recent(self, since: datetime) -> list[PersistedIncidentSummary]:
        cutoff = since if since.tzinfo else since.replace(tzinfo=UTC)
        summaries: list[PersistedIncidentSummary] = []
        for row in self._rows():
            summary = summary_from_record(row)
            if summary is not None and summary.occurred_at >= cutoff:
                summaries.append(summary)
        return summaries

    def insert(self, incident: CandidateIncident) -> InsertResult:
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        new_id = str(uuid.uuid4())
        row = {
            "id": new_id,
            **incident_to_record(incident),
            "created_at": datetime.now(UTC).isoformat(),
        }
        row["sources"] = json.dumps(row["sources"])

        try:
            with self.path.open("a", newline="", encoding="utf-8") as fh:
                writer = csv.DictWriter(fh, fieldnames=RECORD_COLUMNS)
                if write_header:
                    writer.writeheader()
                writer.writerow(row)
        except OSError as exc:
            return InsertResult(ok=False, error=str(exc))

        LOGGER.info("Wrote CSV row id=%s to %s", new_id, self.path)
        return InsertResult(ok=True, id=new_id)
