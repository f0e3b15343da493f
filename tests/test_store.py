from __future__ import annotations

import csv
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from models import CandidateIncident, IncidentType, Severity
from store import (
    RECORD_COLUMNS,
    CsvIncidentStore,
    StoreError,
    SupabaseStore,
    incident_to_record,
    summary_from_record,
)

SAMPLE_INCIDENT = CandidateIncident(
    title="Bandits kill 12 in Maru, Zamfara",
    summary="Bandits attacked a village in Maru LGA.",
    occurred_at=datetime(2025, 1, 9, tzinfo=UTC),
    state="Zamfara",
    local_area="Maru",
    latitude=12.1234567,
    longitude=6.6543219,
    fatalities=12,
    injuries=0,
    abducted=20,
    incident_type=IncidentType.BANDITRY,
    severity=Severity.CRITICAL,
    source_url="https://punchng.com/bandits-kill-12",
    sources=("Punch",),
)


def _mock_resp(status: int = 200, payload=None) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status
    mock.ok = 200 <= status < 400
    mock.json.return_value = payload
    mock.text = json.dumps(payload)
    if not mock.ok:
        mock.raise_for_status.side_effect = requests.HTTPError(f"{status}", response=mock)
    return mock


def test_incident_to_record_shape() -> None:
    record = incident_to_record(SAMPLE_INCIDENT)
    assert record["description"] == SAMPLE_INCIDENT.summary
    assert record["lga"] == "Maru"
    assert record["kidnapped"] == 20
    assert record["incident_type"] == "Banditry"
    assert record["severity"] == "Critical"
    assert record["lat"] == 12.123457
    assert record["sources"] == ["Punch"]
    assert record["verified"] is False
    assert set(record) <= set(RECORD_COLUMNS)


def test_summary_from_record_skips_rows_without_date() -> None:
    assert summary_from_record({"id": 1, "title": "x", "date": ""}) is None


def test_summary_from_record_coerces_fields() -> None:
    summary = summary_from_record({
        "id": 7,
        "title": "Gunmen kill 3",
        "date": "2025-01-09T00:00:00Z",
        "state": "Kaduna",
        "lga": "",
        "fatalities": "3",
        "injuries": None,
        "kidnapped": "bad",
        "incident_type": "Terrorism",
    })
    assert summary is not None
    assert summary.id == "7"
    assert summary.occurred_at == datetime(2025, 1, 9, tzinfo=UTC)
    assert (summary.fatalities, summary.injuries, summary.abducted) == (3, 0, 0)
    assert summary.local_area is None
    assert summary.incident_type is IncidentType.TERRORISM


def test_supabase_requires_credentials() -> None:
    with pytest.raises(ValueError):
        SupabaseStore(url="", service_key="")


def test_supabase_fetch_recent() -> None:
    rows = [
        {"id": "a", "title": "Gunmen kill 3", "date": "2025-01-09", "state": "Kaduna", "fatalities": 3},
        {"id": "b", "title": "No date", "date": None},
    ]
    store = SupabaseStore(url="https://proj.supabase.co/", service_key="service-key")

    with patch("store.requests.get", return_value=_mock_resp(payload=rows)) as mock_get:
        summaries = store.fetch_recent(datetime(2025, 1, 3, tzinfo=UTC))

    assert [s.id for s in summaries] == ["a"]
    call = mock_get.call_args
    assert call.args[0] == "https://proj.supabase.co/rest/v1/incidents"
    assert call.kwargs["headers"]["apikey"] == "service-key"
    assert call.kwargs["headers"]["Authorization"] == "Bearer service-key"
    assert call.kwargs["params"]["date"] == "gte.2025-01-03T00:00:00+00:00"


def test_supabase_fetch_recent_retries_then_raises() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k")
    with patch("store.requests.get", return_value=_mock_resp(status=503)) as mock_get, \
         patch("store.time.sleep") as mock_sleep:
        with pytest.raises(StoreError):
            store.fetch_recent(datetime(2025, 1, 3, tzinfo=UTC))
    assert mock_get.call_count == 3
    assert mock_sleep.call_count == 2


def test_supabase_fetch_recent_does_not_retry_client_errors() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k")
    with patch("store.requests.get", return_value=_mock_resp(status=404)) as mock_get, \
         patch("store.time.sleep") as mock_sleep:
        with pytest.raises(StoreError, match="404"):
            store.fetch_recent(datetime(2025, 1, 3, tzinfo=UTC))
    assert mock_get.call_count == 1
    mock_sleep.assert_not_called()


def test_supabase_fetch_recent_recovers_after_rate_limit() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k")
    responses = [_mock_resp(status=429), _mock_resp(payload=[])]
    with patch("store.requests.get", side_effect=responses) as mock_get, \
         patch("store.time.sleep") as mock_sleep:
        assert store.fetch_recent(datetime(2025, 1, 3, tzinfo=UTC)) == []
    assert mock_get.call_count == 2
    mock_sleep.assert_called_once_with(1.0)


def test_supabase_fetch_recent_non_json_body_raises_store_error() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k")
    html_page = _mock_resp(status=200)
    html_page.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    with patch("store.requests.get", return_value=html_page):
        with pytest.raises(StoreError, match="non-JSON"):
            store.fetch_recent(datetime(2025, 1, 3, tzinfo=UTC))


def test_supabase_insert_returns_new_id() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k", table="incidents")
    with patch("store.requests.post", return_value=_mock_resp(status=201, payload=[{"id": "uuid-1"}])) as mock_post:
        result = store.insert(SAMPLE_INCIDENT)

    assert result.ok is True
    assert result.id == "uuid-1"
    assert mock_post.call_args.kwargs["headers"]["Prefer"] == "return=representation"
    assert mock_post.call_args.kwargs["json"]["title"] == SAMPLE_INCIDENT.title


def test_supabase_insert_conflict_and_failure_are_not_raised() -> None:
    store = SupabaseStore(url="https://proj.supabase.co", service_key="k")

    with patch("store.requests.post", return_value=_mock_resp(status=409, payload={"message": "duplicate"})):
        conflict = store.insert(SAMPLE_INCIDENT)
    with patch("store.requests.post", side_effect=requests.ConnectionError("down")):
        failure = store.insert(SAMPLE_INCIDENT)

    assert conflict.ok is False
    assert conflict.error.startswith("conflict")
    assert failure.ok is False
    assert "connection" in failure.error


def test_csv_store_insert_then_fetch(tmp_path) -> None:
    path = tmp_path / "incidents.csv"
    store = CsvIncidentStore(path)

    first = store.insert(SAMPLE_INCIDENT)
    second = store.insert(SAMPLE_INCIDENT)

    assert first.ok and second.ok
    assert first.id != second.id

    with path.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 2
    assert list(rows[0].keys()) == RECORD_COLUMNS
    assert json.loads(rows[0]["sources"]) == ["Punch"]

    recent = store.fetch_recent(datetime(2025, 1, 1, tzinfo=UTC))
    assert len(recent) == 2
    assert recent[0].abducted == 20
    assert recent[0].local_area == "Maru"
    assert recent[0].incident_type is IncidentType.BANDITRY


def test_csv_store_fetch_recent_applies_cutoff(tmp_path) -> None:
    store = CsvIncidentStore(tmp_path / "incidents.csv")
    store.insert(SAMPLE_INCIDENT)
    cutoff = SAMPLE_INCIDENT.occurred_at + timedelta(days=1)
    assert store.fetch_recent(cutoff) == []


def test_csv_store_missing_file_is_empty(tmp_path) -> None:
    assert CsvIncidentStore(tmp_path / "missing.csv").fetch_recent(datetime(2025, 1, 1, tzinfo=UTC)) == []
