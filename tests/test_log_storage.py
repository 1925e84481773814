"""Tests for incident and log storage."""

import json
import tempfile
from datetime import datetime
from pathlib import Path

from outagex.detection.simulator import DEMO_SERVICE
from outagex.log_storage import LogStore
from outagex.models import Incident, IncidentStatus, LogEntry, LogLevel, Severity

NOW = datetime(2025, 2, 11, 12, 0, 0)


def _incident(incident_id="inc-abc123") -> Incident:
    return Incident(
        id=incident_id,
        title="Checkout errors",
        description="500s on checkout",
        severity=Severity.HIGH,
        affected_services=["checkout"],
    )


def test_record_incident_and_get_incident():
    store = LogStore()
    store.record_incident(_incident())
    retrieved = store.get_incident("inc-abc123")
    assert retrieved is not None
    assert retrieved.title == "Checkout errors"
    assert retrieved.severity == Severity.HIGH
    assert store.get_incident("nonexistent") is None


def test_record_incident_replaces_previous_snapshot():
    store = LogStore()
    incident = _incident()
    store.record_incident(incident)
    incident.status = IncidentStatus.RESOLVED
    store.record_incident(incident)
    assert store.get_incident(incident.id).status == IncidentStatus.RESOLVED


def test_fetch_logs_empty_returns_simulated():
    logs = LogStore().fetch_logs(["checkout"], now=NOW)
    assert len(logs) == 10
    assert {log.service for log in logs} == {DEMO_SERVICE}


def test_fetch_logs_filters_service_and_window_sorted():
    store = LogStore()
    store.append_log("checkout", "late", timestamp=datetime(2025, 2, 11, 11, 45, 0))
    store.append_log("checkout", "early", level=LogLevel.WARN, timestamp=datetime(2025, 2, 11, 11, 30, 0))
    store.append_log("checkout", "too old", timestamp=datetime(2025, 2, 11, 9, 0, 0))
    store.append_log("payments", "error in payments", timestamp=datetime(2025, 2, 11, 11, 50, 0))

    logs = store.fetch_logs(["checkout"], window_seconds=3600, now=NOW)
    assert [log.message for log in logs] == ["early", "late"]
    assert logs[0].level == LogLevel.WARN


def test_persistence_roundtrip():
    with tempfile.TemporaryDirectory() as tmp:
        data_dir = Path(tmp)
        store1 = LogStore(data_dir=str(data_dir))
        store1.record_incident(_incident("inc-persist"))
        store1.append_log("checkout", "crash loop log", timestamp=datetime(2025, 2, 11, 11, 0, 0))

        store2 = LogStore(data_dir=str(data_dir))
        incident = store2.get_incident("inc-persist")
        assert incident is not None
        assert incident.affected_services == ["checkout"]
        logs = store2.fetch_logs(incident.affected_services, window_seconds=7200, now=NOW)
        assert [log.message for log in logs] == ["crash loop log"]


def test_corrupt_file_is_ignored():
    with tempfile.TemporaryDirectory() as tmp:
        (Path(tmp) / "incidents.json").write_text("{not json", encoding="utf-8")
        store = LogStore(data_dir=tmp)
        assert store.get_incident("anything") is None


def test_log_entries_are_capped_to_newest():
    store = LogStore(max_log_entries=3)
    for minute in range(5):
        store.append_log("checkout", f"error {minute}", timestamp=datetime(2025, 2, 11, 11, 50 + minute, 0))
    logs = store.fetch_logs(["checkout"], now=NOW)
    assert [log.message for log in logs] == ["error 2", "error 3", "error 4"]


def test_cap_applies_to_persisted_file_and_reload():
    with tempfile.TemporaryDirectory() as tmp:
        store = LogStore(data_dir=tmp, max_log_entries=2)
        store.extend(
            [
                LogEntry(timestamp=datetime(2025, 2, 11, 11, 50, i), level=LogLevel.ERROR, message=f"e{i}", service="checkout")
                for i in range(4)
            ]
        )
        saved = json.loads((Path(tmp) / "log_entries.json").read_text(encoding="utf-8"))
        assert [entry["message"] for entry in saved] == ["e2", "e3"]

        reloaded = LogStore(data_dir=tmp, max_log_entries=1)
        assert [log.message for log in reloaded.fetch_logs(["checkout"], now=NOW)] == ["e3"]
