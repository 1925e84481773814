"""Incident and log storage for the pipeline: in-memory with optional file persistence."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from outagex.detection.simulator import simulated_logs
from outagex.models import Incident, LogEntry, LogLevel

logger = logging.getLogger(__name__)

_INCIDENTS_FILE = "incidents.json"
_LOG_ENTRIES_FILE = "log_entries.json"
DEFAULT_MAX_LOG_ENTRIES = 5000


class LogStore:
    """
    Provides incident recording and service logs for log analysis.

    In-memory by default. If data_dir is set, data is loaded on init and
    saved after each mutation (record_incident, append, extend). Only the
    newest max_log_entries log entries are kept. When no stored entry
    matches a fetch, the simulated scenario's logs are returned.
    """

    def __init__(self, data_dir: str | None = None, max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES) -> None:
        self._data_dir = Path(data_dir) if data_dir else None
        self._max_log_entries = max(1, max_log_entries)
        self._incidents: list[dict] = []
        self._log_entries: list[dict] = []
        if self._data_dir and self._data_dir.is_dir():
            self._load()
            self._trim()

    def _trim(self) -> None:
        overflow = len(self._log_entries) - self._max_log_entries
        if overflow > 0:
            del self._log_entries[:overflow]

    def _load(self) -> None:
        for name, attr in [
            (_INCIDENTS_FILE, "_incidents"),
            (_LOG_ENTRIES_FILE, "_log_entries"),
        ]:
            path = self._data_dir / name
            if path.is_file():
                try:
                    data = json.loads(path.read_text(encoding="utf-8"))
                    if isinstance(data, list):
                        setattr(self, attr, data)
                except (json.JSONDecodeError, OSError) as e:
                    logger.warning("Could not load %s: %s", path, e)

    def _save(self, filename: str, data: list) -> None:
        if not self._data_dir:
            return
        self._data_dir.mkdir(parents=True, exist_ok=True)
        path = self._data_dir / filename
        try:
            path.write_text(json.dumps(data, indent=0), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save %s: %s", path, e)

    def record_incident(self, incident: Incident) -> None:
        """Persist (or replace) an incident snapshot for audit and retrieval."""
        payload = incident.model_dump(mode="json")
        self._incidents = [p for p in self._incidents if p.get("id") != incident.id]
        self._incidents.append(payload)
        self._save(_INCIDENTS_FILE, self._incidents)

    def get_incident(self, incident_id: str) -> Incident | None:
        """Return a stored incident by id, or None (also None if payload is invalid)."""
        for p in self._incidents:
            if p.get("id") != incident_id:
                continue
            try:
                return Incident.model_validate(p)
            except ValidationError:
                return None
        return None

    def append(self, entry: LogEntry) -> None:
        self._log_entries.append(entry.model_dump(mode="json"))
        self._trim()
        self._save(_LOG_ENTRIES_FILE, self._log_entries)

    def extend(self, entries: list[LogEntry]) -> None:
        self._log_entries.extend(e.model_dump(mode="json") for e in entries)
        self._trim()
        self._save(_LOG_ENTRIES_FILE, self._log_entries)

    def append_log(
        self,
        service: str,
        message: str,
        level: LogLevel = LogLevel.ERROR,
        timestamp: datetime | None = None,
        metadata: dict | None = None,
    ) -> None:
        """Append one log line for the given service."""
        self.append(
            LogEntry(
                timestamp=timestamp or datetime.utcnow(),
                level=level,
                message=message,
                service=service,
                metadata=metadata or {},
            )
        )

    def fetch_logs(
        self,
        services: list[str],
        window_seconds: int = 3600,
        now: datetime | None = None,
    ) -> list[LogEntry]:
        """Entries for the given services within the window, oldest first. Fallback to the simulated logs if empty."""
        cutoff = (now or datetime.utcnow()) - timedelta(seconds=window_seconds)
        wanted = set(services)
        entries: list[LogEntry] = []
        for raw in self._log_entries:
            if raw.get("service") not in wanted:
                continue
            try:
                entry = LogEntry.model_validate(raw)
            except ValidationError:
                continue
            if entry.timestamp >= cutoff:
                entries.append(entry)
        if entries:
            entries.sort(key=lambda e: e.timestamp)
            return entries
        logger.info("No stored logs for %s; using simulated logs", ", ".join(services) or "(none)")
        return simulated_logs(now)
