"""Runtime error monitor: counts reported errors per project and triggers incident response."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from outagex.config import get_settings
from outagex.integrations.base import ProjectConfigStore
from outagex.models import ErrorEvidence, LogEntry, LogLevel, RawError

if TYPE_CHECKING:
    from outagex.log_storage.store import LogStore
    from outagex.orchestrator import IncidentOrchestrator

logger = logging.getLogger(__name__)

MAX_ERRORS_IN_EVIDENCE = 10


@dataclass
class _ErrorWindow:
    count: int
    first_error: datetime


class ErrorMonitor:
    """
    Accumulates errors reported for each project and starts the incident
    pipeline once the count reaches the threshold.

    The window is not sliding: a project's count resets only when its first
    recorded error is older than the window, and again after each trigger.
    """

    def __init__(
        self,
        orchestrator: IncidentOrchestrator,
        projects: ProjectConfigStore,
        threshold: int | None = None,
        window_seconds: int | None = None,
        log_store: LogStore | None = None,
        user_id: str = "runtime-monitor",
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        settings = get_settings()
        self._orchestrator = orchestrator
        self._projects = projects
        self._threshold = threshold if threshold is not None else settings.error_threshold
        self._window = timedelta(seconds=window_seconds if window_seconds is not None else settings.error_window_seconds)
        self._log_store = log_store
        self._user_id = user_id
        self._clock = clock
        self._windows: dict[str, _ErrorWindow] = {}

    def error_count(self, project_id: str) -> int:
        window = self._windows.get(project_id)
        return window.count if window else 0

    async def report_errors(
        self,
        project_id: str,
        errors: list[RawError],
        deployment_id: str | None = None,
    ) -> bool:
        """Record errors for a project. Returns True when this report started an incident response."""
        if not errors:
            return False
        project = await self._projects.get(project_id)
        if project is None or not project.enabled:
            logger.warning("Project %s not found or not enabled", project_id)
            return False

        if self._log_store is not None:
            self._log_store.extend(
                [
                    LogEntry(
                        level=LogLevel.ERROR,
                        message=error.message,
                        service=project.name or project_id,
                        metadata={"filename": error.filename, "url": error.url, **error.metadata},
                    )
                    for error in errors
                ]
            )

        now = self._clock()
        window = self._windows.setdefault(project_id, _ErrorWindow(count=0, first_error=now))
        if window.first_error < now - self._window:
            window.count = 0
            window.first_error = now
        window.count += len(errors)

        logger.info(
            "Project %s: %d errors in window (threshold %d)",
            project.name or project_id,
            window.count,
            self._threshold,
        )
        if window.count < self._threshold:
            return False

        logger.error("Error threshold reached for project %s; triggering incident response", project.name or project_id)
        evidence = ErrorEvidence(
            source="runtime_monitor",
            project_id=project.project_id,
            project_name=project.name,
            deployment_id=deployment_id,
            error_count=window.count,
            error_message=errors[0].message or "Multiple runtime errors detected",
            errors=errors[:MAX_ERRORS_IN_EVIDENCE],
            github_owner=project.github_owner,
            github_repo=project.github_repo,
        )
        window.count = 0
        window.first_error = now
        return await self._orchestrator.start_incident_response(self._user_id, evidence.model_dump())
