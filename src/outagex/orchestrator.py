"""
Incident response pipeline.

  Evidence → Detection → Log analysis → Commit correlation → Research
    → Diagnosis + solution (validated) → Proposal → [gate] → Execution

One IncidentOrchestrator runs at most one pipeline at a time. Progress is
reported as events on an injected EventPublisher; the timeline holds one
entry per phase, updated in place as the phase completes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel, to_snake

from outagex.config import Settings, get_settings
from outagex.detection import IncidentDetector
from outagex.errors import MissingPrerequisiteError
from outagex.events import EventPublisher
from outagex.integrations.base import ProjectConfigStore, RepositoryHandle, SourceRepositoryClient
from outagex.log_storage import LogAnalyzer, LogStore
from outagex.models import (
    AgentPhase,
    ChatMessage,
    ChatRole,
    CommitCorrelation,
    EntryStatus,
    ErrorEvidence,
    Event,
    EventName,
    Incident,
    IncidentStatus,
    LogAnalysis,
    ProjectConfig,
    ResearchResult,
    RootCause,
    Solution,
    TimelineEntry,
)
from outagex.reasoning_agent import DiagnosisEngine
from outagex.remediation import SolutionExecutor
from outagex.research import CommitCorrelator, Researcher
from outagex.validation import SolutionValidator

logger = logging.getLogger(__name__)

# Keys that mark pipeline metadata as carrying error evidence
_EVIDENCE_KEYS = frozenset(
    {"source", "errors", "errorMessage", "error_message", "errorCount", "error_count", "projectId", "project_id"}
)


def should_auto_execute(project: ProjectConfig | None, solution: Solution) -> bool:
    """Autonomous-execution gate: auto_fix on and confidence at or above the project threshold."""
    if project is None or not project.auto_fix:
        return False
    return solution.confidence >= project.auto_fix_threshold


def evidence_from_metadata(metadata: dict[str, Any] | None) -> ErrorEvidence | None:
    """
    Parse error evidence from trigger metadata; None when the metadata carries none.

    Fields that fail validation are dropped (a bad entry in ``errors`` drops
    only that entry) and the rest is kept, so metadata with evidence keys
    always yields evidence.
    """
    if not metadata or not _EVIDENCE_KEYS.intersection(metadata):
        return None
    data = dict(metadata)
    while True:
        try:
            return ErrorEvidence.model_validate(data)
        except ValidationError as e:
            dropped = _drop_invalid(data, e)
            logger.warning("Dropped invalid error evidence fields %s", ", ".join(dropped) or "-", exc_info=True)
            if not dropped:
                return ErrorEvidence()


def _drop_invalid(data: dict[str, Any], error: ValidationError) -> list[str]:
    """Remove the keys (or list entries) named by validation errors from data; returns what was removed."""
    dropped: list[str] = []
    bad_items: dict[str, set[int]] = {}
    for detail in error.errors():
        loc = detail["loc"]
        if not loc:
            continue
        key = str(loc[0])
        lists = [name for name in {key, to_snake(key), to_camel(key)} if isinstance(data.get(name), list)]
        if len(loc) > 1 and isinstance(loc[1], int) and lists:
            for name in lists:
                bad_items.setdefault(name, set()).add(loc[1])
            continue
        for name in {key, to_snake(key), to_camel(key)}:
            if name in data:
                del data[name]
                dropped.append(name)
    for name, indexes in bad_items.items():
        if name not in data:
            continue
        data[name] = [item for i, item in enumerate(data[name]) if i not in indexes]
        dropped.extend(f"{name}[{i}]" for i in sorted(indexes))
    return dropped


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _missing_suspect_message(repository: RepositoryHandle | None) -> str:
    if repository is None:
        return (
            "No source repository is connected, so no suspected commit could be identified. "
            "Connect a repository to continue the investigation."
        )
    return f"No suspected commit could be identified in {repository.full_name}. Investigation stopped before diagnosis."


class IncidentOrchestrator:
    """
    Single-flight incident pipeline.

    start_incident_response() drops a trigger that arrives while a pipeline
    is in flight (returns False); callers can check is_busy beforehand.
    A pipeline that stops at the proposal waits for execute_solution().
    stop() only reports the request; it never interrupts an awaited phase.
    """

    def __init__(
        self,
        events: EventPublisher | None = None,
        *,
        detector: IncidentDetector | None = None,
        log_store: LogStore | None = None,
        analyzer: LogAnalyzer | None = None,
        engine: DiagnosisEngine | None = None,
        correlator: CommitCorrelator | None = None,
        researcher: Researcher | None = None,
        validator: SolutionValidator | None = None,
        executor: SolutionExecutor | None = None,
        projects: ProjectConfigStore | None = None,
        repository_client: SourceRepositoryClient | None = None,
        default_project: ProjectConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._events = events
        self._detector = detector or IncidentDetector()
        self._log_store = log_store or LogStore(
            data_dir=self._settings.log_storage_data_dir or None,
            max_log_entries=self._settings.log_storage_max_entries,
        )
        self._analyzer = analyzer or LogAnalyzer()
        self._engine = engine or DiagnosisEngine()
        self._correlator = correlator or CommitCorrelator(self._engine)
        self._researcher = researcher or Researcher(max_results=self._settings.research_max_results)
        self._validator = validator or SolutionValidator()
        self._executor = executor or SolutionExecutor(repository=repository_client, auto_merge=self._settings.auto_merge)
        self._projects = projects
        self._repository_client = repository_client
        self._default_project = default_project

        self._busy = False
        self._timeline: list[TimelineEntry] = []
        self._incident: Incident | None = None
        self._solution: Solution | None = None
        self._root_cause: RootCause | None = None
        self._project: ProjectConfig | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def timeline(self) -> list[TimelineEntry]:
        return list(self._timeline)

    @property
    def incident(self) -> Incident | None:
        return self._incident

    @property
    def solution(self) -> Solution | None:
        return self._solution

    @property
    def root_cause(self) -> RootCause | None:
        return self._root_cause

    async def start_incident_response(self, user_id: str, metadata: dict[str, Any] | None = None) -> bool:
        """
        Run the pipeline for one trigger. Returns False (and does nothing
        else) when a pipeline is already in flight, True once accepted.
        """
        if self._busy:
            logger.warning("Incident response already in progress; trigger dropped", extra={"user_id": user_id})
            return False
        self._busy = True
        try:
            await self._run(user_id, metadata)
        except MissingPrerequisiteError as e:
            logger.warning("Incident response stopped early: %s", e)
            await self._chat(str(e), role=ChatRole.SYSTEM)
        except Exception as e:  # noqa: BLE001
            logger.error("Incident response failed: %s", e, exc_info=True)
            await self._fail(e)
        finally:
            self._busy = False
        return True

    async def execute_solution(self, solution_id: str) -> bool:
        """Apply the active solution after approval. Returns True when the incident was resolved."""
        solution = self._solution
        if solution is None or solution.id != solution_id:
            logger.warning("No active solution with id %s", solution_id)
            return False
        if not self._claim_execution():
            logger.warning("Solution %s is not awaiting approval; not executing", solution_id)
            return False
        try:
            return await self._execute(solution)
        except Exception as e:  # noqa: BLE001
            logger.error("Solution execution failed: %s", e, exc_info=True)
            await self._fail(e)
            return False

    async def stop(self) -> None:
        """Report a stop request. Phases already awaiting a collaborator run to completion."""
        logger.info("Stop requested", extra={"incident_id": self._incident.id if self._incident else None})
        await self._emit(
            EventName.AGENT_UPDATE,
            {"phase": None, "status": "stopped", "message": "Agent stopped by user"},
        )
        await self._chat("Stop requested. The current step will finish before the agent goes idle.", role=ChatRole.SYSTEM)

    # Pipeline

    async def _run(self, user_id: str, metadata: dict[str, Any] | None) -> None:
        self._timeline = []
        self._incident = None
        self._solution = None
        self._root_cause = None

        evidence = evidence_from_metadata(metadata)
        self._project = await self._load_project(evidence)
        logger.info(
            "Incident response started",
            extra={"user_id": user_id, "project_id": self._project.project_id if self._project else None},
        )

        incident = await self._detect(evidence)
        await self._pace()
        analysis = await self._analyze_logs(incident)
        await self._pace()
        repository = self._repository_handle(evidence, self._project)
        error_pattern = analysis.top_error or incident.title
        correlation = await self._correlate_commits(repository, error_pattern)
        await self._pace()
        research = await self._research(error_pattern)
        if correlation.suspected_commit is None:
            raise MissingPrerequisiteError(_missing_suspect_message(repository))
        await self._pace()
        solution = await self._diagnose(analysis, correlation, research, evidence, repository)
        await self._pace()
        await self._propose(solution)

    async def _load_project(self, evidence: ErrorEvidence | None) -> ProjectConfig | None:
        project_id = evidence.project_id if evidence else None
        if not project_id:
            return self._default_project
        if self._projects is None:
            return None
        project = await self._projects.get(project_id)
        if project is None:
            logger.info("No configuration for project %s; auto-fix disabled", project_id)
        return project

    def _repository_handle(self, evidence: ErrorEvidence | None, project: ProjectConfig | None) -> RepositoryHandle | None:
        owner = (project.github_owner if project else None) or (evidence.github_owner if evidence else None)
        repo = (project.github_repo if project else None) or (evidence.github_repo if evidence else None)
        if owner and repo and self._repository_client is not None:
            return RepositoryHandle(self._repository_client, owner, repo, self._settings.default_branch)
        return None

    async def _detect(self, evidence: ErrorEvidence | None) -> Incident:
        entry = await self._add_entry(AgentPhase.DETECTION, "Incident Detected", "Processing error signal")
        incident = self._detector.detect(evidence)
        self._incident = incident
        self._record_incident()
        await self._emit(EventName.INCIDENT_DETECTED, {"incident": _dump(incident)})
        await self._update_entry(
            entry,
            EntryStatus.COMPLETED,
            incident.title,
            {"severity": incident.severity.value, "affected_services": incident.affected_services},
        )
        await self._chat(
            f"Incident detected: {incident.title} (severity {incident.severity.value}). Starting investigation.",
            phase=AgentPhase.DETECTION,
        )
        return incident

    async def _analyze_logs(self, incident: Incident) -> LogAnalysis:
        await self._set_status(IncidentStatus.LOG_ANALYSIS)
        entry = await self._add_entry(AgentPhase.LOG_ANALYSIS, "Analyzing Logs", "Fetching logs for affected services")
        logs = self._log_store.fetch_logs(incident.affected_services)
        await self._emit(EventName.LOGS_STREAM, {"logs": [_dump(log) for log in logs]})
        analysis = self._analyzer.analyze(logs)
        insights = self._analyzer.insights(analysis)
        await self._update_entry(
            entry,
            EntryStatus.COMPLETED,
            analysis.summary,
            {"error_rate": analysis.error_rate, "error_count": analysis.error_count, "insights": insights},
        )
        await self._chat(analysis.summary, phase=AgentPhase.LOG_ANALYSIS)
        return analysis

    async def _correlate_commits(self, repository: RepositoryHandle | None, error_pattern: str) -> CommitCorrelation:
        await self._set_status(IncidentStatus.COMMIT_CORRELATION)
        entry = await self._add_entry(
            AgentPhase.COMMIT_CORRELATION, "Correlating Commits", "Looking for recent changes that match the error"
        )
        correlation = await self._correlator.correlate(repository, error_pattern)
        suspect = correlation.suspected_commit
        if suspect is None:
            await self._update_entry(
                entry, EntryStatus.COMPLETED, "No suspected commit identified", {"commits": len(correlation.commits)}
            )
            return correlation
        await self._update_entry(
            entry,
            EntryStatus.COMPLETED,
            f"Suspected commit {suspect.sha[:7]}: {suspect.message}",
            {"sha": suspect.sha, "author": suspect.author, "files_changed": list(suspect.files_changed)},
        )
        await self._chat(
            f"Commit {suspect.sha[:7]} by {suspect.author} looks related: {suspect.message}",
            phase=AgentPhase.COMMIT_CORRELATION,
        )
        return correlation

    async def _research(self, error_pattern: str) -> list[ResearchResult]:
        await self._set_status(IncidentStatus.RESEARCH)
        entry = await self._add_entry(AgentPhase.RESEARCH, "Researching Error", f"Searching for: {error_pattern[:120]}")
        results = await self._researcher.research(error_pattern, self._settings.research_technology)
        await self._update_entry(
            entry,
            EntryStatus.COMPLETED,
            f"Found {len(results)} relevant sources",
            {"findings": Researcher.key_findings(results)},
        )
        return results

    async def _diagnose(
        self,
        analysis: LogAnalysis,
        correlation: CommitCorrelation,
        research: list[ResearchResult],
        evidence: ErrorEvidence | None,
        repository: RepositoryHandle | None,
    ) -> Solution:
        await self._set_status(IncidentStatus.DIAGNOSIS)
        diagnosis_entry = await self._add_entry(AgentPhase.DIAGNOSIS, "Diagnosing Root Cause", "Combining all evidence")
        outcome = await self._engine.diagnose(
            analysis,
            correlation.suspected_commit,
            correlation.diff,
            research,
            evidence=evidence,
            repository=repository,
        )
        self._root_cause = outcome.root_cause
        await self._update_entry(
            diagnosis_entry,
            EntryStatus.COMPLETED,
            outcome.root_cause.description,
            {"confidence": outcome.root_cause.confidence, "evidence": outcome.root_cause.evidence},
        )
        await self._chat(
            f"Root cause ({outcome.root_cause.confidence}% confidence): {outcome.root_cause.description}",
            phase=AgentPhase.DIAGNOSIS,
        )

        solution_entry = await self._add_entry(
            AgentPhase.SOLUTION_GENERATION, "Generating Solution", "Validating candidate fix"
        )
        solution = await self._validator.validate(outcome.solution)
        solution.metadata.update(self._solution_metadata(evidence, outcome.resolution.path if outcome.resolution else None))
        self._solution = solution
        passed = solution.test_results is None or solution.test_results.success
        await self._update_entry(
            solution_entry,
            EntryStatus.COMPLETED,
            solution.description,
            {
                "type": solution.type.value,
                "confidence": solution.confidence,
                "risk": solution.risk.value,
                "validation_passed": passed,
                "file_path": solution.file_path,
            },
        )
        return solution

    def _solution_metadata(self, evidence: ErrorEvidence | None, file_path: str | None) -> dict[str, Any]:
        project = self._project
        merged: dict[str, Any] = {
            "project_id": (project.project_id if project else None) or (evidence.project_id if evidence else None),
            "project_name": (project.name if project else None) or (evidence.project_name if evidence else None),
            "github_owner": (project.github_owner if project else None) or (evidence.github_owner if evidence else None),
            "github_repo": (project.github_repo if project else None) or (evidence.github_repo if evidence else None),
            "deployment_id": evidence.deployment_id if evidence else None,
            "file_path": file_path,
        }
        return {key: value for key, value in merged.items() if value}

    async def _propose(self, solution: Solution) -> None:
        await self._set_status(IncidentStatus.PROPOSING)
        await self._emit(
            EventName.SOLUTION_PROPOSED,
            {"solution": _dump(solution), "root_cause": _dump(self._root_cause) if self._root_cause else None},
        )
        if solution.test_results is not None and not solution.test_results.success:
            await self._chat(
                "Validation flagged this fix: " + "; ".join(solution.test_results.errors or []),
                phase=AgentPhase.SOLUTION_GENERATION,
            )

        if should_auto_execute(self._project, solution):
            if not self._claim_execution():
                logger.info("Solution %s already approved for execution", solution.id)
                return
            await self._chat(
                f"Confidence {solution.confidence}% meets the auto-fix threshold "
                f"({self._project.auto_fix_threshold}%). Applying the fix.",
                phase=AgentPhase.EXECUTION,
            )
            await self._execute(solution)
            return
        await self._chat(
            f"Proposed fix ({solution.type.value}, {solution.confidence}% confidence, {solution.risk.value} risk): "
            f"{solution.description}. Awaiting approval.",
            phase=AgentPhase.SOLUTION_GENERATION,
        )

    def _claim_execution(self) -> bool:
        """Move a proposing incident to executing; False if it is not awaiting execution."""
        incident = self._incident
        if incident is None or incident.status != IncidentStatus.PROPOSING:
            return False
        incident.status = IncidentStatus.EXECUTING
        return True

    async def _execute(self, solution: Solution) -> bool:
        await self._set_status(IncidentStatus.EXECUTING)
        entry = await self._add_entry(AgentPhase.EXECUTION, "Executing Solution", solution.description)
        result = await self._executor.execute(solution)
        if result.success:
            self._incident.resolved_at = datetime.utcnow()
            await self._update_entry(entry, EntryStatus.COMPLETED, result.message, _dump(result))
            await self._set_status(IncidentStatus.RESOLVED)
            await self._chat(f"Fix applied: {result.message}", phase=AgentPhase.EXECUTION)
            return True
        await self._update_entry(entry, EntryStatus.FAILED, result.error or result.message, _dump(result))
        await self._set_status(IncidentStatus.FAILED)
        await self._chat(f"Fix could not be applied: {result.error or result.message}", phase=AgentPhase.EXECUTION)
        return False

    async def _fail(self, error: Exception) -> None:
        for entry in self._timeline:
            if entry.status == EntryStatus.IN_PROGRESS:
                await self._update_entry(entry, EntryStatus.FAILED, str(error))
        if self._incident is not None:
            await self._set_status(IncidentStatus.FAILED)
        await self._chat(f"Incident response failed: {error}", role=ChatRole.SYSTEM)

    # Timeline and events

    async def _add_entry(
        self,
        phase: AgentPhase,
        title: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> TimelineEntry:
        entry = TimelineEntry(
            phase=phase,
            title=title,
            description=description,
            status=EntryStatus.IN_PROGRESS,
            metadata=metadata or {},
        )
        self._timeline.append(entry)
        await self._emit(EventName.TIMELINE_ADD, {"entry": _dump(entry)})
        await self._emit(
            EventName.AGENT_UPDATE,
            {"phase": phase.value, "status": entry.status.value, "message": title},
        )
        return entry

    async def _update_entry(
        self,
        entry: TimelineEntry,
        status: EntryStatus,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        entry.status = status
        entry.timestamp = datetime.utcnow()
        if description is not None:
            entry.description = description
        if metadata:
            entry.metadata.update(metadata)
        await self._emit(EventName.TIMELINE_ADD, {"entry": _dump(entry)})
        update: dict[str, Any] = {"phase": entry.phase.value, "status": status.value, "message": entry.description}
        if entry.metadata:
            update["data"] = entry.metadata
        await self._emit(EventName.AGENT_UPDATE, update)

    async def _set_status(self, status: IncidentStatus) -> None:
        incident = self._incident
        if incident is None:
            return
        incident.status = status
        self._record_incident()
        await self._emit(EventName.STATUS_CHANGE, {"status": status.value, "incident": _dump(incident)})

    def _record_incident(self) -> None:
        try:
            self._log_store.record_incident(self._incident)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to record incident: %s", e, exc_info=True)

    async def _chat(self, content: str, role: ChatRole = ChatRole.AGENT, phase: AgentPhase | None = None) -> None:
        message = ChatMessage(role=role, content=content, phase=phase)
        await self._emit(EventName.CHAT_MESSAGE, {"message": _dump(message)})

    async def _emit(self, name: EventName, payload: dict[str, Any]) -> None:
        if self._events is None:
            return
        try:
            await self._events.publish(Event(name=name, payload=payload))
        except Exception as e:  # noqa: BLE001
            logger.warning("Event publish failed: %s", e, extra={"event": name.value}, exc_info=True)

    async def _pace(self) -> None:
        if self._settings.phase_delay_seconds > 0:
            await asyncio.sleep(self._settings.phase_delay_seconds)
